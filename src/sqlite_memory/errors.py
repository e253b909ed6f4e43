"""Error taxonomy for the knowledge graph store.

Every failure surfaced to a caller is a GraphStoreError subclass:

- InvalidInputError: malformed input (bad entity, relation, query, vector)
- NotFoundError: the targeted entity or relation does not exist
- UnsupportedOperationError: the store was built without a capability
- StorageError: the SQLite substrate itself failed

Duplicate relation creation is deliberately NOT an error.
"""


class GraphStoreError(Exception):
    """Base exception for all knowledge graph store errors."""

    pass


class InvalidInputError(GraphStoreError):
    """Raised when caller-supplied input fails validation."""

    pass


class InvalidEntityError(InvalidInputError):
    """Raised when an entity in a batch is malformed."""

    pass


class InvalidRelationError(InvalidInputError):
    """Raised when a relation in a batch is malformed."""

    pass


class InvalidQueryError(InvalidInputError):
    """Raised when a search query is empty or of the wrong shape."""

    pass


class DimensionMismatchError(InvalidInputError):
    """Raised when a vector does not have the configured dimensionality."""

    def __init__(self, expected: int, received: int):
        self.expected = expected
        self.received = received
        super().__init__(
            f"Vector dimension mismatch: expected {expected} dimensions, "
            f"but received {received}"
        )


class NotFoundError(GraphStoreError):
    """Raised when an operation targets something that does not exist."""

    pass


class EntityNotFoundError(NotFoundError):
    """Raised when no entity has the requested name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Entity not found: {name}")


class RelationNotFoundError(NotFoundError):
    """Raised when no relation matches the requested triple."""

    def __init__(self, source: str, target: str, relation_type: str):
        self.source = source
        self.target = target
        self.relation_type = relation_type
        super().__init__(f"Relation not found: {source} -> {target} ({relation_type})")


class UnsupportedOperationError(GraphStoreError):
    """Raised when the store lacks an optional capability (vector search)."""

    pass


class StorageError(GraphStoreError):
    """Raised when the SQLite substrate fails (I/O, corruption, locking)."""

    pass
