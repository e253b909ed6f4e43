"""Store interfaces for the knowledge graph.

Every store implements GraphStore. Stores built with the optional
sqlite-vec capability additionally implement VectorSearchCapable; callers
feature-detect with ``isinstance(store, VectorSearchCapable)`` rather than
assuming vector search is present.
"""

from typing import Any, Optional, Protocol, Sequence, runtime_checkable

from sqlite_memory.types import Entity, Relation, SearchResult

__all__ = ["GraphStore", "VectorSearchCapable"]


@runtime_checkable
class GraphStore(Protocol):
    """Base knowledge graph store: entities, relations and text search."""

    def upsert_entities(self, entities: Sequence[dict[str, Any]]) -> int:
        """Create or replace entities; returns the number processed."""
        ...

    def get_entity(self, name: str) -> Entity:
        """Fetch one entity; raises EntityNotFoundError if absent."""
        ...

    def get_entities(self, names: Sequence[str]) -> list[Entity]:
        """Fetch the entities that exist among names, skipping the rest."""
        ...

    def get_recent_entities(self, limit: int = 10) -> list[Entity]:
        """Most recently created entities, newest first."""
        ...

    def delete_entity(self, name: str) -> None:
        """Delete an entity with its observations, embedding and relations."""
        ...

    def create_relations(self, relations: Sequence[dict[str, Any]]) -> int:
        """Insert relations, absorbing duplicates; returns rows inserted."""
        ...

    def delete_relation(self, source: str, target: str, relation_type: str) -> None:
        """Delete one relation; raises RelationNotFoundError if absent."""
        ...

    def get_relations_for_entities(self, names: Sequence[str]) -> list[Relation]:
        """Relations whose source or target is in names."""
        ...

    def search_entities(self, query: str, limit: Optional[int] = None) -> list[Entity]:
        """Relevance-ranked text search over name, type and observations."""
        ...

    def count_entities(self) -> int:
        ...

    def count_relations(self) -> int:
        ...

    def schema_version(self) -> int:
        ...

    def close(self) -> None:
        """Release the database connection."""
        ...


@runtime_checkable
class VectorSearchCapable(Protocol):
    """Optional capability: cosine nearest-neighbour search over embeddings."""

    vector_dimensions: int

    def count_embeddings(self) -> int:
        ...

    def search_similar(
        self, embedding: Sequence[Any], limit: Optional[int] = None
    ) -> list[SearchResult]:
        """Entities ordered by ascending cosine distance to embedding."""
        ...
