"""Knowledge graph façade.

KnowledgeGraph wraps a store and assembles composite results:
- search_nodes: text or vector search plus every relation touching the hits
- read_graph: most recent entities plus every relation touching them
- get_entity_with_relations: one entity, its relations and hop-1 neighbours

Vector search is an optional store capability; the façade probes for it
with ``isinstance(store, VectorSearchCapable)`` and raises
UnsupportedOperationError when it is absent.

Multi-query reads (entity, then relations, then neighbours) are not
wrapped in a transaction and may observe an interleaved write.
"""

import logging
from typing import Any, Optional, Sequence

from sqlite_memory.constants import DEFAULT_RECENT_LIMIT
from sqlite_memory.errors import InvalidQueryError, UnsupportedOperationError
from sqlite_memory.storage.protocols import GraphStore, VectorSearchCapable
from sqlite_memory.types import EntityNeighborhood, GraphSnapshot

logger = logging.getLogger(__name__)


class KnowledgeGraph:
    """High-level graph operations over a GraphStore.

    Args:
        store: Any GraphStore; VectorSearchCapable stores enable vector queries

    Example:
        >>> graph = KnowledgeGraph(create_store(Path(":memory:")))
        >>> graph.create_entities([{"name": "Claude", "entityType": "AI Assistant",
        ...                         "observations": ["Helpful"]}])
        1
        >>> graph.read_graph().entities[0].name
        'Claude'
    """

    def __init__(self, store: GraphStore):
        self._store = store

    @property
    def store(self) -> GraphStore:
        return self._store

    @property
    def supports_vector_search(self) -> bool:
        return isinstance(self._store, VectorSearchCapable)

    # =========================================================================
    # Writes
    # =========================================================================

    def create_entities(self, entities: Sequence[dict[str, Any]]) -> int:
        return self._store.upsert_entities(entities)

    def create_relations(self, relations: Sequence[dict[str, Any]]) -> int:
        return self._store.create_relations(relations)

    def delete_entity(self, name: str) -> None:
        self._store.delete_entity(name)

    def delete_relation(self, source: str, target: str, relation_type: str) -> None:
        self._store.delete_relation(source, target, relation_type)

    # =========================================================================
    # Reads
    # =========================================================================

    def _snapshot(self, entities: list, distances: Optional[dict[str, float]] = None) -> GraphSnapshot:
        relations = self._store.get_relations_for_entities([e.name for e in entities])
        return GraphSnapshot(entities=entities, relations=relations, distances=distances)

    def search_nodes(
        self,
        query: str | Sequence[Any],
        limit: Optional[int] = None,
    ) -> GraphSnapshot:
        """Search by text or by vector and attach touching relations.

        Args:
            query: Text query, or a list of numbers for vector search
            limit: Result count; text default 10, vector default 5, both
                   clamped into [1, 50]

        Returns:
            GraphSnapshot of matches (with distances for vector queries)

        Raises:
            InvalidQueryError: If the text query is blank or the query is
                neither text nor a list of numbers
            DimensionMismatchError: If a vector query has the wrong width
            UnsupportedOperationError: If a vector query is sent to a
                text-only store
        """
        if isinstance(query, str):
            entities = self._store.search_entities(query, limit)
            return self._snapshot(entities)

        if not isinstance(query, (list, tuple)):
            raise InvalidQueryError("Query must be a string or an array of numbers")

        if not isinstance(self._store, VectorSearchCapable):
            raise UnsupportedOperationError(
                "Vector search is not enabled for this store; use a text query"
            )

        results = self._store.search_similar(query, limit)
        entities = [r.entity for r in results]
        distances = {r.entity.name: r.distance for r in results}
        return self._snapshot(entities, distances)

    def read_graph(self, limit: int = DEFAULT_RECENT_LIMIT) -> GraphSnapshot:
        """Recent-activity snapshot: newest entities and their relations."""
        return self._snapshot(self._store.get_recent_entities(limit))

    def get_entity_with_relations(self, name: str) -> EntityNeighborhood:
        """Get an entity, every relation touching it, and its neighbours.

        Neighbours are the distinct entities at the other end of each
        relation, in relation order. Relations pointing at entities that no
        longer exist are returned, but the missing neighbour is skipped.

        Raises:
            EntityNotFoundError: If the entity does not exist
        """
        entity = self._store.get_entity(name)
        relations = self._store.get_relations_for_entities([name])

        neighbor_names: list[str] = []
        for relation in relations:
            other = relation.target if relation.source == name else relation.source
            if other != name and other not in neighbor_names:
                neighbor_names.append(other)

        related = self._store.get_entities(neighbor_names)
        if len(related) < len(neighbor_names):
            found = {e.name for e in related}
            missing = [n for n in neighbor_names if n not in found]
            logger.debug(f"Skipping dangling neighbours of '{name}': {missing}")

        return EntityNeighborhood(entity=entity, relations=relations, related_entities=related)
