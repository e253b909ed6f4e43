"""Knowledge graph tools for the sqlite-memory MCP server.

This module provides the tool implementations behind the MCP server:
- create_entities: Create or update entities with observations
- create_relations: Create typed relations (duplicates absorbed)
- search_nodes: Text (or vector) search returning entities and relations
- read_graph: Recent entities and their relations
- delete_entity: Delete an entity and everything attached to it
- delete_relation: Delete one relation
- get_entity_with_relations: An entity with its relations and neighbours
- get_stats: Entity, relation and embedding counts

Every method returns a dict with ``success`` and either ``data`` or
``error``/``error_type``; exceptions never escape to the transport.
"""

import logging
from typing import Any, Optional, Sequence

from pydantic import ValidationError

from sqlite_memory.errors import (
    GraphStoreError,
    InvalidInputError,
    NotFoundError,
    UnsupportedOperationError,
)
from sqlite_memory.graph import KnowledgeGraph
from sqlite_memory.types import EntityInput, RelationInput

# MCP servers must never write to stdout (corrupts JSON-RPC)
logger = logging.getLogger(__name__)


def _error_type(error: Exception) -> str:
    if isinstance(error, (InvalidInputError, ValidationError)):
        return "validation"
    if isinstance(error, NotFoundError):
        return "not_found"
    if isinstance(error, UnsupportedOperationError):
        return "unsupported"
    return "internal"


def _failure(operation: str, error: Exception) -> dict[str, Any]:
    kind = _error_type(error)
    if kind == "internal":
        logger.error(f"{operation} failed: {error}", exc_info=True)
    else:
        logger.warning(f"{operation} rejected: {error}")
    return {"success": False, "error": str(error), "error_type": kind}


class GraphTools:
    """Tool implementations for knowledge graph operations.

    Thin adapter from MCP requests to KnowledgeGraph: coerces request
    models, serializes results, and maps the error taxonomy onto
    ``error_type`` values (validation, not_found, unsupported, internal).

    Args:
        graph: KnowledgeGraph instance for all graph operations

    Example:
        >>> tools = GraphTools(graph)
        >>> result = await tools.read_graph()
        >>> print(len(result["data"]["entities"]))
    """

    def __init__(self, graph: KnowledgeGraph) -> None:
        self._graph = graph

    async def create_entities(
        self, entities: Sequence[EntityInput | dict[str, Any]]
    ) -> dict[str, Any]:
        """Create new entities or replace existing ones (observations are replaced, not merged).

        Returns:
            Dictionary with:
            - success: Boolean indicating operation success
            - data: Dictionary with processed count and message
            - error: Error message if operation failed
        """
        try:
            records = [
                e.to_record() if isinstance(e, EntityInput) else dict(e) for e in entities
            ]
            processed = self._graph.create_entities(records)
            logger.info(f"Processed {processed} entities")
            return {
                "success": True,
                "data": {
                    "processed": processed,
                    "message": f"Successfully processed {processed} entities "
                    "(created new or updated existing)",
                },
            }
        except (GraphStoreError, ValidationError) as e:
            return _failure("create_entities", e)

    async def create_relations(
        self, relations: Sequence[RelationInput | dict[str, Any]]
    ) -> dict[str, Any]:
        """Create relations between entities; existing triples are left untouched.

        Returns:
            Dictionary with:
            - success: Boolean indicating operation success
            - data: Dictionary with created and requested counts
            - error: Error message if operation failed
        """
        try:
            records = [
                RelationInput.model_validate(r).to_record() if isinstance(r, dict) else r.to_record()
                for r in relations
            ]
            created = self._graph.create_relations(records)
            return {
                "success": True,
                "data": {
                    "created": created,
                    "requested": len(records),
                    "message": f"Created {created} relations",
                },
            }
        except (GraphStoreError, ValidationError) as e:
            return _failure("create_relations", e)

    async def search_nodes(
        self,
        query: str | list[float],
        limit: Optional[int] = None,
    ) -> dict[str, Any]:
        """Search entities by text (or embedding) and return them with their relations.

        Returns:
            Dictionary with:
            - success: Boolean indicating operation success
            - data: Dictionary with entities, relations (and distances for vector queries)
            - error: Error message if operation failed
        """
        try:
            snapshot = self._graph.search_nodes(query, limit)
            return {"success": True, "data": snapshot.to_dict()}
        except GraphStoreError as e:
            return _failure("search_nodes", e)

    async def read_graph(self) -> dict[str, Any]:
        """Get the most recently created entities and their relations."""
        try:
            return {"success": True, "data": self._graph.read_graph().to_dict()}
        except GraphStoreError as e:
            return _failure("read_graph", e)

    async def delete_entity(self, name: str) -> dict[str, Any]:
        """Delete an entity with its observations, embedding and relations."""
        try:
            self._graph.delete_entity(name)
            return {
                "success": True,
                "data": {
                    "name": name,
                    "message": f'Successfully deleted entity "{name}" and its associated data',
                },
            }
        except GraphStoreError as e:
            return _failure("delete_entity", e)

    async def delete_relation(self, source: str, target: str, relation_type: str) -> dict[str, Any]:
        """Delete the relation source -> target of the given type."""
        try:
            self._graph.delete_relation(source, target, relation_type)
            return {
                "success": True,
                "data": {
                    "message": f"Successfully deleted relation: {source} -> {target} ({relation_type})",
                },
            }
        except GraphStoreError as e:
            return _failure("delete_relation", e)

    async def get_entity_with_relations(self, name: str) -> dict[str, Any]:
        """Get an entity, its relations and its directly related entities."""
        try:
            neighborhood = self._graph.get_entity_with_relations(name)
            return {"success": True, "data": neighborhood.to_dict()}
        except GraphStoreError as e:
            return _failure("get_entity_with_relations", e)

    async def get_stats(self) -> dict[str, Any]:
        """Get entity, relation and embedding counts."""
        try:
            store = self._graph.store
            data: dict[str, Any] = {
                "entities": store.count_entities(),
                "relations": store.count_relations(),
                "vector_search": self._graph.supports_vector_search,
                "schema_version": store.schema_version(),
            }
            if self._graph.supports_vector_search:
                data["embeddings"] = store.count_embeddings()
                data["vector_dimensions"] = store.vector_dimensions
            return {"success": True, "data": data}
        except GraphStoreError as e:
            return _failure("get_stats", e)
