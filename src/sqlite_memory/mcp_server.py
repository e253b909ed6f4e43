"""sqlite-memory MCP server module.

This module provides the FastMCP server instance and tool registration for
the knowledge graph memory:
- Writes (create_entities, create_relations)
- Reads (search_nodes, read_graph, get_entity_with_relations, get_stats)
- Deletes (delete_entity, delete_relation)

The GraphTools instance is injected by __main__.py through
set_tool_instances() once the store has been opened.

CRITICAL: MCP servers using stdio transport must NEVER write to stdout
as it corrupts JSON-RPC messages. All logging goes to stderr.
"""

import logging
from typing import Any, Optional

from mcp.server.fastmcp import FastMCP

from sqlite_memory.tools import GraphTools
from sqlite_memory.types import EntityInput, RelationInput

# MCP servers must never write to stdout (corrupts JSON-RPC)
logger = logging.getLogger(__name__)

# Initialize FastMCP server
mcp = FastMCP("sqlite-memory")

# Set by the main entry point after the store is opened
graph_tools: Optional[GraphTools] = None

_NOT_INITIALIZED = {"success": False, "error": "Server not initialized"}


def set_tool_instances(graph: GraphTools) -> None:
    """Set the global tool instance after initialization.

    Args:
        graph: GraphTools instance
    """
    global graph_tools
    graph_tools = graph


# ==============================================================================
# Write Tools
# ==============================================================================


@mcp.tool()
async def create_entities(entities: list[EntityInput]) -> dict[str, Any]:
    """Create or update entities with observations.

    An entity that already exists keeps its creation time; its type is
    updated and its observations are replaced by the ones supplied.

    Args:
        entities: Entities with name, entityType, observations (at least one)
                  and an optional embedding

    Returns:
        Dictionary with:
        - success: Boolean indicating operation success
        - data: Dictionary with processed count
        - error: Error message if operation failed
    """
    if graph_tools is None:
        return dict(_NOT_INITIALIZED)

    return await graph_tools.create_entities(entities)


@mcp.tool()
async def create_relations(relations: list[RelationInput]) -> dict[str, Any]:
    """Create directed relations between entities.

    Creating a relation that already exists is not an error; it is skipped.

    Args:
        relations: Relations with from, to and relationType
                   (source, target and type are also accepted)

    Returns:
        Dictionary with:
        - success: Boolean indicating operation success
        - data: Dictionary with created and requested counts
        - error: Error message if operation failed
    """
    if graph_tools is None:
        return dict(_NOT_INITIALIZED)

    return await graph_tools.create_relations(relations)


# ==============================================================================
# Read Tools
# ==============================================================================


@mcp.tool()
async def search_nodes(
    query: str | list[float],
    limit: Optional[int] = None,
) -> dict[str, Any]:
    """Search entities and relations by text query.

    Returns up to limit results (default 10, max 50) ordered by relevance:
    name matches first, then type matches, then observation matches, newest
    first within each group. Spaces, hyphens and underscores in the query
    are interchangeable. When vector search is enabled, an embedding may be
    passed instead of text (default 5 results, ordered by cosine distance).

    Args:
        query: Search text, or an embedding vector
        limit: Maximum number of entities to return

    Returns:
        Dictionary with:
        - success: Boolean indicating operation success
        - data: Dictionary with entities and relations
        - error: Error message if operation failed
    """
    if graph_tools is None:
        return dict(_NOT_INITIALIZED)

    return await graph_tools.search_nodes(query, limit)


@mcp.tool()
async def read_graph() -> dict[str, Any]:
    """Get recent entities and their relations.

    Returns:
        Dictionary with:
        - success: Boolean indicating operation success
        - data: Dictionary with the 10 most recently created entities and
          every relation touching them
        - error: Error message if operation failed
    """
    if graph_tools is None:
        return dict(_NOT_INITIALIZED)

    return await graph_tools.read_graph()


@mcp.tool()
async def get_entity_with_relations(name: str) -> dict[str, Any]:
    """Get an entity along with all its relations and related entities.

    Useful for exploring the knowledge graph around a specific entity.

    Args:
        name: Entity name

    Returns:
        Dictionary with:
        - success: Boolean indicating operation success
        - data: Dictionary with entity, relations and relatedEntities
        - error: Error message if operation failed
    """
    if graph_tools is None:
        return dict(_NOT_INITIALIZED)

    return await graph_tools.get_entity_with_relations(name)


@mcp.tool()
async def get_stats() -> dict[str, Any]:
    """Get knowledge graph statistics.

    Returns:
        Dictionary with:
        - success: Boolean indicating operation success
        - data: Dictionary with entity, relation and embedding counts
        - error: Error message if operation failed
    """
    if graph_tools is None:
        return dict(_NOT_INITIALIZED)

    return await graph_tools.get_stats()


# ==============================================================================
# Delete Tools
# ==============================================================================


@mcp.tool()
async def delete_entity(name: str) -> dict[str, Any]:
    """Delete entity and associated data.

    Removes the entity's observations, its embedding and every relation in
    which it is the source or the target.

    Args:
        name: Entity name

    Returns:
        Dictionary with:
        - success: Boolean indicating operation success
        - data: Dictionary with confirmation message
        - error: Error message if operation failed
    """
    if graph_tools is None:
        return dict(_NOT_INITIALIZED)

    return await graph_tools.delete_entity(name)


@mcp.tool()
async def delete_relation(source: str, target: str, type: str) -> dict[str, Any]:
    """Delete relation between entities.

    Args:
        source: Source entity name
        target: Target entity name
        type: Relation type

    Returns:
        Dictionary with:
        - success: Boolean indicating operation success
        - data: Dictionary with confirmation message
        - error: Error message if operation failed
    """
    if graph_tools is None:
        return dict(_NOT_INITIALIZED)

    return await graph_tools.delete_relation(source, target, type)
