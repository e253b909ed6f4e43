"""MCP tools module for sqlite-memory.

GraphTools encapsulates every tool implementation with the KnowledgeGraph
injected via the constructor.

Example:
    >>> from sqlite_memory.tools import GraphTools
    >>> tools = GraphTools(graph)
    >>> result = await tools.search_nodes("web development")
"""

from sqlite_memory.tools.graph_tools import GraphTools

__all__ = ["GraphTools"]
