"""sqlite-memory - persistent knowledge graph memory for AI assistants.

Entities with free-text observations, typed directed relations between
them, relevance-ranked text search and optional cosine-distance vector
search, all stored in a single local SQLite database and served over MCP.
"""

__version__ = "0.3.0"
__all__ = ["__version__"]
