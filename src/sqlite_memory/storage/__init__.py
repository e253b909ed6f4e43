"""Storage layer for sqlite-memory.

This module provides knowledge graph storage on a single SQLite database:
- Entities with observation sets (replaced wholesale on upsert)
- Typed directed relations, unique per (source, target, type)
- Relevance-ranked text search over names, types and observations
- Optional sqlite-vec embedding storage with cosine-distance search

Example:
    >>> from sqlite_memory.storage import create_store, VectorSearchCapable
    >>> store = create_store(Path(":memory:"), enable_vector=True)
    >>> isinstance(store, VectorSearchCapable)
    True
    >>> store.close()
"""

from sqlite_memory.storage.factory import create_store, create_store_from_settings
from sqlite_memory.storage.protocols import GraphStore, VectorSearchCapable
from sqlite_memory.storage.sqlite_store import SQLiteStore
from sqlite_memory.storage.vector_store import VectorSQLiteStore

__all__ = [
    "GraphStore",
    "SQLiteStore",
    "VectorSQLiteStore",
    "VectorSearchCapable",
    "create_store",
    "create_store_from_settings",
]
