"""Store factory.

Decides once, at construction time, whether the store carries the
optional vector capability.
"""

import logging
from pathlib import Path
from typing import Optional

from sqlite_memory.config import MemorySettings
from sqlite_memory.constants import VECTOR_DIMENSIONS
from sqlite_memory.storage.sqlite_store import SQLiteStore
from sqlite_memory.storage.vector_store import VectorSQLiteStore

logger = logging.getLogger(__name__)


def create_store(
    db_path: Optional[Path] = None,
    enable_vector: bool = True,
    vector_dimensions: int = VECTOR_DIMENSIONS,
) -> SQLiteStore:
    """Open a knowledge graph store.

    Args:
        db_path: Database file (default: ./sqlite-memory.db)
        enable_vector: Build a VectorSQLiteStore (requires sqlite-vec)
        vector_dimensions: Embedding width for the vector store

    Returns:
        SQLiteStore, or VectorSQLiteStore when enable_vector is True

    Raises:
        StorageError: If the database cannot be opened
    """
    if enable_vector:
        logger.info(f"Creating vector-enabled store (dimensions={vector_dimensions})")
        return VectorSQLiteStore(db_path=db_path, vector_dimensions=vector_dimensions)

    logger.info("Creating text-only store (vector search disabled)")
    return SQLiteStore(db_path=db_path)


def create_store_from_settings(settings: MemorySettings) -> SQLiteStore:
    """Open a store configured by MemorySettings."""
    return create_store(
        db_path=settings.get_db_path(),
        enable_vector=settings.enable_vector,
        vector_dimensions=settings.vector_dimensions,
    )
