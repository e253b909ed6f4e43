"""Vector-enabled SQLite storage using sqlite-vec.

VectorSQLiteStore extends SQLiteStore with:
- An entities_vec vec0 virtual table holding at most one embedding per entity
- Embedding writes on upsert (sanitized, dimension checked, replaced wholesale)
- Cosine-distance nearest-neighbour search over every stored embedding

Entities without an embedding are never candidates in vector search.

Example:
    >>> store = VectorSQLiteStore(Path(":memory:"), vector_dimensions=3)
    >>> store.upsert_entities([
    ...     {"name": "a", "entityType": "t", "observations": ["x"], "embedding": [1, 0, 0]},
    ... ])
    1
    >>> store.search_similar([1, 0, 0])[0].entity.name
    'a'
"""

import logging
import sqlite3
from pathlib import Path
from typing import Any, Optional, Sequence

import sqlite_vec

from sqlite_memory.constants import DEFAULT_VECTOR_LIMIT, VECTOR_DIMENSIONS
from sqlite_memory.errors import GraphStoreError, InvalidEntityError, StorageError
from sqlite_memory.storage.sqlite_store import SQLiteStore, clamp_limit
from sqlite_memory.storage.vector import (
    deserialize_vector,
    sanitize_vector,
    serialize_vector,
)
from sqlite_memory.types import SearchResult

logger = logging.getLogger(__name__)


class VectorSQLiteStore(SQLiteStore):
    """SQLite knowledge graph store with sqlite-vec embedding search.

    Args:
        db_path: Path to SQLite database file, or Path(':memory:')
        vector_dimensions: Fixed embedding width (default: 1536)

    Attributes:
        vector_dimensions: Width enforced on every write and query
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        vector_dimensions: int = VECTOR_DIMENSIONS,
    ):
        if vector_dimensions < 1:
            raise ValueError(f"vector_dimensions must be positive, got {vector_dimensions}")
        # Must be set before the base constructor builds the schema
        self.vector_dimensions = vector_dimensions
        super().__init__(db_path)

    def _load_extensions(self, conn: sqlite3.Connection) -> None:
        """Enable extension loading and load sqlite-vec for vector storage."""
        conn.enable_load_extension(True)
        sqlite_vec.load(conn)
        conn.enable_load_extension(False)  # Disable for security

    def _init_schema(self, cursor: sqlite3.Cursor) -> None:
        super()._init_schema(cursor)

        # Vector embeddings (sqlite-vec), keyed 1:1 by entity name
        cursor.execute(
            f"""
            CREATE VIRTUAL TABLE IF NOT EXISTS entities_vec USING vec0(
                entity_name TEXT PRIMARY KEY,
                embedding FLOAT[{self.vector_dimensions}]
            )
        """
        )

    # =========================================================================
    # Embedding hooks
    # =========================================================================

    def _prepare_embedding(self, entity: dict[str, Any]) -> Optional[list[float]]:
        embedding = entity.get("embedding")
        if embedding is None:
            return None
        if not isinstance(embedding, (list, tuple)):
            raise InvalidEntityError(
                f"Embedding for entity \"{entity.get('name')}\" must be an array of numbers"
            )
        sanitized, _ = sanitize_vector(embedding, self.vector_dimensions)
        return sanitized

    def _write_embedding(self, cursor: sqlite3.Cursor, name: str, embedding: list[float]) -> None:
        # vec0 has no upsert; replace by delete + insert
        cursor.execute("DELETE FROM entities_vec WHERE entity_name = ?", (name,))
        cursor.execute(
            "INSERT INTO entities_vec (entity_name, embedding) VALUES (?, ?)",
            (name, serialize_vector(embedding)),
        )

    def _delete_embedding(self, cursor: sqlite3.Cursor, name: str) -> None:
        cursor.execute("DELETE FROM entities_vec WHERE entity_name = ?", (name,))

    def _load_embeddings(self, names: Sequence[str]) -> dict[str, list[float]]:
        if not names:
            return {}
        placeholders = ",".join("?" for _ in names)
        rows = self._fetchall(
            f"SELECT entity_name, embedding FROM entities_vec WHERE entity_name IN ({placeholders})",
            list(names),
        )
        return {row["entity_name"]: deserialize_vector(row["embedding"]) for row in rows}

    def count_embeddings(self) -> int:
        """Get number of entities that carry an embedding."""
        try:
            row = self._fetchone("SELECT COUNT(*) AS n FROM entities_vec")
            return int(row["n"]) if row else 0
        except Exception as e:
            raise StorageError(f"Failed to count embeddings: {e}") from e

    # =========================================================================
    # Search Operations
    # =========================================================================

    def search_similar(
        self,
        embedding: Sequence[Any],
        limit: Optional[int] = None,
    ) -> list[SearchResult]:
        """Exact cosine nearest-neighbour search.

        Args:
            embedding: Query vector of exactly vector_dimensions components.
                       Malformed components are replaced with 0.0 (warning logged).
            limit: Number of results, clamped into [1, 50] (default: 5)

        Returns:
            List of SearchResult sorted by ascending cosine distance

        Raises:
            DimensionMismatchError: If the query has the wrong width (no
                query is issued)
            StorageError: If the search fails
        """
        sanitized, _ = sanitize_vector(embedding, self.vector_dimensions)
        effective_limit = clamp_limit(limit, DEFAULT_VECTOR_LIMIT)

        try:
            rows = self._fetchall(
                """
                SELECT name, entity_type, created_at, distance FROM (
                    SELECT e.name, e.entity_type, e.created_at,
                           vec_distance_cosine(v.embedding, ?) AS distance
                    FROM entities_vec v
                    JOIN entities e ON e.name = v.entity_name
                )
                -- zero vectors have no cosine distance
                WHERE distance IS NOT NULL
                ORDER BY distance ASC, created_at DESC
                LIMIT ?
                """,
                (serialize_vector(sanitized), effective_limit),
            )
            entities = self._rows_to_entities(rows)
            return [
                SearchResult(entity=entity, distance=float(row["distance"]))
                for entity, row in zip(entities, rows)
            ]

        except GraphStoreError:
            raise
        except Exception as e:
            raise StorageError(f"Similarity search failed: {e}") from e
