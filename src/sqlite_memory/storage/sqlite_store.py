"""SQLite storage layer for the sqlite-memory knowledge graph.

This module provides persistent storage for:
- Entities (unique name, type, creation time)
- Observations (free-text facts owned by exactly one entity)
- Relations (directed, typed edges between entity names)
- Relevance-ranked text search over names, types and observations

Relations reference entity names softly: there is no foreign key from
relations to entities, so a relation may name an entity that does not
exist. Read paths tolerate such dangling references; delete_entity removes
every relation naming the deleted entity.

Embeddings and vector search are layered on by VectorSQLiteStore in
vector_store.py.

Example:
    >>> store = SQLiteStore(Path("./sqlite-memory.db"))
    >>> store.upsert_entities([
    ...     {"name": "Claude", "entityType": "AI Assistant", "observations": ["Made by Anthropic"]},
    ... ])
    1
    >>> store.search_entities("assistant")[0].name
    'Claude'
"""

import logging
import re
import sqlite3
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Optional, Sequence

from sqlite_memory.constants import (
    BUSY_TIMEOUT_MS,
    DEFAULT_DB_PATH,
    DEFAULT_RECENT_LIMIT,
    DEFAULT_SEARCH_LIMIT,
    MAX_SEARCH_LIMIT,
    SCHEMA_VERSION,
)
from sqlite_memory.errors import (
    EntityNotFoundError,
    GraphStoreError,
    InvalidEntityError,
    InvalidQueryError,
    InvalidRelationError,
    RelationNotFoundError,
    StorageError,
    UnsupportedOperationError,
)
from sqlite_memory.types import Entity, Relation

# MCP servers must never write to stdout (corrupts JSON-RPC)
logger = logging.getLogger(__name__)

# Runs of whitespace, underscores and hyphens are interchangeable in queries
_SEPARATOR_RUN = re.compile(r"[\s_\-]+")


def clamp_limit(limit: Optional[int], default: int, maximum: int = MAX_SEARCH_LIMIT) -> int:
    """Clamp a caller-supplied result limit into [1, maximum].

    Raises:
        InvalidQueryError: If limit is not an integer
    """
    if limit is None:
        return default
    if isinstance(limit, bool) or not isinstance(limit, int):
        try:
            limit = int(limit)
        except (TypeError, ValueError) as e:
            raise InvalidQueryError(f"Limit must be an integer, got {limit!r}") from e
    return max(1, min(limit, maximum))


def build_like_pattern(query: str) -> str:
    """Turn a text query into a case-folded LIKE pattern.

    'web development', 'web-development' and 'web_development' all become
    '%web%development%'. Literal '%' and '\\' are escaped; use with
    ``ESCAPE '\\'`` against ``casefold(column)``.

    Raises:
        InvalidQueryError: If the query is not a string, is blank, or
            contains nothing but separators
    """
    if not isinstance(query, str):
        raise InvalidQueryError("Text query must be a string")
    cleaned = query.strip()
    if not cleaned:
        raise InvalidQueryError("Text query cannot be empty")
    if not _SEPARATOR_RUN.sub("", cleaned):
        raise InvalidQueryError("Text query must contain more than separators")

    escaped = cleaned.casefold().replace("\\", "\\\\").replace("%", "\\%")
    return f"%{_SEPARATOR_RUN.sub('%', escaped)}%"


def _casefold(value: Any) -> Any:
    # SQLite's own LIKE and lower() only fold ASCII
    return value.casefold() if isinstance(value, str) else value


def _is_nonblank_str(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


class SQLiteStore:
    """SQLite storage for the knowledge graph (text search only).

    Holds exactly one connection for its lifetime. Construct once at
    startup, inject wherever needed, and close on shutdown (or use as a
    context manager).

    Args:
        db_path: Path to SQLite database file, or Path(':memory:').
                 Defaults to ./sqlite-memory.db

    Attributes:
        db_path: Path to database file
        _conn: SQLite connection
    """

    def __init__(self, db_path: Optional[Path] = None):
        """Open the database and create the schema if needed.

        Raises:
            StorageError: If database initialization fails
        """
        self.db_path = Path(db_path) if db_path is not None else DEFAULT_DB_PATH
        self._lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None

        try:
            if str(self.db_path) != ":memory:":
                self.db_path.parent.mkdir(parents=True, exist_ok=True)

            # isolation_level=None: transactions are opened explicitly by transaction()
            self._conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
                isolation_level=None,
            )
            self._conn.row_factory = sqlite3.Row
            self._configure_connection(self._conn)
            self._load_extensions(self._conn)

            with self.transaction() as cursor:
                self._init_schema(cursor)

        except Exception as e:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
            raise StorageError(f"Failed to initialize SQLite storage at {self.db_path}: {e}") from e

        logger.info(f"Opened knowledge graph store at {self.db_path}")

    def _configure_connection(self, conn: sqlite3.Connection) -> None:
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
        conn.execute("PRAGMA cache_size = 1000")
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA temp_store = MEMORY")
        conn.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS}")
        conn.create_function("casefold", 1, _casefold, deterministic=True)

    def _load_extensions(self, conn: sqlite3.Connection) -> None:
        """Hook for subclasses that need SQLite extensions."""

    def _init_schema(self, cursor: sqlite3.Cursor) -> None:
        """Initialize database schema."""
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS entities (
                name TEXT PRIMARY KEY,
                entity_type TEXT NOT NULL,
                created_at REAL NOT NULL
            )
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS observations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                entity_name TEXT NOT NULL,
                content TEXT NOT NULL,
                created_at REAL NOT NULL,
                FOREIGN KEY (entity_name) REFERENCES entities(name) ON DELETE CASCADE
            )
        """
        )

        # No foreign keys: relations may name entities that do not exist
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS relations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                source TEXT NOT NULL,
                target TEXT NOT NULL,
                relation_type TEXT NOT NULL,
                created_at REAL NOT NULL,
                UNIQUE(source, target, relation_type)
            )
        """
        )

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_entities_name ON entities(name)")
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_entities_created ON entities(created_at DESC)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_observations_entity ON observations(entity_name)"
        )
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_relations_source ON relations(source)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_relations_target ON relations(target)")

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at REAL NOT NULL
            )
        """
        )
        cursor.execute(
            "INSERT OR IGNORE INTO schema_version (version, applied_at) VALUES (?, ?)",
            (SCHEMA_VERSION, time.time()),
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        """Run a sequence of statements atomically.

        Commits when the block exits normally and rolls back on any
        exception, which is then re-raised. KeyboardInterrupt and
        SystemExit roll back too, so the connection never keeps an open
        transaction. close() waits for an open transaction to finish.

        Raises:
            StorageError: If the store has been closed
        """
        with self._lock:
            conn = self._require_connection()
            cursor = conn.cursor()
            try:
                cursor.execute("BEGIN IMMEDIATE")
                yield cursor
                conn.commit()
            except BaseException:
                conn.rollback()
                raise
            finally:
                cursor.close()

    def _require_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError("Store is closed")
        return self._conn

    def _fetchall(self, sql: str, params: Any = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._require_connection().execute(sql, params).fetchall()

    def _fetchone(self, sql: str, params: Any = ()) -> Optional[sqlite3.Row]:
        with self._lock:
            return self._require_connection().execute(sql, params).fetchone()

    @property
    def closed(self) -> bool:
        return self._conn is None

    def schema_version(self) -> int:
        """Highest applied schema version."""
        row = self._fetchone("SELECT MAX(version) AS version FROM schema_version")
        return int(row["version"]) if row and row["version"] is not None else 0

    def close(self) -> None:
        """Close database connection. Safe to call more than once."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.info(f"Closed knowledge graph store at {self.db_path}")

    def __enter__(self) -> "SQLiteStore":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # =========================================================================
    # Embedding hooks (overridden by VectorSQLiteStore)
    # =========================================================================

    def _prepare_embedding(self, entity: dict[str, Any]) -> Optional[list[float]]:
        """Validate an entity's embedding before any write.

        The text-only store cannot persist embeddings.
        """
        if entity.get("embedding") is not None:
            raise UnsupportedOperationError(
                f"Entity \"{entity.get('name')}\" has an embedding but vector storage is not enabled"
            )
        return None

    def _write_embedding(self, cursor: sqlite3.Cursor, name: str, embedding: list[float]) -> None:
        raise UnsupportedOperationError("Vector storage is not enabled")

    def _delete_embedding(self, cursor: sqlite3.Cursor, name: str) -> None:
        """Nothing to delete without a vector table."""

    def _load_embeddings(self, names: Sequence[str]) -> dict[str, list[float]]:
        return {}

    # =========================================================================
    # Entity Operations
    # =========================================================================

    def _validate_entity(self, entity: Any) -> list[str]:
        """Check one batch item and return its de-duplicated observations.

        Raises:
            InvalidEntityError: If the item is malformed
        """
        if not isinstance(entity, dict):
            raise InvalidEntityError("Each entity must be an object")

        name = entity.get("name")
        if not _is_nonblank_str(name):
            raise InvalidEntityError("Entity name must be a non-empty string")

        entity_type = entity.get("entityType", entity.get("entity_type"))
        if not _is_nonblank_str(entity_type):
            raise InvalidEntityError(f'Invalid entity type for entity "{name}"')

        observations = entity.get("observations")
        if not isinstance(observations, (list, tuple)) or len(observations) == 0:
            raise InvalidEntityError(f'Entity "{name}" must have at least one observation')

        if not all(_is_nonblank_str(obs) for obs in observations):
            raise InvalidEntityError(
                f'Entity "{name}" has invalid observations. '
                "All observations must be non-empty strings"
            )

        # Observations form a set; keep first occurrence order
        return list(dict.fromkeys(observations))

    def upsert_entities(self, entities: Sequence[dict[str, Any]]) -> int:
        """Create or update entities in a single all-or-nothing transaction.

        Existing entities keep their creation time; their type is updated
        and their observation set is replaced, never merged. A supplied
        embedding replaces any previous one.

        Args:
            entities: Dicts with keys name, entityType, observations and
                      optionally embedding

        Returns:
            Number of entities processed

        Raises:
            InvalidEntityError: If any item is malformed (nothing is written)
            DimensionMismatchError: If an embedding has the wrong width
            UnsupportedOperationError: If an embedding is supplied to a
                text-only store
            StorageError: If the write fails
        """
        prepared: list[tuple[str, str, list[str], Optional[list[float]]]] = []
        for entity in entities:
            observations = self._validate_entity(entity)
            embedding = self._prepare_embedding(entity)
            prepared.append(
                (
                    entity["name"],
                    entity.get("entityType", entity.get("entity_type")),
                    observations,
                    embedding,
                )
            )

        if not prepared:
            return 0

        try:
            with self.transaction() as cursor:
                for name, entity_type, observations, embedding in prepared:
                    now = time.time()
                    cursor.execute(
                        """
                        INSERT INTO entities (name, entity_type, created_at)
                        VALUES (?, ?, ?)
                        ON CONFLICT(name) DO UPDATE SET
                            entity_type = excluded.entity_type
                        """,
                        (name, entity_type, now),
                    )

                    cursor.execute("DELETE FROM observations WHERE entity_name = ?", (name,))
                    cursor.executemany(
                        """
                        INSERT INTO observations (entity_name, content, created_at)
                        VALUES (?, ?, ?)
                        """,
                        [(name, content, now) for content in observations],
                    )

                    if embedding is not None:
                        self._write_embedding(cursor, name, embedding)

        except GraphStoreError:
            raise
        except Exception as e:
            raise StorageError(f"Entity operation failed: {e}") from e

        logger.debug(f"Upserted {len(prepared)} entities")
        return len(prepared)

    def _rows_to_entities(self, rows: Sequence[sqlite3.Row]) -> list[Entity]:
        """Attach observations (and embeddings) to entity rows, keeping row order."""
        if not rows:
            return []

        names = [row["name"] for row in rows]
        placeholders = ",".join("?" for _ in names)
        observations: dict[str, list[str]] = {name: [] for name in names}
        for obs in self._fetchall(
            f"""
            SELECT entity_name, content FROM observations
            WHERE entity_name IN ({placeholders})
            ORDER BY id
            """,
            names,
        ):
            observations[obs["entity_name"]].append(obs["content"])

        embeddings = self._load_embeddings(names)

        return [
            Entity(
                name=row["name"],
                entity_type=row["entity_type"],
                observations=observations[row["name"]],
                created_at=row["created_at"],
                embedding=embeddings.get(row["name"]),
            )
            for row in rows
        ]

    def get_entity(self, name: str) -> Entity:
        """Get an entity with its observations and embedding (if any).

        Raises:
            EntityNotFoundError: If no entity has this name
            StorageError: If the query fails
        """
        try:
            row = self._fetchone(
                "SELECT name, entity_type, created_at FROM entities WHERE name = ?",
                (name,),
            )
            if row is None:
                raise EntityNotFoundError(name)
            return self._rows_to_entities([row])[0]

        except GraphStoreError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get entity '{name}': {e}") from e

    def get_entities(self, names: Sequence[str]) -> list[Entity]:
        """Get the entities that exist among names, in the order given.

        Missing names are skipped, not reported.
        """
        unique = list(dict.fromkeys(names))
        if not unique:
            return []

        try:
            placeholders = ",".join("?" for _ in unique)
            rows = self._fetchall(
                f"SELECT name, entity_type, created_at FROM entities WHERE name IN ({placeholders})",
                unique,
            )
            by_name = {row["name"]: row for row in rows}
            return self._rows_to_entities([by_name[n] for n in unique if n in by_name])

        except Exception as e:
            raise StorageError(f"Failed to get entities: {e}") from e

    def get_recent_entities(self, limit: int = DEFAULT_RECENT_LIMIT) -> list[Entity]:
        """Get up to limit entities, most recently created first."""
        if limit < 1:
            return []

        try:
            rows = self._fetchall(
                """
                SELECT name, entity_type, created_at FROM entities
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
                """,
                (limit,),
            )
            return self._rows_to_entities(rows)

        except Exception as e:
            raise StorageError(f"Failed to get recent entities: {e}") from e

    def delete_entity(self, name: str) -> None:
        """Delete an entity and everything that hangs off it.

        Removes observations, embedding, and every relation naming the
        entity as source or target, then the entity row, atomically.

        Raises:
            EntityNotFoundError: If no entity has this name
            StorageError: If the delete fails
        """
        try:
            with self.transaction() as cursor:
                cursor.execute("SELECT 1 FROM entities WHERE name = ?", (name,))
                if cursor.fetchone() is None:
                    raise EntityNotFoundError(name)

                cursor.execute("DELETE FROM observations WHERE entity_name = ?", (name,))
                self._delete_embedding(cursor, name)
                cursor.execute(
                    "DELETE FROM relations WHERE source = ? OR target = ?",
                    (name, name),
                )
                cursor.execute("DELETE FROM entities WHERE name = ?", (name,))

        except GraphStoreError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete entity '{name}': {e}") from e

        logger.info(f"Deleted entity '{name}'")

    def count_entities(self) -> int:
        """Get total number of entities."""
        try:
            row = self._fetchone("SELECT COUNT(*) AS n FROM entities")
            return int(row["n"]) if row else 0
        except Exception as e:
            raise StorageError(f"Failed to count entities: {e}") from e

    # =========================================================================
    # Relation Operations
    # =========================================================================

    def create_relations(self, relations: Sequence[dict[str, Any]]) -> int:
        """Insert relations; duplicate triples are silently absorbed.

        Args:
            relations: Dicts with keys from, to, relationType (source,
                       target, type are accepted too)

        Returns:
            Number of relations actually inserted (first write wins)

        Raises:
            InvalidRelationError: If any item has a blank field
            StorageError: If the write fails
        """
        triples: list[tuple[str, str, str]] = []
        for relation in relations:
            if not isinstance(relation, dict):
                raise InvalidRelationError("Each relation must be an object")
            source = relation.get("from", relation.get("source"))
            target = relation.get("to", relation.get("target"))
            relation_type = relation.get("relationType", relation.get("type"))
            if not all(_is_nonblank_str(v) for v in (source, target, relation_type)):
                raise InvalidRelationError(
                    f"Relation {source!r} -> {target!r} ({relation_type!r}) must have "
                    "non-empty source, target and type"
                )
            triples.append((source, target, relation_type))

        if not triples:
            return 0

        created = 0
        try:
            with self.transaction() as cursor:
                now = time.time()
                for source, target, relation_type in triples:
                    cursor.execute(
                        """
                        INSERT OR IGNORE INTO relations (source, target, relation_type, created_at)
                        VALUES (?, ?, ?, ?)
                        """,
                        (source, target, relation_type, now),
                    )
                    created += cursor.rowcount

        except GraphStoreError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to create relations: {e}") from e

        if created < len(triples):
            logger.debug(f"Absorbed {len(triples) - created} duplicate relations")
        return created

    def delete_relation(self, source: str, target: str, relation_type: str) -> None:
        """Delete the exact (source, target, relation_type) triple.

        Raises:
            RelationNotFoundError: If no relation matched
            StorageError: If the delete fails
        """
        try:
            with self.transaction() as cursor:
                cursor.execute(
                    """
                    DELETE FROM relations
                    WHERE source = ? AND target = ? AND relation_type = ?
                    """,
                    (source, target, relation_type),
                )
                if cursor.rowcount == 0:
                    raise RelationNotFoundError(source, target, relation_type)

        except GraphStoreError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete relation: {e}") from e

    def get_relations_for_entities(self, names: Sequence[str]) -> list[Relation]:
        """Get every relation whose source or target is in names."""
        unique = list(dict.fromkeys(names))
        if not unique:
            return []

        try:
            placeholders = ",".join("?" for _ in unique)
            rows = self._fetchall(
                f"""
                SELECT source, target, relation_type FROM relations
                WHERE source IN ({placeholders}) OR target IN ({placeholders})
                ORDER BY id
                """,
                unique + unique,
            )
            return [
                Relation(
                    source=row["source"],
                    target=row["target"],
                    relation_type=row["relation_type"],
                )
                for row in rows
            ]

        except Exception as e:
            raise StorageError(f"Failed to get relations: {e}") from e

    def count_relations(self) -> int:
        """Get total number of relations."""
        try:
            row = self._fetchone("SELECT COUNT(*) AS n FROM relations")
            return int(row["n"]) if row else 0
        except Exception as e:
            raise StorageError(f"Failed to count relations: {e}") from e

    # =========================================================================
    # Search Operations
    # =========================================================================

    def search_entities(self, query: str, limit: Optional[int] = None) -> list[Entity]:
        """Relevance-ranked, case-insensitive text search (Unicode case folding).

        Matches the query against entity name, entity type and observation
        content. Whitespace, '_' and '-' runs in the query match each other.
        Name matches outrank type matches, which outrank observation-only
        matches; ties go to the most recently created entity.

        Args:
            query: Non-blank search text
            limit: Max results, clamped into [1, 50] (default: 10)

        Returns:
            Distinct matching entities in rank order

        Raises:
            InvalidQueryError: If query is blank
            StorageError: If the query fails
        """
        pattern = build_like_pattern(query)
        effective_limit = clamp_limit(limit, DEFAULT_SEARCH_LIMIT)

        try:
            rows = self._fetchall(
                r"""
                SELECT name, entity_type, created_at, rank FROM (
                    SELECT e.rowid AS rid, e.name, e.entity_type, e.created_at,
                        CASE
                            WHEN casefold(e.name) LIKE :pattern ESCAPE '\' THEN 3
                            WHEN casefold(e.entity_type) LIKE :pattern ESCAPE '\' THEN 2
                            WHEN EXISTS (
                                SELECT 1 FROM observations o
                                WHERE o.entity_name = e.name
                                  AND casefold(o.content) LIKE :pattern ESCAPE '\'
                            ) THEN 1
                            ELSE 0
                        END AS rank
                    FROM entities e
                )
                WHERE rank > 0
                ORDER BY rank DESC, created_at DESC, rid DESC
                LIMIT :limit
                """,
                {"pattern": pattern, "limit": effective_limit},
            )
            return self._rows_to_entities(rows)

        except GraphStoreError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to search entities: {e}") from e
