"""Tests for the SQLite knowledge graph store.

This module tests SQLiteStore functionality including:
- Entity upsert (replace-not-merge observations, immutable creation time)
- Batch validation (all-or-nothing)
- Relation creation with duplicate absorption
- Cascading entity delete and relation delete
- Relevance-ranked text search (separators, ranking, limits, escaping)
- Recency ordering
- Connection lifecycle and transactions
"""

import time
from pathlib import Path

import pytest

from conftest import make_entity
from sqlite_memory.errors import (
    EntityNotFoundError,
    InvalidEntityError,
    InvalidQueryError,
    InvalidRelationError,
    RelationNotFoundError,
    StorageError,
    UnsupportedOperationError,
)
from sqlite_memory.storage.sqlite_store import SQLiteStore, build_like_pattern, clamp_limit


def _observation_count(store: SQLiteStore) -> int:
    row = store._fetchone("SELECT COUNT(*) AS n FROM observations")
    return int(row["n"])


# ============================================================================
# Helpers
# ============================================================================


class TestLikePattern:
    """Test query to LIKE pattern conversion."""

    def test_separators_collapse_to_wildcard(self) -> None:
        """Test that spaces, hyphens and underscores become the same wildcard."""
        expected = "%web%development%"
        assert build_like_pattern("web development") == expected
        assert build_like_pattern("web-development") == expected
        assert build_like_pattern("web_development") == expected
        assert build_like_pattern("web - _ development") == expected

    def test_query_is_stripped(self) -> None:
        """Test that surrounding whitespace does not produce extra wildcards."""
        assert build_like_pattern("  claude  ") == "%claude%"

    def test_metacharacters_escaped(self) -> None:
        """Test that literal % and backslash are escaped."""
        assert build_like_pattern("100%") == "%100\\%%"
        assert build_like_pattern("a\\b") == "%a\\\\b%"

    @pytest.mark.parametrize("query", ["", "   ", "\t\n"])
    def test_blank_query_rejected(self, query: str) -> None:
        """Test that blank queries raise InvalidQueryError."""
        with pytest.raises(InvalidQueryError):
            build_like_pattern(query)

    def test_non_string_rejected(self) -> None:
        """Test that non-string queries raise InvalidQueryError."""
        with pytest.raises(InvalidQueryError):
            build_like_pattern(42)  # type: ignore[arg-type]

    @pytest.mark.parametrize("query", ["-", "__", " - _ ", "\t-\n"])
    def test_separator_only_query_rejected(self, query: str) -> None:
        """Test that a query of nothing but separators does not match everything."""
        with pytest.raises(InvalidQueryError):
            build_like_pattern(query)

    def test_query_is_casefolded(self) -> None:
        assert build_like_pattern("ÄRZTE Straße") == "%ärzte%strasse%"


class TestClampLimit:
    """Test result limit clamping."""

    def test_none_uses_default(self) -> None:
        assert clamp_limit(None, 10) == 10

    def test_large_limit_capped(self) -> None:
        assert clamp_limit(1000, 10) == 50

    @pytest.mark.parametrize("limit", [0, -1, -100])
    def test_small_limit_raised_to_one(self, limit: int) -> None:
        assert clamp_limit(limit, 10) == 1

    def test_in_range_unchanged(self) -> None:
        assert clamp_limit(7, 10) == 7

    def test_numeric_string_accepted(self) -> None:
        assert clamp_limit("7", 10) == 7

    @pytest.mark.parametrize("limit", ["many", [5], object()])
    def test_non_numeric_limit_rejected(self, limit) -> None:
        """Test that a malformed limit is a validation error, not a ValueError."""
        with pytest.raises(InvalidQueryError):
            clamp_limit(limit, 10)


# ============================================================================
# Entity Tests
# ============================================================================


class TestEntityUpsert:
    """Test entity create and update semantics."""

    def test_create_and_get_entity(self, store: SQLiteStore) -> None:
        """Test creating an entity and reading it back."""
        processed = store.upsert_entities(
            [make_entity("Claude", "AI Assistant", "Made by Anthropic", "Helpful")]
        )

        assert processed == 1
        entity = store.get_entity("Claude")
        assert entity.name == "Claude"
        assert entity.entity_type == "AI Assistant"
        assert entity.observations == ["Made by Anthropic", "Helpful"]
        assert entity.created_at is not None
        assert entity.embedding is None

    def test_upsert_replaces_observations(self, store: SQLiteStore) -> None:
        """Test that a second upsert replaces, not merges, observations."""
        store.upsert_entities([make_entity("A", "t", "one", "two")])
        store.upsert_entities([make_entity("A", "t", "three")])

        assert store.get_entity("A").observations == ["three"]
        assert _observation_count(store) == 1

    def test_upsert_updates_type(self, store: SQLiteStore) -> None:
        """Test that an existing entity's type is updated."""
        store.upsert_entities([make_entity("A", "person")])
        store.upsert_entities([make_entity("A", "company")])

        assert store.get_entity("A").entity_type == "company"
        assert store.count_entities() == 1

    def test_created_at_immutable(self, store: SQLiteStore) -> None:
        """Test that created_at survives an upsert."""
        store.upsert_entities([make_entity("A")])
        first = store.get_entity("A").created_at
        time.sleep(0.01)
        store.upsert_entities([make_entity("A", "other", "changed")])

        assert store.get_entity("A").created_at == first

    def test_duplicate_observations_collapsed(self, store: SQLiteStore) -> None:
        """Test that repeated observations are stored once, in first-seen order."""
        store.upsert_entities([make_entity("A", "t", "b", "a", "b")])

        assert store.get_entity("A").observations == ["b", "a"]

    def test_snake_case_type_key_accepted(self, store: SQLiteStore) -> None:
        """Test that entity_type is accepted as an alternative key."""
        store.upsert_entities([{"name": "A", "entity_type": "t", "observations": ["x"]}])

        assert store.get_entity("A").entity_type == "t"

    def test_empty_batch(self, store: SQLiteStore) -> None:
        """Test that an empty batch processes nothing."""
        assert store.upsert_entities([]) == 0


class TestEntityValidation:
    """Test that invalid batches are rejected without partial writes."""

    @pytest.mark.parametrize(
        "bad",
        [
            {"name": "", "entityType": "t", "observations": ["x"]},
            {"name": "   ", "entityType": "t", "observations": ["x"]},
            {"entityType": "t", "observations": ["x"]},
            {"name": "B", "entityType": "", "observations": ["x"]},
            {"name": "B", "entityType": "t", "observations": []},
            {"name": "B", "entityType": "t"},
            {"name": "B", "entityType": "t", "observations": ["ok", ""]},
            {"name": "B", "entityType": "t", "observations": ["ok", 3]},
            {"name": "B", "entityType": "t", "observations": "not a list"},
            "not an object",
        ],
    )
    def test_invalid_item_rejects_whole_batch(self, store: SQLiteStore, bad) -> None:
        """Test that one malformed item aborts the whole batch."""
        with pytest.raises(InvalidEntityError):
            store.upsert_entities([make_entity("A"), bad])

        assert store.count_entities() == 0
        assert _observation_count(store) == 0

    def test_error_message_names_entity(self, store: SQLiteStore) -> None:
        """Test that validation messages identify the offending entity."""
        with pytest.raises(InvalidEntityError, match='Entity "B" must have at least one observation'):
            store.upsert_entities([{"name": "B", "entityType": "t", "observations": []}])

    def test_embedding_unsupported_on_text_store(self, store: SQLiteStore) -> None:
        """Test that a text-only store rejects embeddings before writing."""
        with pytest.raises(UnsupportedOperationError):
            store.upsert_entities(
                [make_entity("A"), make_entity("B", embedding=[0.1, 0.2, 0.3, 0.4])]
            )

        assert store.count_entities() == 0


class TestEntityReads:
    """Test entity lookup and recency ordering."""

    def test_get_missing_entity(self, store: SQLiteStore) -> None:
        """Test that a missing entity raises EntityNotFoundError."""
        with pytest.raises(EntityNotFoundError, match="Entity not found: ghost"):
            store.get_entity("ghost")

    def test_get_entities_skips_missing(self, store: SQLiteStore) -> None:
        """Test that get_entities keeps request order and skips unknown names."""
        store.upsert_entities([make_entity("A"), make_entity("B"), make_entity("C")])

        entities = store.get_entities(["C", "ghost", "A", "C"])

        assert [e.name for e in entities] == ["C", "A"]

    def test_recent_entities_newest_first(self, store: SQLiteStore) -> None:
        """Test that recent entities are ordered newest first."""
        for name in ["first", "second", "third"]:
            store.upsert_entities([make_entity(name)])

        recent = store.get_recent_entities(10)

        assert [e.name for e in recent] == ["third", "second", "first"]

    def test_recent_entities_tie_broken_by_insertion(self, store: SQLiteStore) -> None:
        """Test that equal timestamps fall back to insertion order, newest first."""
        store.upsert_entities([make_entity(name) for name in ["a", "b", "c"]])
        with store.transaction() as cursor:
            cursor.execute("UPDATE entities SET created_at = 1000.0")

        assert [e.name for e in store.get_recent_entities()] == ["c", "b", "a"]

    def test_recent_entities_limit(self, store: SQLiteStore) -> None:
        """Test the recent entity limit, including non-positive values."""
        store.upsert_entities([make_entity(f"e{i}") for i in range(5)])

        assert len(store.get_recent_entities(3)) == 3
        assert store.get_recent_entities(0) == []


class TestEntityDelete:
    """Test cascading entity deletion."""

    def test_delete_cascades(self, store: SQLiteStore) -> None:
        """Test that deleting A removes its observations and every relation naming it."""
        store.upsert_entities([make_entity("A", "t", "a1", "a2"), make_entity("B", "t", "b1")])
        store.create_relations(
            [
                {"from": "A", "to": "B", "relationType": "knows"},
                {"from": "B", "to": "A", "relationType": "knows"},
                {"from": "B", "to": "B", "relationType": "self"},
            ]
        )

        store.delete_entity("A")

        with pytest.raises(EntityNotFoundError):
            store.get_entity("A")
        assert _observation_count(store) == 1
        assert [r.relation_type for r in store.get_relations_for_entities(["A", "B"])] == ["self"]

    def test_delete_missing_entity(self, store: SQLiteStore) -> None:
        """Test that deleting an unknown entity raises EntityNotFoundError."""
        with pytest.raises(EntityNotFoundError):
            store.delete_entity("ghost")


# ============================================================================
# Relation Tests
# ============================================================================


class TestRelations:
    """Test relation creation, lookup and deletion."""

    def test_duplicate_relation_absorbed(self, store: SQLiteStore) -> None:
        """Test that the same triple twice is stored once."""
        relation = {"from": "A", "to": "B", "relationType": "knows"}

        assert store.create_relations([relation]) == 1
        assert store.create_relations([relation]) == 0
        assert store.count_relations() == 1

    def test_duplicate_within_batch(self, store: SQLiteStore) -> None:
        """Test that duplicates inside one batch are absorbed too."""
        relation = {"from": "A", "to": "B", "relationType": "knows"}

        assert store.create_relations([relation, dict(relation)]) == 1

    def test_distinct_types_are_distinct_relations(self, store: SQLiteStore) -> None:
        """Test that relation identity includes the type."""
        created = store.create_relations(
            [
                {"from": "A", "to": "B", "relationType": "knows"},
                {"from": "A", "to": "B", "relationType": "likes"},
                {"from": "B", "to": "A", "relationType": "knows"},
            ]
        )

        assert created == 3

    def test_source_target_type_keys_accepted(self, store: SQLiteStore) -> None:
        """Test the alternative source/target/type key names."""
        store.create_relations([{"source": "A", "target": "B", "type": "knows"}])

        relation = store.get_relations_for_entities(["A"])[0]
        assert (relation.source, relation.target, relation.relation_type) == ("A", "B", "knows")

    def test_relations_need_not_reference_existing_entities(self, store: SQLiteStore) -> None:
        """Test that relations are soft references."""
        assert store.create_relations([{"from": "X", "to": "Y", "relationType": "r"}]) == 1

    def test_blank_relation_field_rejected(self, store: SQLiteStore) -> None:
        """Test that blank fields abort the whole batch."""
        with pytest.raises(InvalidRelationError):
            store.create_relations(
                [
                    {"from": "A", "to": "B", "relationType": "knows"},
                    {"from": "A", "to": "", "relationType": "knows"},
                ]
            )

        assert store.count_relations() == 0

    def test_empty_batch(self, store: SQLiteStore) -> None:
        assert store.create_relations([]) == 0

    def test_relations_for_entities(self, store: SQLiteStore) -> None:
        """Test that relations touching the set are returned as source or target."""
        store.create_relations(
            [
                {"from": "A", "to": "B", "relationType": "r1"},
                {"from": "C", "to": "A", "relationType": "r2"},
                {"from": "C", "to": "D", "relationType": "r3"},
            ]
        )

        relations = store.get_relations_for_entities(["A"])

        assert [r.relation_type for r in relations] == ["r1", "r2"]
        assert store.get_relations_for_entities([]) == []

    def test_delete_relation(self, store: SQLiteStore) -> None:
        """Test deleting an exact triple."""
        store.create_relations(
            [
                {"from": "A", "to": "B", "relationType": "knows"},
                {"from": "A", "to": "B", "relationType": "likes"},
            ]
        )

        store.delete_relation("A", "B", "knows")

        assert [r.relation_type for r in store.get_relations_for_entities(["A"])] == ["likes"]

    def test_delete_missing_relation(self, store: SQLiteStore) -> None:
        """Test that deleting an unknown triple raises RelationNotFoundError."""
        store.create_relations([{"from": "A", "to": "B", "relationType": "knows"}])

        with pytest.raises(RelationNotFoundError, match=r"Relation not found: B -> A \(knows\)"):
            store.delete_relation("B", "A", "knows")


# ============================================================================
# Text Search Tests
# ============================================================================


class TestTextSearch:
    """Test relevance-ranked text search."""

    def test_separator_equivalence(self, store: SQLiteStore) -> None:
        """Test that web-development matches both web_development and web development."""
        store.upsert_entities(
            [
                make_entity("Alice", "web_development"),
                make_entity("Bob", "web development"),
                make_entity("Carol", "webdesign"),
            ]
        )

        names = {e.name for e in store.search_entities("web-development")}

        assert names == {"Alice", "Bob"}

    def test_rank_order_name_type_observation(self, store: SQLiteStore) -> None:
        """Test that name matches outrank type matches, which outrank observations."""
        # Created in reverse rank order so recency cannot explain the result
        store.upsert_entities([make_entity("X foo", "thing", "plain")])
        store.upsert_entities([make_entity("Y", "foo type", "plain")])
        store.upsert_entities([make_entity("Z", "thing", "mentions foo")])

        assert [e.name for e in store.search_entities("foo")] == ["X foo", "Y", "Z"]

    def test_ties_broken_by_recency(self, store: SQLiteStore) -> None:
        """Test that equally ranked matches come newest first."""
        store.upsert_entities([make_entity("foo old")])
        store.upsert_entities([make_entity("foo new")])

        assert [e.name for e in store.search_entities("foo")] == ["foo new", "foo old"]

    def test_case_insensitive(self, store: SQLiteStore) -> None:
        store.upsert_entities([make_entity("Anthropic", "Company")])

        assert [e.name for e in store.search_entities("ANTHROPIC")] == ["Anthropic"]

    def test_entity_appears_once(self, store: SQLiteStore) -> None:
        """Test that an entity matching in several fields is returned once."""
        store.upsert_entities([make_entity("foo", "foo", "foo one", "foo two")])

        assert len(store.search_entities("foo")) == 1

    def test_limit_clamped(self, store: SQLiteStore) -> None:
        """Test that limits are clamped into [1, 50] and default to 10."""
        store.upsert_entities([make_entity(f"match {i}") for i in range(60)])

        assert len(store.search_entities("match", limit=1000)) == 50
        assert len(store.search_entities("match", limit=0)) == 1
        assert len(store.search_entities("match", limit=-5)) == 1
        assert len(store.search_entities("match")) == 10

    def test_percent_is_literal(self, store: SQLiteStore) -> None:
        """Test that % in a query matches a literal percent sign."""
        store.upsert_entities(
            [
                make_entity("Sale", "promo", "100% off"),
                make_entity("Stock", "inventory", "100 items"),
            ]
        )

        assert [e.name for e in store.search_entities("100%")] == ["Sale"]

    def test_no_match(self, store: SQLiteStore) -> None:
        store.upsert_entities([make_entity("A")])

        assert store.search_entities("zzz") == []

    def test_blank_query_rejected(self, store: SQLiteStore) -> None:
        with pytest.raises(InvalidQueryError):
            store.search_entities("   ")

    def test_separator_only_query_matches_nothing(self, store: SQLiteStore) -> None:
        store.upsert_entities([make_entity("A"), make_entity("B")])

        with pytest.raises(InvalidQueryError):
            store.search_entities("-")

    def test_non_ascii_case_insensitive(self, store: SQLiteStore) -> None:
        """Test that case folding covers letters beyond ASCII."""
        store.upsert_entities(
            [make_entity("Ärzte", "Verband"), make_entity("Öl", "Rohstoff", "GROSSE Menge")]
        )

        assert [e.name for e in store.search_entities("ärzte")] == ["Ärzte"]
        assert [e.name for e in store.search_entities("ROHSTOFF")] == ["Öl"]
        assert [e.name for e in store.search_entities("große")] == ["Öl"]

    def test_bad_limit_rejected(self, store: SQLiteStore) -> None:
        with pytest.raises(InvalidQueryError):
            store.search_entities("A", limit="many")  # type: ignore[arg-type]


# ============================================================================
# Lifecycle Tests
# ============================================================================


class TestLifecycle:
    """Test connection lifecycle, schema and transactions."""

    def test_schema_version(self, store: SQLiteStore) -> None:
        assert store.schema_version() == 1

    def test_reopen_persists_data(self, tmp_path: Path) -> None:
        """Test that a file-backed store keeps data across reopen."""
        db_path = tmp_path / "nested" / "memory.db"
        with SQLiteStore(db_path) as s:
            s.upsert_entities([make_entity("A")])

        with SQLiteStore(db_path) as s:
            assert s.get_entity("A").name == "A"
            assert s.schema_version() == 1

    def test_close_is_idempotent(self) -> None:
        s = SQLiteStore(Path(":memory:"))
        s.close()
        s.close()

        assert s.closed

    def test_operations_after_close_fail(self) -> None:
        """Test that a closed store raises StorageError."""
        s = SQLiteStore(Path(":memory:"))
        s.close()

        with pytest.raises(StorageError):
            s.count_entities()

    def test_transaction_rolls_back_on_error(self, store: SQLiteStore) -> None:
        """Test that a failing transaction leaves no partial writes."""
        with pytest.raises(RuntimeError):
            with store.transaction() as cursor:
                cursor.execute(
                    "INSERT INTO entities (name, entity_type, created_at) VALUES ('A', 't', 0)"
                )
                raise RuntimeError("boom")

        assert store.count_entities() == 0

    @pytest.mark.parametrize("interrupt", [KeyboardInterrupt, SystemExit])
    def test_transaction_rolls_back_on_interrupt(self, store: SQLiteStore, interrupt) -> None:
        """Test that an interrupted transaction is rolled back and the store stays usable."""
        with pytest.raises(interrupt):
            with store.transaction() as cursor:
                cursor.execute(
                    "INSERT INTO entities (name, entity_type, created_at) VALUES ('A', 't', 0)"
                )
                raise interrupt()

        assert store.count_entities() == 0
        assert store.upsert_entities([make_entity("B")]) == 1
        assert store.get_entity("B").name == "B"

    def test_unopenable_path_raises_storage_error(self, tmp_path: Path) -> None:
        """Test that a directory path cannot be opened as a database."""
        with pytest.raises(StorageError):
            SQLiteStore(tmp_path)
