"""Pytest configuration and shared fixtures for sqlite-memory tests.

This module provides reusable fixtures for testing:
- env_setup: (autouse) Sets SQLITE_* environment variables
- store: In-memory text-only SQLiteStore
- vector_store: In-memory VectorSQLiteStore with 4-dimensional embeddings
- graph / vector_graph: KnowledgeGraph over each store
- tools: GraphTools over the vector graph

Usage:
    def test_something(store, graph):
        # Tests run against a fresh in-memory database
        pass
"""

import os
from collections.abc import Generator
from pathlib import Path

import pytest

from sqlite_memory.graph import KnowledgeGraph
from sqlite_memory.storage import SQLiteStore, VectorSQLiteStore
from sqlite_memory.tools import GraphTools

# Small width keeps vector fixtures readable
TEST_DIMENSIONS = 4


@pytest.fixture(autouse=True)
def env_setup() -> Generator[None, None, None]:
    """Set environment variables for all tests.

    This fixture runs automatically before each test so that settings
    never pick up a developer's real database or .env values.
    """
    env_vars = {
        "SQLITE_DB_PATH": ":memory:",
        "SQLITE_ENABLE_VECTOR": "true",
        "SQLITE_VECTOR_DIMENSIONS": str(TEST_DIMENSIONS),
        "SQLITE_LOG_LEVEL": "WARNING",
    }
    # Store original values
    original = {k: os.environ.get(k) for k in env_vars}
    # Set test values
    os.environ.update(env_vars)
    yield
    # Restore original values
    for key, value in original.items():
        if value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = value


# Configure pytest-asyncio
pytest_plugins = ["pytest_asyncio"]


@pytest.fixture
def store() -> Generator[SQLiteStore, None, None]:
    """Provide an in-memory text-only SQLiteStore.

    Yields:
        SQLiteStore: Fresh store, closed after the test
    """
    s = SQLiteStore(Path(":memory:"))
    yield s
    s.close()


@pytest.fixture
def vector_store() -> Generator[VectorSQLiteStore, None, None]:
    """Provide an in-memory VectorSQLiteStore with sqlite-vec loaded.

    Yields:
        VectorSQLiteStore: Fresh store with TEST_DIMENSIONS-wide embeddings
    """
    s = VectorSQLiteStore(Path(":memory:"), vector_dimensions=TEST_DIMENSIONS)
    yield s
    s.close()


@pytest.fixture
def graph(store: SQLiteStore) -> KnowledgeGraph:
    """KnowledgeGraph over the text-only store."""
    return KnowledgeGraph(store)


@pytest.fixture
def vector_graph(vector_store: VectorSQLiteStore) -> KnowledgeGraph:
    """KnowledgeGraph over the vector-enabled store."""
    return KnowledgeGraph(vector_store)


@pytest.fixture
def tools(vector_graph: KnowledgeGraph) -> GraphTools:
    """GraphTools wired to the vector-enabled graph."""
    return GraphTools(vector_graph)


def make_entity(name: str, entity_type: str = "thing", *observations: str, **extra) -> dict:
    """Build an entity record in the wire shape accepted by the store."""
    record = {
        "name": name,
        "entityType": entity_type,
        "observations": list(observations) or [f"{name} exists"],
    }
    record.update(extra)
    return record
