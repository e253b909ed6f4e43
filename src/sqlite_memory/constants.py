"""sqlite-memory constants.

Implementation details that are not user configurable. User settings live
in config.py and are read from the environment (.env).
"""

from pathlib import Path

# Default embedding width (OpenAI ada-002 / text-embedding-3-small compatible)
VECTOR_DIMENSIONS = 1536

# Bytes per stored vector component (float32)
FLOAT32_SIZE = 4

# Text search result limits
DEFAULT_SEARCH_LIMIT = 10
MAX_SEARCH_LIMIT = 50

# Vector search returns fewer results by default
DEFAULT_VECTOR_LIMIT = 5

# read_graph snapshot size
DEFAULT_RECENT_LIMIT = 10

DEFAULT_DB_PATH = Path("./sqlite-memory.db")

# Bumped whenever _init_schema changes shape
SCHEMA_VERSION = 1

# SQLite busy timeout in milliseconds
BUSY_TIMEOUT_MS = 10000
