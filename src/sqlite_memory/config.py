"""Configuration settings for the sqlite-memory MCP server.

This module provides Pydantic Settings for configuration management.
All settings are loaded from environment variables with the SQLITE_ prefix
(for example SQLITE_DB_PATH) or from a .env file in the working directory.
"""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sqlite_memory.constants import DEFAULT_DB_PATH, VECTOR_DIMENSIONS

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class MemorySettings(BaseSettings):
    """Configuration settings for the sqlite-memory MCP server.

    Attributes:
        db_path: Path to the SQLite database file
        enable_vector: Whether to build the store with vector search
        vector_dimensions: Embedding width enforced on writes and queries
        log_level: Logging level
    """

    model_config = SettingsConfigDict(
        env_prefix="SQLITE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Allow extra env vars without error
    )

    db_path: Path = Field(
        default=DEFAULT_DB_PATH,
        description="Path to SQLite database",
    )
    enable_vector: bool = Field(
        default=True,
        description="Load sqlite-vec and enable embedding storage and vector search",
    )
    vector_dimensions: int = Field(
        default=VECTOR_DIMENSIONS,
        ge=1,
        description="Embedding dimensionality",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {v!r}")
        return level

    def get_db_path(self) -> Path:
        """Get the database path, expanding user home.

        ':memory:' is passed through untouched.
        """
        if str(self.db_path) == ":memory:":
            return self.db_path
        return self.db_path.expanduser().resolve()
