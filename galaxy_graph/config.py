"""
Configuration module for the Galaxy Notes knowledge graph.

Uses pydantic-settings for configuration management with environment variable support.
Environment variables use GALAXY_ prefix (e.g., GALAXY_STORE_PATH).
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _get_default_data_dir() -> Path:
    """Get default data directory for the store export and vector index."""
    return Path.home() / ".galaxy-notes"


def _get_default_store_path() -> Path:
    return _get_default_data_dir() / "store.json"


def _get_default_index_path() -> Path:
    return _get_default_data_dir() / "galaxy_vectors.npz"


DEFAULT_RELATIONSHIP_TYPES = [
    "Mentions",
    "Supports",
    "Contradicts",
    "Related To",
    "Extends",
    "Depends On",
    "Example Of",
    "Part Of",
]


class Settings(BaseSettings):
    """Application settings with environment variable support.

    Environment variables:
    - GALAXY_STORE_PATH: JSON export of notes, folders and clusters
    - GALAXY_INDEX_PATH: File holding the persisted similarity index
    - GALAXY_CACHE_TTL: Seconds before the store export is checked again
    - GALAXY_EMBEDDING_DIMENSION: Length of note embedding vectors
    - GALAXY_DEFAULT_RELATIONSHIP: Relationship used by unqualified wiki links
    - GALAXY_RELATIONSHIP_TYPES: JSON list of known relationship names
    - GALAXY_ROOT_FOLDER_ID: Folder id that owns notes at the root path
    - GALAXY_MAX_SEARCH_RESULTS: Maximum search results
    - GALAXY_LOG_LEVEL: Minimum log level
    """

    store_path: Path = Field(default_factory=_get_default_store_path)
    index_path: Path = Field(default_factory=_get_default_index_path)
    cache_ttl: int = 60
    embedding_dimension: int = 384
    default_relationship: str = "Mentions"
    relationship_types: list[str] = Field(default_factory=lambda: list(DEFAULT_RELATIONSHIP_TYPES))
    root_folder_id: str = "root"
    root_path: str = "/"
    max_search_results: int = 50
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="GALAXY_")


# Global settings instance
settings = Settings()
