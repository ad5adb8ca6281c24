"""Runtime settings for the schema registry.

Values are read from the environment (or a local ``.env`` file) through
pydantic-settings; ``get_settings`` caches a single instance per process.
"""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    SERVICE_NAME: str = "schema-registry"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Policy applied to groups created without an explicit one
    REGISTRY_DEFAULT_COMPATIBILITY: str = "full_transitive"

    # Optimistic-concurrency retries on the (group, type) tip
    REGISTRY_MAX_CONFLICT_RETRIES: int = 5
    REGISTRY_RETRY_MIN_WAIT_S: float = 0.01
    REGISTRY_RETRY_MAX_WAIT_S: float = 0.5

    # Upper bound for a whole registration, store I/O included
    REGISTRY_OPERATION_TIMEOUT_S: float = 10.0

    # Store JSON schemas in canonical (sorted keys, compact) form
    REGISTRY_NORMALIZE_JSON: bool = False

    # A JSON "type" change between versions is reported as TYPE_CHANGED
    JSON_TYPE_CHANGE_IS_BREAKING: bool = True

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore",
    }


_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings()
    return _settings_cache


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings_cache
    _settings_cache = None
