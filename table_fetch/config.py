"""Configuration settings for table-fetch using Pydantic."""

from functools import lru_cache
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict

from table_fetch.constants import (
    DEFAULT_PAGE_SIZE,
    LOG_LEVEL,
    QUERY_TIMEOUT_SECONDS,
    STATE_COMPONENT_ID,
    STATE_STORE_BACKEND,
    STATE_STORE_FILE_PATH,
    STATE_STORE_NAME,
)


class TableFetchSettings(BaseSettings):
    """Central configuration for table-fetch.

    This class uses Pydantic's BaseSettings which allows for configuration via environment
    variables and/or direct assignment. Environment variables take precedence over defaults.

    Environment Variables:
        TABLE_FETCH_DEFAULT_PAGE_SIZE: Rows per generated page when none is configured
        TABLE_FETCH_QUERY_TIMEOUT_SECONDS: Timeout applied to count and metadata queries (0 disables)
        TABLE_FETCH_STATE_STORE_BACKEND: One of ``memory``, ``file`` or ``dapr``
    """

    model_config = SettingsConfigDict(
        env_prefix="TABLE_FETCH_",
        case_sensitive=False,
        extra="allow",
    )

    default_page_size: int = DEFAULT_PAGE_SIZE
    query_timeout_seconds: float = QUERY_TIMEOUT_SECONDS

    # State store settings
    state_store_backend: str = STATE_STORE_BACKEND
    state_file_path: str = STATE_STORE_FILE_PATH
    state_component_id: str = STATE_COMPONENT_ID
    dapr_state_store_name: str = STATE_STORE_NAME

    log_level: str = LOG_LEVEL

    @classmethod
    def get_settings(cls, **kwargs: Any) -> "TableFetchSettings":
        """Create settings with optional overrides."""
        return cls(**kwargs)


# Global settings instance with default values
settings = TableFetchSettings()


@lru_cache()
def get_settings() -> TableFetchSettings:
    """Get the global settings instance.

    Returns:
        TableFetchSettings: The global settings instance.

    Note:
        This function is cached to avoid re-reading environment variables.
        To refresh settings, call get_settings.cache_clear()
    """
    return settings


def configure_settings(**kwargs: Any) -> None:
    """Configure global settings with overrides.

    Args:
        **kwargs: Keyword arguments to override default settings.

    Example:
        >>> configure_settings(default_page_size=500, state_store_backend="file")
    """
    global settings
    settings = TableFetchSettings.get_settings(**kwargs)
    get_settings.cache_clear()
