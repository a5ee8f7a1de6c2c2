from typing import Optional

from table_fetch.common.exceptions import ConfigurationError
from table_fetch.config import TableFetchSettings, get_settings
from table_fetch.state.backends import (
    DaprStateBackend,
    FileStateBackend,
    InMemoryStateBackend,
    StateBackend,
    StateScope,
    StateSnapshot,
)
from table_fetch.state.watermark_store import (
    WatermarkSnapshot,
    WatermarkStore,
    build_legacy_state_key,
    build_state_key,
    watermark_keys,
)


def create_state_backend(settings: Optional[TableFetchSettings] = None) -> StateBackend:
    """Build the backend named by ``settings.state_store_backend``."""
    settings = settings or get_settings()
    backend = settings.state_store_backend.lower()
    if backend == "memory":
        return InMemoryStateBackend()
    if backend == "file":
        return FileStateBackend(settings.state_file_path)
    if backend == "dapr":
        return DaprStateBackend(
            settings.state_component_id, settings.dapr_state_store_name
        )
    raise ConfigurationError(f"unknown state store backend '{backend}'")


__all__ = [
    "DaprStateBackend",
    "FileStateBackend",
    "InMemoryStateBackend",
    "StateBackend",
    "StateScope",
    "StateSnapshot",
    "WatermarkSnapshot",
    "WatermarkStore",
    "watermark_keys",
    "build_legacy_state_key",
    "build_state_key",
    "create_state_backend",
]
