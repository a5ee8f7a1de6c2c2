"""Global test configuration and fixtures."""

import pytest

from table_fetch.clients.sql import SQLClient
from table_fetch.config import TableFetchSettings
from table_fetch.outputs import CollectingSink
from table_fetch.state import InMemoryStateBackend, WatermarkStore


@pytest.fixture
async def sqlite_client(tmp_path):
    client = SQLClient(
        credentials={"connection_string": f"sqlite:///{tmp_path / 'fetch.db'}"},
        sql_alchemy_connect_args={"check_same_thread": False},
    )
    await client.load()
    yield client
    await client.close()


@pytest.fixture
def state_backend() -> InMemoryStateBackend:
    return InMemoryStateBackend()


@pytest.fixture
def watermark_store(state_backend: InMemoryStateBackend) -> WatermarkStore:
    return WatermarkStore(state_backend)


@pytest.fixture
def sink() -> CollectingSink:
    return CollectingSink()


@pytest.fixture
def settings() -> TableFetchSettings:
    return TableFetchSettings(default_page_size=10000, query_timeout_seconds=0)
