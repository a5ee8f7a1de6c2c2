import asyncio
import threading
from unittest.mock import MagicMock, patch

import pytest

from table_fetch.clients.sql import SQLClient
from table_fetch.common.exceptions import DatabaseConnectionError, QueryTimeoutError
from tests.helpers import execute_statements

SLOW_QUERY = (
    "WITH RECURSIVE counter(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM counter "
    "WHERE x < 50000000) SELECT COUNT(*) FROM counter"
)


class PostgresClient(SQLClient):
    DB_CONFIG = {
        "template": "postgresql+psycopg2://{username}:{password}@{host}:{port}/{database}",
        "required": ["username", "password", "host", "port", "database"],
        "defaults": {"connect_timeout": 5},
    }


class TestConnectionString:
    def test_explicit_connection_string(self):
        client = SQLClient(credentials={"connection_string": "sqlite://"})
        assert client.get_sqlalchemy_connection_string() == "sqlite://"

    def test_template(self):
        client = PostgresClient(
            credentials={
                "username": "fetch",
                "password": "secret",
                "host": "db",
                "port": 5432,
                "database": "shop",
            }
        )
        assert (
            client.get_sqlalchemy_connection_string()
            == "postgresql+psycopg2://fetch:secret@db:5432/shop?connect_timeout=5"
        )

    def test_missing_parameter(self):
        client = PostgresClient(credentials={"username": "fetch"})
        with pytest.raises(DatabaseConnectionError):
            client.get_sqlalchemy_connection_string()

    def test_nothing_configured(self):
        with pytest.raises(DatabaseConnectionError):
            SQLClient().get_sqlalchemy_connection_string()

    def test_add_connection_params(self):
        client = SQLClient()
        assert (
            client.add_connection_params("db://h/x?a=1", {"b": 2, "c": 3})
            == "db://h/x?a=1&b=2&c=3"
        )


class TestLoad:
    @patch("table_fetch.clients.sql.create_engine")
    async def test_load_creates_engine(self, create_engine):
        client = SQLClient(
            credentials={"connection_string": "sqlite://"},
            sql_alchemy_connect_args={"check_same_thread": False},
        )
        await client.load()

        create_engine.assert_called_once_with(
            "sqlite://",
            connect_args={"check_same_thread": False},
            pool_pre_ping=True,
        )
        assert client.engine is create_engine.return_value

    @patch("table_fetch.clients.sql.create_engine")
    async def test_load_failure(self, create_engine):
        create_engine.side_effect = Exception("bad url")
        client = SQLClient(credentials={"connection_string": "nope://"})
        with pytest.raises(DatabaseConnectionError):
            await client.load()
        assert client.engine is None

    async def test_close_disposes_engine(self):
        client = SQLClient()
        engine = MagicMock()
        client.engine = engine
        await client.close()
        engine.dispose.assert_called_once()
        assert client.engine is None


class TestQueries:
    async def test_connection_requires_load(self):
        with pytest.raises(DatabaseConnectionError):
            async with SQLClient().connection():
                pass

    async def test_fetch_one(self, sqlite_client):
        execute_statements(
            sqlite_client,
            "CREATE TABLE t (id INTEGER)",
            "INSERT INTO t VALUES (1), (4)",
        )
        async with sqlite_client.connection() as connection:
            row = await sqlite_client.fetch_one(
                connection, "SELECT COUNT(*), MAX(id) FROM t"
            )
            empty = await sqlite_client.fetch_one(
                connection, "SELECT id FROM t WHERE id > 10"
            )
        assert row == (2, 4)
        assert empty is None

    async def test_fetch_one_propagates_errors(self, sqlite_client):
        async with sqlite_client.connection() as connection:
            with pytest.raises(Exception):
                await sqlite_client.fetch_one(connection, "SELECT * FROM missing")

    async def test_timeout_cancels_statement_and_discards_connection(
        self, sqlite_client
    ):
        async with sqlite_client.connection() as connection:
            with pytest.raises(QueryTimeoutError):
                await sqlite_client.fetch_one(connection, SLOW_QUERY, timeout=0.2)
            assert not connection.closed

        for _ in range(200):
            if connection.closed:
                break
            await asyncio.sleep(0.05)
        assert connection.closed

        async with sqlite_client.connection() as fresh:
            assert await sqlite_client.fetch_one(fresh, "SELECT 1") == (1,)

    async def test_close_waits_for_worker_thread(self):
        client = SQLClient()
        client.engine = MagicMock()
        connection = client.engine.connect.return_value
        release = threading.Event()

        async with client.connection():
            with pytest.raises(QueryTimeoutError):
                await client.run_in_connection(
                    connection, lambda conn: release.wait(5), timeout=0.05
                )
        connection.close.assert_not_called()

        release.set()
        for _ in range(100):
            if connection.close.called:
                break
            await asyncio.sleep(0.01)
        connection.invalidate.assert_called_once()
        connection.close.assert_called_once()

    async def test_connection_closed_on_error(self):
        client = SQLClient()
        client.engine = MagicMock()
        connection = client.engine.connect.return_value

        with pytest.raises(RuntimeError):
            async with client.connection():
                raise RuntimeError("boom")
        connection.close.assert_called_once()
