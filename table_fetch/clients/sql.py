"""
SQL client acting as the connection provider for fetch invocations.

The client owns a SQLAlchemy engine (and so its connection pool). Each
invocation borrows one connection through :meth:`SQLClient.connection` and
returns it on every exit path. Blocking driver calls run in the event loop's
executor so a timeout can abandon them.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, Optional, Sequence, TypeVar

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine

from table_fetch.clients import ClientInterface
from table_fetch.common.exceptions import (
    DatabaseConnectionError,
    QueryTimeoutError,
)
from table_fetch.observability.logger_adaptor import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class SQLClient(ClientInterface):
    """SQL client for database operations.

    Attributes:
        engine: SQLAlchemy engine instance, created by :meth:`load`.
        sql_alchemy_connect_args (Dict[str, Any]): Extra DBAPI connect arguments.
        credentials (Dict[str, Any]): Parameters used to build the connection string.
        DB_CONFIG (Dict[str, Any]): Connection string template for subclasses.
    """

    engine: Optional[Engine] = None
    sql_alchemy_connect_args: Dict[str, Any] = {}
    credentials: Dict[str, Any] = {}
    DB_CONFIG: Dict[str, Any] = {}

    def __init__(
        self,
        credentials: Optional[Dict[str, Any]] = None,
        sql_alchemy_connect_args: Optional[Dict[str, Any]] = None,
    ):
        self.credentials = credentials or {}
        self.sql_alchemy_connect_args = sql_alchemy_connect_args or {}
        # id(connection) -> executor future still running on it after a timeout
        self._abandoned: Dict[int, "asyncio.Future[Any]"] = {}

    async def load(self, credentials: Optional[Dict[str, Any]] = None) -> None:
        """Create the engine.

        Args:
            credentials: Connection parameters; replaces those given at construction.

        Raises:
            DatabaseConnectionError: If the engine cannot be created.
        """
        if credentials is not None:
            self.credentials = credentials
        try:
            self.engine = create_engine(
                self.get_sqlalchemy_connection_string(),
                connect_args=self.sql_alchemy_connect_args,
                pool_pre_ping=True,
            )
        except Exception as e:
            logger.error(f"Error loading SQL client: {str(e)}")
            self.engine = None
            raise DatabaseConnectionError(str(e))

    async def close(self) -> None:
        """Dispose of the engine and its pooled connections."""
        if self.engine:
            self.engine.dispose()
            self.engine = None

    def add_connection_params(
        self, connection_string: str, source_connection_params: Dict[str, Any]
    ) -> str:
        """Append query parameters to the connection string."""
        for key, value in source_connection_params.items():
            if "?" not in connection_string:
                connection_string += "?"
            else:
                connection_string += "&"
            connection_string += f"{key}={value}"

        return connection_string

    def get_sqlalchemy_connection_string(self) -> str:
        """
        Get the SQLAlchemy connection string.

        A ``connection_string`` credential is used verbatim. Otherwise the string is
        built from ``DB_CONFIG``:

        {
            "template": "postgresql+psycopg2://{username}:{password}@{host}:{port}/{database}",
            "required": ["username", "password", "host", "port", "database"],
            "defaults": {"connect_timeout": 5}
        }

        Raises:
            DatabaseConnectionError: If neither form is available or a parameter is missing.
        """
        if self.credentials.get("connection_string"):
            return self.credentials["connection_string"]
        if not self.DB_CONFIG:
            raise DatabaseConnectionError("no connection_string or DB_CONFIG provided")

        missing = [p for p in self.DB_CONFIG["required"] if p not in self.credentials]
        if missing:
            raise DatabaseConnectionError(f"missing connection parameters: {missing}")

        param_values = {p: self.credentials[p] for p in self.DB_CONFIG["required"]}
        conn_str = self.DB_CONFIG["template"].format(**param_values)

        if self.DB_CONFIG.get("defaults"):
            conn_str = self.add_connection_params(conn_str, self.DB_CONFIG["defaults"])

        return conn_str

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[Connection]:
        """Borrow a pooled connection for the duration of the block.

        A connection whose statement timed out may still be in use by an
        executor thread when the block exits. It is then invalidated and
        closed once that thread finishes, never while it runs.

        Raises:
            DatabaseConnectionError: If the client is not loaded or the pool
                cannot supply a connection.
        """
        if not self.engine:
            raise DatabaseConnectionError("SQL client is not loaded")

        loop = asyncio.get_running_loop()
        try:
            connection = await loop.run_in_executor(None, self.engine.connect)
        except Exception as e:
            logger.error(f"Failed to acquire connection: {str(e)}")
            raise DatabaseConnectionError(str(e))

        try:
            yield connection
        finally:
            abandoned = self._abandoned.pop(id(connection), None)
            if abandoned is None:
                connection.close()
            elif abandoned.done():
                self._discard(connection, abandoned)
            else:
                abandoned.add_done_callback(
                    lambda future: self._discard(connection, future)
                )

    def _discard(self, connection: Connection, future: "asyncio.Future[Any]") -> None:
        if not future.cancelled() and future.exception() is not None:
            logger.warning(f"Timed out statement ended with: {future.exception()}")
        connection.invalidate()
        connection.close()

    def _cancel_statement(self, connection: Connection) -> None:
        """Ask the driver to abort the statement running on ``connection``.

        Uses ``cancel()`` (psycopg2, pyodbc, oracledb) or ``interrupt()``
        (sqlite3), both safe to call from another thread.
        """
        dbapi_connection = connection.connection.dbapi_connection
        for name in ("cancel", "interrupt"):
            cancel = getattr(dbapi_connection, name, None)
            if callable(cancel):
                try:
                    cancel()
                except Exception as e:
                    logger.warning(f"Driver could not cancel the statement: {str(e)}")
                return
        logger.warning("Driver has no cancel, statement will run to completion")

    async def run_in_connection(
        self,
        connection: Connection,
        func: Callable[[Connection], T],
        timeout: Optional[float] = None,
    ) -> T:
        """Run blocking ``func(connection)`` in the executor.

        On timeout the driver is asked to cancel the statement and the
        connection is handed back to :meth:`connection` for disposal once the
        executor thread is done with it.

        Args:
            connection: Connection borrowed from :meth:`connection`.
            func: Callable doing the driver work.
            timeout: Seconds to wait; ``None`` or ``0`` waits indefinitely.

        Raises:
            QueryTimeoutError: If ``timeout`` elapses first.
        """
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, func, connection)
        if not timeout:
            return await future
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=timeout)
        except asyncio.TimeoutError:
            self._abandoned[id(connection)] = future
            self._cancel_statement(connection)
            raise QueryTimeoutError(f"query did not finish within {timeout}s")

    async def fetch_one(
        self,
        connection: Connection,
        query: str,
        timeout: Optional[float] = None,
    ) -> Optional[Sequence[Any]]:
        """Execute ``query`` and return its first row, or None when empty."""
        logger.debug(f"Running query: {query}")

        def _execute(conn: Connection) -> Optional[Sequence[Any]]:
            row = conn.execute(text(query)).fetchone()
            return tuple(row) if row is not None else None

        try:
            return await self.run_in_connection(connection, _execute, timeout)
        except QueryTimeoutError:
            raise
        except Exception as e:
            logger.error(f"Error running query: {str(e)}")
            raise
