"""Resolution of column names to SQL type families.

Types are needed only to decide how a watermark literal is written. They are
read once per table through SQLAlchemy reflection and cached for the life of
the process; schema changes made after the first read are not picked up
until restart.
"""

import threading
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import inspect, types as sqltypes
from sqlalchemy.engine import Connection
from sqlalchemy.exc import DBAPIError, NoSuchTableError

from table_fetch.clients.sql import SQLClient
from table_fetch.common.exceptions import (
    ConfigurationError,
    DatabaseConnectionError,
    TableNotFoundError,
)
from table_fetch.models import SqlType
from table_fetch.observability.logger_adaptor import get_logger

logger = get_logger(__name__)


def canonical_name(name: str) -> str:
    return name.strip().lower()


def sql_type_for(column_type: sqltypes.TypeEngine) -> SqlType:
    """Map a reflected SQLAlchemy type to its :class:`SqlType` family.

    Example:
        >>> sql_type_for(sqltypes.Integer())
        <SqlType.NUMERIC: 'numeric'>
    """
    if isinstance(column_type, sqltypes.Boolean):
        return SqlType.OTHER
    if isinstance(column_type, (sqltypes.Integer, sqltypes.Numeric)):
        return SqlType.NUMERIC
    if isinstance(column_type, (sqltypes.Date, sqltypes.DateTime, sqltypes.Time)):
        return SqlType.TEMPORAL
    if isinstance(column_type, sqltypes.String):
        return SqlType.TEXT
    return SqlType.OTHER


class ColumnTypeCache:
    """Thread-safe map of table -> column -> :class:`SqlType`.

    Table and column names are stored in canonical (lower) case.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._tables: Dict[str, Dict[str, SqlType]] = {}

    def get(self, table_name: str) -> Dict[str, SqlType]:
        with self._lock:
            return dict(self._tables.get(canonical_name(table_name), {}))

    def lookup(self, table_name: str, column_name: str) -> Optional[SqlType]:
        with self._lock:
            columns = self._tables.get(canonical_name(table_name), {})
            return columns.get(canonical_name(column_name))

    def put(self, table_name: str, column_name: str, sql_type: SqlType) -> None:
        with self._lock:
            columns = self._tables.setdefault(canonical_name(table_name), {})
            columns[canonical_name(column_name)] = sql_type

    def put_table(self, table_name: str, columns: Dict[str, SqlType]) -> None:
        with self._lock:
            merged = self._tables.setdefault(canonical_name(table_name), {})
            merged.update({canonical_name(c): t for c, t in columns.items()})

    def contains_all(self, table_name: str, column_names: Iterable[str]) -> bool:
        with self._lock:
            columns = self._tables.get(canonical_name(table_name), {})
            return all(canonical_name(c) in columns for c in column_names)

    def invalidate(self, table_name: Optional[str] = None) -> None:
        with self._lock:
            if table_name is None:
                self._tables.clear()
            else:
                self._tables.pop(canonical_name(table_name), None)


def _split_table_name(table_name: str) -> Tuple[Optional[str], str]:
    schema, _, name = table_name.rpartition(".")
    return (schema or None), name


class SchemaIntrospector:
    """Resolve and cache column types for the tables being fetched."""

    def __init__(self, sql_client: SQLClient, cache: Optional[ColumnTypeCache] = None):
        self.sql_client = sql_client
        self.cache = cache if cache is not None else ColumnTypeCache()

    async def resolve_column_types(
        self,
        connection: Connection,
        table_name: str,
        required_columns: Iterable[str] = (),
        timeout: Optional[float] = None,
    ) -> Dict[str, SqlType]:
        """Return canonical column name -> type for ``table_name``.

        The cache answers when it already holds the table and every column in
        ``required_columns``; otherwise the table is reflected and merged in.

        Raises:
            TableNotFoundError: If the table does not exist.
            ConfigurationError: If a required column is not in the table.
        """
        required = list(required_columns)
        if self.cache.get(table_name) and self.cache.contains_all(table_name, required):
            return self.cache.get(table_name)

        logger.info(f"Introspecting columns of {table_name}")
        reflected = await self.sql_client.run_in_connection(
            connection, lambda conn: self._reflect(conn, table_name), timeout
        )
        self.cache.put_table(table_name, dict(reflected))

        column_types = self.cache.get(table_name)
        missing = [c for c in required if canonical_name(c) not in column_types]
        if missing:
            raise ConfigurationError(
                f"columns {missing} not found in table '{table_name}'"
            )
        return column_types

    def _reflect(self, connection: Connection, table_name: str) -> List[Tuple[str, SqlType]]:
        schema, name = _split_table_name(table_name)
        try:
            columns = inspect(connection).get_columns(name, schema=schema)
        except NoSuchTableError:
            raise TableNotFoundError(table_name)
        except DBAPIError as e:
            if e.connection_invalidated:
                raise DatabaseConnectionError(str(e))
            raise TableNotFoundError(table_name)
        if not columns:
            raise TableNotFoundError(table_name)
        return [(column["name"], sql_type_for(column["type"])) for column in columns]
