"""SQL dialect registry.

Dialects are selected by configuration name, never by inspecting the
connection at runtime.

Example:
    >>> dialect = get_dialect("Derby")
    >>> dialect.render_page("SELECT * FROM T", ["ID"], 0, 10)
    'SELECT * FROM T ORDER BY ID FETCH NEXT 10 ROWS ONLY'
"""

from typing import Dict, List, Type

from table_fetch.common.error_codes import ERROR_CODES
from table_fetch.common.exceptions import ConfigurationError
from table_fetch.dialects.base import DatabaseDialect
from table_fetch.dialects.fetch_next import (
    DB2Dialect,
    FetchNextDialect,
    MSSQL2012Dialect,
    Oracle12Dialect,
)
from table_fetch.dialects.generic import GenericDialect, MySQLDialect, PostgreSQLDialect

DIALECTS: Dict[str, Type[DatabaseDialect]] = {
    dialect.name: dialect
    for dialect in (
        GenericDialect,
        PostgreSQLDialect,
        MySQLDialect,
        FetchNextDialect,
        DB2Dialect,
        Oracle12Dialect,
        MSSQL2012Dialect,
    )
}


def register_dialect(dialect: Type[DatabaseDialect]) -> Type[DatabaseDialect]:
    """Register a dialect class under its ``name``; usable as a decorator."""
    DIALECTS[dialect.name] = dialect
    return dialect


def available_dialects() -> List[str]:
    return sorted(DIALECTS)


def get_dialect(name: str) -> DatabaseDialect:
    """Instantiate the dialect registered as ``name`` (case-insensitive).

    Raises:
        ConfigurationError: If no dialect is registered under that name.
    """
    for registered, dialect in DIALECTS.items():
        if registered.lower() == name.lower():
            return dialect()
    raise ConfigurationError(
        f"unknown dialect '{name}', expected one of {available_dialects()}",
        ERROR_CODES["UNKNOWN_DIALECT_ERROR"],
    )


__all__ = [
    "DIALECTS",
    "DatabaseDialect",
    "available_dialects",
    "get_dialect",
    "register_dialect",
]
