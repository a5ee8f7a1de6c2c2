"""Exceptions raised by a table-fetch invocation.

Every exception carries an :class:`ErrorCode` so callers can route on the
code rather than the message. All of them are fatal for the invocation that
raised them and none of them advance persisted watermarks.
"""

from typing import Optional

from table_fetch.common.error_codes import ERROR_CODES, ErrorCode


class TableFetchError(Exception):
    """Base exception for table-fetch operations."""

    default_error_code = "SQL_CLIENT_QUERY_ERROR"

    def __init__(self, message: str, error_code: Optional[ErrorCode] = None):
        self.error_code = error_code or ERROR_CODES[self.default_error_code]
        super().__init__(f"{self.error_code.code}: {message}")
        self.message = message


class DatabaseConnectionError(TableFetchError):
    """Raised when the connection provider cannot supply a live connection."""

    default_error_code = "SQL_CLIENT_CONNECTION_ERROR"


class QueryTimeoutError(TableFetchError):
    """Raised when a count, metadata or page query exceeds its timeout."""

    default_error_code = "SQL_CLIENT_TIMEOUT_ERROR"


class TableNotFoundError(TableFetchError):
    """Raised when introspection or counting fails because the table is missing.

    Example:
        >>> raise TableNotFoundError("ORDERS")
    """

    default_error_code = "TABLE_NOT_FOUND_ERROR"

    def __init__(self, table_name: str, error_code: Optional[ErrorCode] = None):
        super().__init__(f"table '{table_name}' does not exist", error_code)
        self.table_name = table_name


class StateUnavailableError(TableFetchError):
    """Raised when the persisted state backend cannot be read or written."""

    default_error_code = "STATE_STORE_UNAVAILABLE_ERROR"


class StateConflictError(StateUnavailableError):
    """Raised when a compare-and-set on the state backend loses a race."""

    default_error_code = "STATE_STORE_CONFLICT_ERROR"


class ConfigurationError(TableFetchError):
    """Raised for invalid configuration such as a non-positive page size."""

    default_error_code = "CONFIGURATION_ERROR"


class TemplateResolutionError(ConfigurationError):
    """Raised when a ``${name}`` expression references an unknown attribute."""

    default_error_code = "TEMPLATE_RESOLUTION_ERROR"

    def __init__(self, expression: str, name: str):
        super().__init__(f"cannot resolve '{name}' in expression '{expression}'")
        self.expression = expression
        self.name = name


class EmissionError(TableFetchError):
    """Raised when the downstream sink rejects a generated page."""

    default_error_code = "PAGE_EMISSION_ERROR"


class InvocationError(TableFetchError):
    """Wraps an error raised outside the table-fetch hierarchy, e.g. by a driver."""

    default_error_code = "UNEXPECTED_INVOCATION_ERROR"
