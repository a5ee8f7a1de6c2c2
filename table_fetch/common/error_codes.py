"""
Error codes for table-fetch.

Error codes follow the format: TableFetch-{Component}-{HTTP_Code}-{Unique_ID}

Components:
- Client: Connection provider errors
- Schema: Table introspection errors
- State: Watermark persistence errors
- Config: Configuration and template errors
- Invocation: Errors raised while driving a fetch cycle
"""

from enum import Enum
from typing import Dict


class ErrorComponent(Enum):
    """Components that can generate errors in the system."""

    CLIENT = "Client"
    SCHEMA = "Schema"
    STATE = "State"
    CONFIG = "Config"
    INVOCATION = "Invocation"


class ErrorCode:
    """Error code with component, HTTP code, and description."""

    def __init__(
        self, component: str, http_code: str, unique_id: str, description: str
    ):
        self.code = f"TableFetch-{component}-{http_code}-{unique_id}"
        self.description = description

    def __str__(self) -> str:
        return f"{self.code}: {self.description}"


CLIENT_ERRORS = {
    "SQL_CLIENT_CONNECTION_ERROR": ErrorCode(
        "Client", "503", "00", "Database connection could not be established"
    ),
    "SQL_CLIENT_QUERY_ERROR": ErrorCode("Client", "500", "00", "SQL query failed"),
    "SQL_CLIENT_TIMEOUT_ERROR": ErrorCode("Client", "504", "00", "SQL query timed out"),
}

SCHEMA_ERRORS = {
    "TABLE_NOT_FOUND_ERROR": ErrorCode("Schema", "404", "00", "Table not found"),
}

STATE_ERRORS = {
    "STATE_STORE_UNAVAILABLE_ERROR": ErrorCode(
        "State", "503", "00", "State store unavailable"
    ),
    "STATE_STORE_CONFLICT_ERROR": ErrorCode(
        "State", "409", "00", "State was modified by a concurrent invocation"
    ),
}

CONFIG_ERRORS = {
    "CONFIGURATION_ERROR": ErrorCode("Config", "400", "00", "Invalid configuration"),
    "TEMPLATE_RESOLUTION_ERROR": ErrorCode(
        "Config", "400", "01", "Template expression could not be resolved"
    ),
    "UNKNOWN_DIALECT_ERROR": ErrorCode("Config", "400", "02", "Unknown SQL dialect"),
}

INVOCATION_ERRORS = {
    "PAGE_EMISSION_ERROR": ErrorCode(
        "Invocation", "500", "00", "Generated page could not be emitted"
    ),
    "UNEXPECTED_INVOCATION_ERROR": ErrorCode(
        "Invocation", "500", "01", "Unexpected error during invocation"
    ),
}

# Combined dictionary of all error codes
ERROR_CODES: Dict[str, ErrorCode] = {
    **CLIENT_ERRORS,
    **SCHEMA_ERRORS,
    **STATE_ERRORS,
    **CONFIG_ERRORS,
    **INVOCATION_ERRORS,
}
