"""Pydantic models shared by the fetch components.

Configuration values that may carry ``${name}`` templates are kept as raw
strings here and resolved per invocation by the controller.
"""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator


class SqlType(str, Enum):
    """Coarse SQL type families, enough to decide how a literal is written."""

    NUMERIC = "numeric"
    TEMPORAL = "temporal"
    TEXT = "text"
    OTHER = "other"


class TargetTable(BaseModel):
    """The table a single invocation reads from."""

    name: str
    is_dynamic: bool = False


class MaxValueColumn(BaseModel):
    """A column whose maximum observed value is tracked as a watermark."""

    name: str
    sql_type: SqlType = SqlType.OTHER


class WorkUnit(BaseModel):
    """A unit of work exchanged with the surrounding runtime.

    Inbound units carry attributes used to resolve templated configuration.
    Outbound units carry the rendered SQL text as ``content``.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    content: str = ""
    attributes: Dict[str, str] = Field(default_factory=dict)


def split_column_names(value: Optional[str]) -> List[str]:
    """Split a comma separated column list, dropping blanks.

    Example:
        >>> split_column_names("ID, BUCKET")
        ['ID', 'BUCKET']
    """
    if not value:
        return []
    return [name.strip() for name in value.split(",") if name.strip()]


class FetchConfiguration(BaseModel):
    """Static configuration of one table-fetch processor.

    Attributes:
        table_name: Table to read; may be a template such as ``${tableName}``.
        max_value_column_names: Comma separated watermark columns, possibly templated.
        page_size: Rows per page; an int, a template string, or None for the default.
        columns_to_return: Explicit select list; ``*`` when empty.
        dialect: Name of a registered SQL dialect.
        initial_max_values: Starting watermark per column when nothing is persisted.
        query_timeout_seconds: Per-query timeout override; None uses settings.
    """

    table_name: str
    max_value_column_names: Optional[str] = None
    page_size: Optional[Union[int, str]] = None
    columns_to_return: List[str] = Field(default_factory=list)
    dialect: str = "Generic"
    initial_max_values: Dict[str, str] = Field(default_factory=dict)
    query_timeout_seconds: Optional[float] = None

    @field_validator("max_value_column_names", mode="before")
    @classmethod
    def _join_column_list(cls, value):
        if isinstance(value, (list, tuple)):
            return ", ".join(str(v) for v in value)
        return value

    @field_validator("columns_to_return", mode="before")
    @classmethod
    def _split_columns_to_return(cls, value):
        if isinstance(value, str):
            return split_column_names(value)
        return value or []
