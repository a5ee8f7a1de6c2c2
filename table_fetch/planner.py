"""Query planning for incremental, paged table fetches.

A plan is built in three steps:

1. A predicate ANDs ``column > literal`` for every watermark column that has
   a known value. The comparisons are independent, not a lexicographic
   compound comparison, so multi-column watermarks are only exact when the
   columns grow together.
2. One ``SELECT COUNT(*), MAX(c1), ...`` query, bounded by that predicate,
   yields the number of rows to page over and the new maxima.
3. The rows are split into ``ceil(total / page_size)`` pages, each rendered by
   the configured dialect with a mandatory ORDER BY on the watermark columns.

Example:
    >>> planner = QueryPlanner(get_dialect("Derby"))
    >>> planner.render_pages("T", ["ID"], "ID > 2", compute_page_plan(3, 2))
    ['SELECT * FROM T WHERE ID > 2 ORDER BY ID FETCH NEXT 2 ROWS ONLY',
     'SELECT * FROM T WHERE ID > 2 ORDER BY ID OFFSET 2 ROWS FETCH NEXT 2 ROWS ONLY']
"""

from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from table_fetch.common.exceptions import ConfigurationError
from table_fetch.dialects import DatabaseDialect
from table_fetch.models import MaxValueColumn, SqlType
from table_fetch.schema.introspector import canonical_name


class PageBounds(BaseModel):
    offset: int
    limit: int


class PagePlan(BaseModel):
    """How ``total_rows`` rows are split into pages of ``page_size``."""

    total_rows: int
    page_size: int
    page_count: int
    pages: List[PageBounds] = Field(default_factory=list)


def compute_page_plan(total_rows: int, page_size: int) -> PagePlan:
    """Split ``total_rows`` into pages.

    Python integers do not overflow, so counts beyond the 32-bit range need
    no special handling; negative counts are treated as empty.

    Raises:
        ConfigurationError: If ``page_size`` is not a positive integer.

    Example:
        >>> compute_page_plan(5, 2).pages[-1]
        PageBounds(offset=4, limit=1)
    """
    if isinstance(page_size, bool) or not isinstance(page_size, int) or page_size <= 0:
        raise ConfigurationError(f"page size must be a positive integer, got {page_size!r}")
    total_rows = max(int(total_rows), 0)

    page_count = -(-total_rows // page_size)
    pages = [
        PageBounds(
            offset=index * page_size,
            limit=min(page_size, total_rows - index * page_size),
        )
        for index in range(page_count)
    ]
    return PagePlan(
        total_rows=total_rows, page_size=page_size, page_count=page_count, pages=pages
    )


def format_watermark_value(value: Any) -> Optional[str]:
    """Convert a value read from the database to its persisted string form."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _comparable(value: str, sql_type: SqlType) -> Any:
    if sql_type == SqlType.NUMERIC:
        try:
            return Decimal(value)
        except InvalidOperation:
            return value
    if sql_type == SqlType.TEMPORAL:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return value
    return value


def is_newer_watermark(candidate: str, current: Optional[str], sql_type: SqlType) -> bool:
    """True when ``candidate`` should replace ``current``; watermarks never decrease."""
    if current is None:
        return True
    left, right = _comparable(candidate, sql_type), _comparable(current, sql_type)
    if type(left) is not type(right):
        left, right = str(left), str(right)
    return left > right


class QueryPlanner:
    """Build predicate, count query and page queries for one table."""

    def __init__(self, dialect: DatabaseDialect):
        self.dialect = dialect

    def resolve_columns(
        self, column_names: Sequence[str], column_types: Mapping[str, SqlType]
    ) -> List[MaxValueColumn]:
        return [
            MaxValueColumn(
                name=name,
                sql_type=column_types.get(canonical_name(name), SqlType.OTHER),
            )
            for name in column_names
        ]

    def build_predicate(
        self,
        columns: Sequence[MaxValueColumn],
        watermarks: Mapping[str, Optional[str]],
    ) -> Optional[str]:
        """AND together ``column > literal`` for columns with a known watermark.

        Args:
            columns: Watermark columns in configured order.
            watermarks: Current value per column name; missing or None is skipped.

        Returns:
            The predicate, or None when no column has a watermark yet.
        """
        clauses = []
        for column in columns:
            value = watermarks.get(column.name)
            if value is None:
                continue
            literal = self.dialect.quote_literal(value, column.sql_type)
            clauses.append(f"{column.name} > {literal}")
        if not clauses:
            return None
        return " AND ".join(clauses)

    def _where(self, predicate: Optional[str]) -> str:
        return f" WHERE {predicate}" if predicate else ""

    def build_count_query(
        self,
        table_name: str,
        columns: Sequence[MaxValueColumn],
        predicate: Optional[str],
    ) -> str:
        """``SELECT COUNT(*)[, MAX(c)...] FROM table [WHERE predicate]``."""
        selections = ["COUNT(*)"] + [f"MAX({column.name})" for column in columns]
        return f"SELECT {', '.join(selections)} FROM {table_name}{self._where(predicate)}"

    def build_base_query(
        self,
        table_name: str,
        predicate: Optional[str],
        columns_to_return: Sequence[str] = (),
    ) -> str:
        select_list = ", ".join(columns_to_return) if columns_to_return else "*"
        return f"SELECT {select_list} FROM {table_name}{self._where(predicate)}"

    def render_pages(
        self,
        table_name: str,
        order_by_columns: Sequence[str],
        predicate: Optional[str],
        page_plan: PagePlan,
        columns_to_return: Sequence[str] = (),
    ) -> List[str]:
        """Render one SQL statement per page of ``page_plan``.

        Every page fetches ``page_size`` rows, the last one included; the
        engine returns only what remains past its offset.
        """
        base_query = self.build_base_query(table_name, predicate, columns_to_return)
        return [
            self.dialect.render_page(
                base_query, order_by_columns, page.offset, page_plan.page_size
            )
            for page in page_plan.pages
        ]

    def next_watermarks(
        self,
        columns: Sequence[MaxValueColumn],
        current: Mapping[str, Optional[str]],
        observed_maxima: Sequence[Any],
    ) -> Dict[str, str]:
        """Return the columns whose watermark advances, with their new values.

        Args:
            columns: Watermark columns in the order of the count query.
            current: Watermark per column name before this invocation.
            observed_maxima: ``MAX(column)`` values from the count query.
        """
        updates: Dict[str, str] = {}
        for column, observed in zip(columns, observed_maxima):
            candidate = format_watermark_value(observed)
            if candidate is None:
                continue
            if is_newer_watermark(candidate, current.get(column.name), column.sql_type):
                updates[column.name] = candidate
        return updates
