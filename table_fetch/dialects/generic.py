"""Dialects that page with ``LIMIT n OFFSET m``."""

from typing import Sequence

from table_fetch.dialects.base import DatabaseDialect


class GenericDialect(DatabaseDialect):
    """Limit/offset paging understood by most embedded and open source engines."""

    name = "Generic"

    def render_page(
        self,
        base_query: str,
        order_by_columns: Sequence[str],
        offset: int,
        limit: int,
    ) -> str:
        query = base_query + self.order_by_clause(order_by_columns)
        query += f" LIMIT {limit}"
        if offset > 0:
            query += f" OFFSET {offset}"
        return query


class PostgreSQLDialect(GenericDialect):
    name = "PostgreSQL"


class MySQLDialect(GenericDialect):
    name = "MySQL"
    identifier_quote = "`"

    def quote_string(self, value: str) -> str:
        # backslash is an escape character unless NO_BACKSLASH_ESCAPES is set
        return "'" + value.replace("\\", "\\\\").replace("'", "''") + "'"
