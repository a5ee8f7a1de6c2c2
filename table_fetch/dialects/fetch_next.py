"""Dialects that page with ``OFFSET m ROWS FETCH NEXT n ROWS ONLY``."""

from typing import Sequence

from table_fetch.dialects.base import DatabaseDialect
from table_fetch.models import SqlType


class FetchNextDialect(DatabaseDialect):
    """SQL:2008 paging; the first page carries no OFFSET clause."""

    name = "Derby"

    def render_page(
        self,
        base_query: str,
        order_by_columns: Sequence[str],
        offset: int,
        limit: int,
    ) -> str:
        query = base_query + self.order_by_clause(order_by_columns)
        if offset > 0:
            query += f" OFFSET {offset} ROWS"
        query += f" FETCH NEXT {limit} ROWS ONLY"
        return query


class DB2Dialect(FetchNextDialect):
    name = "DB2"


class Oracle12Dialect(FetchNextDialect):
    name = "Oracle 12+"

    def quote_literal(self, value: str, sql_type: SqlType) -> str:
        if sql_type == SqlType.TEMPORAL:
            return "TIMESTAMP " + self.quote_string(str(value))
        return super().quote_literal(value, sql_type)


class MSSQL2012Dialect(FetchNextDialect):
    """SQL Server rejects FETCH without OFFSET and OFFSET without ORDER BY."""

    name = "MS SQL 2012+"
    identifier_quote = "["

    def render_page(
        self,
        base_query: str,
        order_by_columns: Sequence[str],
        offset: int,
        limit: int,
    ) -> str:
        query = base_query
        if order_by_columns:
            query += self.order_by_clause(order_by_columns)
        else:
            query += " ORDER BY (SELECT NULL)"
        return query + f" OFFSET {offset} ROWS FETCH NEXT {limit} ROWS ONLY"

    def quote_identifier(self, identifier: str) -> str:
        return "[" + identifier.replace("]", "]]") + "]"
