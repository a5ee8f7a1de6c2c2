"""Base interface for SQL dialects.

A dialect knows how to bound a query to one page, how to write a watermark
value as a literal, and how to quote identifiers. It knows nothing about
watermarks or page plans.
"""

from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Sequence

from table_fetch.common.exceptions import ConfigurationError
from table_fetch.models import SqlType


class DatabaseDialect(ABC):
    """Interface implemented by one variant per supported database family."""

    name: str = ""
    identifier_quote: str = '"'

    @abstractmethod
    def render_page(
        self,
        base_query: str,
        order_by_columns: Sequence[str],
        offset: int,
        limit: int,
    ) -> str:
        """Append ORDER BY and the paging clause to ``base_query``."""

    def order_by_clause(self, order_by_columns: Sequence[str]) -> str:
        if not order_by_columns:
            return ""
        return " ORDER BY " + ", ".join(order_by_columns)

    def quote_literal(self, value: str, sql_type: SqlType) -> str:
        """Write ``value`` as a SQL literal suitable for a ``>`` comparison.

        Numeric values are validated and written unquoted; everything else is
        quoted as a string literal.

        Raises:
            ConfigurationError: If a numeric column carries a non-numeric value.
        """
        if sql_type == SqlType.NUMERIC:
            try:
                Decimal(str(value))
            except InvalidOperation:
                raise ConfigurationError(f"'{value}' is not a numeric literal")
            return str(value)
        return self.quote_string(str(value))

    def quote_string(self, value: str) -> str:
        return "'" + value.replace("'", "''") + "'"

    def quote_identifier(self, identifier: str) -> str:
        quote = self.identifier_quote
        return f"{quote}{identifier.replace(quote, quote * 2)}{quote}"
