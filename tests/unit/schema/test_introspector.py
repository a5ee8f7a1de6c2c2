import pytest
from sqlalchemy import types as sqltypes

from table_fetch.common.exceptions import ConfigurationError, TableNotFoundError
from table_fetch.models import SqlType
from table_fetch.schema import ColumnTypeCache, SchemaIntrospector, sql_type_for
from tests.helpers import execute_statements


@pytest.mark.parametrize(
    "column_type, expected",
    [
        (sqltypes.Integer(), SqlType.NUMERIC),
        (sqltypes.BigInteger(), SqlType.NUMERIC),
        (sqltypes.Numeric(10, 2), SqlType.NUMERIC),
        (sqltypes.Float(), SqlType.NUMERIC),
        (sqltypes.DateTime(), SqlType.TEMPORAL),
        (sqltypes.Date(), SqlType.TEMPORAL),
        (sqltypes.Time(), SqlType.TEMPORAL),
        (sqltypes.String(255), SqlType.TEXT),
        (sqltypes.Text(), SqlType.TEXT),
        (sqltypes.Boolean(), SqlType.OTHER),
        (sqltypes.LargeBinary(), SqlType.OTHER),
    ],
)
def test_sql_type_for(column_type, expected):
    assert sql_type_for(column_type) == expected


class TestColumnTypeCache:
    def test_names_are_case_insensitive(self):
        cache = ColumnTypeCache()
        cache.put("Orders", "ID", SqlType.NUMERIC)
        assert cache.lookup("ORDERS", "id") == SqlType.NUMERIC
        assert cache.contains_all("orders", ["Id"])
        assert not cache.contains_all("orders", ["id", "name"])

    def test_invalidate(self):
        cache = ColumnTypeCache()
        cache.put("a", "id", SqlType.NUMERIC)
        cache.put("b", "id", SqlType.NUMERIC)
        cache.invalidate("a")
        assert cache.get("a") == {}
        assert cache.get("b") == {"id": SqlType.NUMERIC}
        cache.invalidate()
        assert cache.get("b") == {}


class TestSchemaIntrospector:
    @pytest.fixture
    def orders_table(self, sqlite_client):
        execute_statements(
            sqlite_client,
            "CREATE TABLE orders (id INTEGER, name VARCHAR(100), "
            "scale REAL, created_on TIMESTAMP, active BOOLEAN)",
        )
        return sqlite_client

    async def test_reflects_types(self, orders_table):
        introspector = SchemaIntrospector(orders_table)
        async with orders_table.connection() as connection:
            types = await introspector.resolve_column_types(
                connection, "ORDERS", ["ID"]
            )
        assert types == {
            "id": SqlType.NUMERIC,
            "name": SqlType.TEXT,
            "scale": SqlType.NUMERIC,
            "created_on": SqlType.TEMPORAL,
            "active": SqlType.OTHER,
        }

    async def test_cached_table_is_not_reflected_again(self, orders_table):
        introspector = SchemaIntrospector(orders_table)
        async with orders_table.connection() as connection:
            await introspector.resolve_column_types(connection, "orders", ["id"])
        execute_statements(orders_table, "DROP TABLE orders")

        async with orders_table.connection() as connection:
            types = await introspector.resolve_column_types(
                connection, "orders", ["name"]
            )
        assert types["name"] == SqlType.TEXT

    async def test_missing_table(self, sqlite_client):
        introspector = SchemaIntrospector(sqlite_client)
        async with sqlite_client.connection() as connection:
            with pytest.raises(TableNotFoundError) as exc_info:
                await introspector.resolve_column_types(connection, "nope", ["id"])
        assert exc_info.value.table_name == "nope"

    async def test_missing_column(self, orders_table):
        introspector = SchemaIntrospector(orders_table)
        async with orders_table.connection() as connection:
            with pytest.raises(ConfigurationError):
                await introspector.resolve_column_types(
                    connection, "orders", ["updated_on"]
                )

    async def test_shared_cache(self, orders_table):
        cache = ColumnTypeCache()
        first = SchemaIntrospector(orders_table, cache)
        async with orders_table.connection() as connection:
            await first.resolve_column_types(connection, "orders", ["id"])
        assert SchemaIntrospector(orders_table, cache).cache.lookup(
            "orders", "created_on"
        ) == SqlType.TEMPORAL
