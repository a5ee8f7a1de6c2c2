from table_fetch.schema.introspector import (
    ColumnTypeCache,
    SchemaIntrospector,
    canonical_name,
    sql_type_for,
)

__all__ = ["ColumnTypeCache", "SchemaIntrospector", "canonical_name", "sql_type_for"]
