"""Watermark persistence keyed by table and column.

Keys have the form ``<table>@!@<column>``, lower-cased. Older state may hold
a bare ``<column>`` key; it is honoured for statically configured tables only
and is copied to the qualified key on the next write. Commits never remove
it; only resetting the table does.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from table_fetch.constants import STATE_KEY_DELIMITER
from table_fetch.models import TargetTable
from table_fetch.observability.logger_adaptor import get_logger
from table_fetch.state.backends import StateBackend, StateScope, StateSnapshot

logger = get_logger(__name__)


def build_state_key(table_name: str, column_name: str) -> str:
    """Build the fully-qualified watermark key.

    Example:
        >>> build_state_key("TEST_QUERY_DB_TABLE", "ID")
        'test_query_db_table@!@id'
    """
    return f"{table_name}{STATE_KEY_DELIMITER}{column_name}".lower()


def build_legacy_state_key(column_name: str) -> str:
    return column_name.lower()


def watermark_keys(table: TargetTable, column_names: Iterable[str]) -> List[str]:
    """Keys consulted for ``column_names``: qualified, then legacy for static tables."""
    column_names = list(column_names)
    keys = [build_state_key(table.name, column) for column in column_names]
    if not table.is_dynamic:
        keys += [build_legacy_state_key(column) for column in column_names]
    return keys


@dataclass
class WatermarkSnapshot:
    """Watermarks of one table as read at the start of an invocation.

    Lookups that fall back to a legacy key are remembered in ``migrations``
    so the value is written under the qualified key on commit.
    """

    state: StateSnapshot
    migrations: Dict[str, str] = field(default_factory=dict)

    def lookup(self, table: TargetTable, column_name: str) -> Optional[str]:
        key = build_state_key(table.name, column_name)
        value = self.state.values.get(key)
        if value is not None:
            return value
        if table.is_dynamic:
            return None

        legacy_value = self.state.values.get(build_legacy_state_key(column_name))
        if legacy_value is not None:
            logger.info(
                f"Using legacy watermark key '{build_legacy_state_key(column_name)}' "
                f"for {table.name}.{column_name}"
            )
            self.migrations[key] = legacy_value
        return legacy_value


class WatermarkStore:
    """Read and write watermarks for any number of tables in one state scope.

    Only the keys of the table being committed are compared and written, so
    invocations on distinct tables never conflict. Two invocations advancing
    the same table race on its keys and the loser gets
    :class:`StateConflictError` rather than a lost update.
    """

    def __init__(self, backend: StateBackend, scope: StateScope = StateScope.CLUSTER):
        self.backend = backend
        self.scope = scope

    async def snapshot(
        self, table: TargetTable, column_names: Iterable[str]
    ) -> WatermarkSnapshot:
        """Read the watermarks of ``column_names`` for ``table``."""
        keys = watermark_keys(table, column_names)
        return WatermarkSnapshot(await self.backend.get_state(keys, self.scope))

    async def get(self, table: TargetTable, column_name: str) -> Optional[str]:
        """Return the watermark for ``column_name`` of ``table``, if any."""
        return (await self.snapshot(table, [column_name])).lookup(table, column_name)

    async def set(self, table: TargetTable, column_name: str, value: str) -> None:
        """Write one watermark under its fully-qualified key."""
        snapshot = await self.snapshot(table, [column_name])
        await self.commit(snapshot, table, {column_name: value})

    async def commit(
        self,
        snapshot: WatermarkSnapshot,
        table: TargetTable,
        updates: Dict[str, str],
    ) -> None:
        """Write ``updates`` (column -> value) and pending migrations in one step.

        Args:
            snapshot: The snapshot the updates were computed from.
            table: Table the columns belong to.
            updates: New watermark values keyed by column name.

        Raises:
            StateConflictError: If one of the written keys changed since
                ``snapshot`` was read.
            StateUnavailableError: If the backend cannot be reached.
        """
        changes = dict(snapshot.migrations)
        for column_name, value in updates.items():
            changes[build_state_key(table.name, column_name)] = value
        if not changes:
            return

        written = await self.backend.update(snapshot.state, changes, self.scope)
        snapshot.state.merge(written)
        snapshot.migrations = {}
        logger.debug(f"Committed watermarks for {table.name}: {updates}")

    async def forget(self, table: TargetTable, column_names: Iterable[str]) -> None:
        """Delete the watermarks of ``column_names`` for ``table``.

        Legacy keys are removed too when ``table`` is static. Keys of other
        tables are untouched.
        """
        keys = watermark_keys(table, column_names)
        await self.backend.delete(keys, self.scope)
        logger.info(f"Forgot watermarks of {table.name}: {sorted(set(keys))}")

    async def clear(self, scope: Optional[StateScope] = None) -> None:
        """Remove every watermark in ``scope``, for all tables."""
        await self.backend.clear(scope or self.scope)
