"""Drives one fetch cycle for a table.

An invocation moves through RESOLVE_PARAMS, INTROSPECT_SCHEMA,
LOAD_WATERMARKS, PLAN, EMIT_PAGES and COMMIT_WATERMARKS and ends in SUCCESS
or FAILURE. Watermarks are written only after every page has been accepted by
the sink, so a failed cycle is repeated from the same starting point.
"""

import uuid
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from pydantic import BaseModel, Field
from sqlalchemy.exc import DBAPIError

from table_fetch.clients.sql import SQLClient
from table_fetch.common.exceptions import (
    ConfigurationError,
    DatabaseConnectionError,
    EmissionError,
    InvocationError,
    TableFetchError,
    TableNotFoundError,
)
from table_fetch.common.templating import is_templated, resolve_template
from table_fetch.config import TableFetchSettings, get_settings
from table_fetch.constants import (
    ATTRIBUTE_PREFIX,
    FRAGMENT_COUNT,
    FRAGMENT_IDENTIFIER,
    FRAGMENT_INDEX,
)
from table_fetch.dialects import get_dialect
from table_fetch.models import (
    FetchConfiguration,
    MaxValueColumn,
    TargetTable,
    WorkUnit,
    split_column_names,
)
from table_fetch.observability.logger_adaptor import get_logger
from table_fetch.outputs import CollectingSink, WorkUnitSink
from table_fetch.planner import PagePlan, QueryPlanner, compute_page_plan
from table_fetch.schema.introspector import (
    ColumnTypeCache,
    SchemaIntrospector,
    canonical_name,
)
from table_fetch.state import WatermarkStore, create_state_backend

logger = get_logger(__name__)


class InvocationState(str, Enum):
    RESOLVE_PARAMS = "resolve_params"
    INTROSPECT_SCHEMA = "introspect_schema"
    LOAD_WATERMARKS = "load_watermarks"
    PLAN = "plan"
    EMIT_PAGES = "emit_pages"
    COMMIT_WATERMARKS = "commit_watermarks"
    SUCCESS = "success"
    FAILURE = "failure"


class InvocationResult(BaseModel):
    """Outcome of one invocation.

    ``failed_in`` names the state that was active when a failure occurred.
    """

    state: InvocationState
    table_name: Optional[str] = None
    page_plan: Optional[PagePlan] = None
    queries: List[str] = Field(default_factory=list)
    committed_watermarks: Dict[str, str] = Field(default_factory=dict)
    failed_in: Optional[InvocationState] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state == InvocationState.SUCCESS


class _ResolvedParameters(BaseModel):
    table: TargetTable
    max_value_columns: List[str]
    page_size: int
    timeout: Optional[float] = None


class InvocationController:
    """Generate paged, incremental SELECT statements for a configured table.

    Args:
        configuration: Static, possibly templated, fetch configuration.
        sql_client: Loaded connection provider.
        watermark_store: Where watermarks are persisted.
        sink: Receives generated pages and failed inbound units.
        column_type_cache: Shared cache of column types; one per process is typical.
        variables: Registry consulted for templates after inbound attributes.
        settings: Process settings; the global settings when omitted.

    Raises:
        ConfigurationError: If the configured dialect is unknown.

    Example:
        >>> controller = InvocationController(
        ...     FetchConfiguration(table_name="ORDERS", max_value_column_names="ID"),
        ...     sql_client,
        ...     WatermarkStore(InMemoryStateBackend()),
        ... )
        >>> result = await controller.run()
        >>> result.queries
        ['SELECT * FROM ORDERS ORDER BY ID LIMIT 10000']
    """

    def __init__(
        self,
        configuration: FetchConfiguration,
        sql_client: SQLClient,
        watermark_store: WatermarkStore,
        sink: Optional[WorkUnitSink] = None,
        column_type_cache: Optional[ColumnTypeCache] = None,
        variables: Optional[Mapping[str, str]] = None,
        settings: Optional[TableFetchSettings] = None,
    ):
        self.configuration = configuration
        self.sql_client = sql_client
        self.watermark_store = watermark_store
        self.sink = sink or CollectingSink()
        self.introspector = SchemaIntrospector(sql_client, column_type_cache)
        self.variables: Dict[str, str] = dict(variables or {})
        self.settings = settings or get_settings()
        self.planner = QueryPlanner(get_dialect(configuration.dialect))
        # (table name, is dynamic) -> watermark columns this controller has written
        self._owned: Dict[Tuple[str, bool], Set[str]] = {}
        self._pending_reset: Dict[Tuple[str, bool], Set[str]] = {}

    @classmethod
    def from_settings(
        cls,
        configuration: FetchConfiguration,
        sql_client: SQLClient,
        sink: Optional[WorkUnitSink] = None,
        settings: Optional[TableFetchSettings] = None,
    ) -> "InvocationController":
        """Build a controller whose state backend is chosen by settings."""
        settings = settings or get_settings()
        store = WatermarkStore(create_state_backend(settings))
        return cls(configuration, sql_client, store, sink=sink, settings=settings)

    @property
    def column_type_cache(self) -> ColumnTypeCache:
        return self.introspector.cache

    def reconfigure(self, configuration: FetchConfiguration) -> None:
        """Swap in a new configuration.

        Changing the table or the watermark columns invalidates the watermarks
        this controller owns: those of the previous static table and columns,
        and those it has written for any table. They are deleted before the
        next invocation; watermarks of other tables in the store are kept.
        """
        previous = self.configuration
        if (
            configuration.table_name != previous.table_name
            or configuration.max_value_column_names
            != previous.max_value_column_names
        ):
            logger.info("Table or max-value columns changed, state will be reset")
            if not is_templated(previous.table_name) and not is_templated(
                previous.max_value_column_names
            ):
                self._own(
                    TargetTable(name=previous.table_name),
                    split_column_names(previous.max_value_column_names),
                )
            for owner, columns in self._owned.items():
                self._pending_reset.setdefault(owner, set()).update(columns)
            self._owned = {}
        self.planner = QueryPlanner(get_dialect(configuration.dialect))
        self.configuration = configuration

    def _own(self, table: TargetTable, column_names: Iterable[str]) -> None:
        owner = (table.name, table.is_dynamic)
        self._owned.setdefault(owner, set()).update(column_names)

    async def _reset_owned_state(self) -> None:
        while self._pending_reset:
            (name, is_dynamic), columns = next(iter(self._pending_reset.items()))
            await self.watermark_store.forget(
                TargetTable(name=name, is_dynamic=is_dynamic), sorted(columns)
            )
            del self._pending_reset[(name, is_dynamic)]

    async def run_all(self, work_units: Iterable[WorkUnit]) -> List[InvocationResult]:
        """Run one invocation per inbound unit, in order."""
        return [await self.run(work_unit) for work_unit in work_units]

    async def run(self, work_unit: Optional[WorkUnit] = None) -> InvocationResult:
        """Run one fetch cycle.

        Args:
            work_unit: Inbound unit whose attributes resolve templates, if any.

        Returns:
            InvocationResult: SUCCESS, or FAILURE when ``work_unit`` was given
            and has been routed to the failure channel.

        Raises:
            TableFetchError: On failure when the invocation had no inbound unit.
                Errors outside the :class:`TableFetchError` hierarchy are
                raised as :class:`InvocationError`.
        """
        result = InvocationResult(state=InvocationState.RESOLVE_PARAMS)
        try:
            await self._run(work_unit, result)
        except Exception as e:
            error = e
            if not isinstance(e, TableFetchError):
                logger.exception(f"Unexpected error in {result.state.value}")
                error = InvocationError(f"{type(e).__name__}: {e}")
            result.failed_in = result.state
            result.state = InvocationState.FAILURE
            result.error = error.message
            result.error_code = error.error_code.code
            logger.error(
                f"Fetch of {result.table_name or self.configuration.table_name} "
                f"failed in {result.failed_in.value}: {str(error)}"
            )
            if work_unit is None:
                if error is e:
                    raise
                raise error from e
            await self.sink.transfer_failure(work_unit)
        return result

    async def _run(self, work_unit: Optional[WorkUnit], result: InvocationResult) -> None:
        attributes = work_unit.attributes if work_unit else {}
        params = self._resolve_parameters(attributes)
        table = params.table
        result.table_name = table.name

        await self._reset_owned_state()

        async with self.sql_client.connection() as connection:
            self._transition(result, InvocationState.INTROSPECT_SCHEMA)
            column_types = await self.introspector.resolve_column_types(
                connection, table.name, params.max_value_columns, params.timeout
            )
            columns = self.planner.resolve_columns(params.max_value_columns, column_types)

            self._transition(result, InvocationState.LOAD_WATERMARKS)
            snapshot = await self.watermark_store.snapshot(
                table, [column.name for column in columns]
            )
            current = {
                column.name: self._current_watermark(snapshot.lookup(table, column.name), column)
                for column in columns
            }

            self._transition(result, InvocationState.PLAN)
            predicate = self.planner.build_predicate(columns, current)
            count_query = self.planner.build_count_query(table.name, columns, predicate)
            row = await self._count(connection, table, count_query, params.timeout)

        total_rows = int(row[0]) if row and row[0] is not None else 0
        page_plan = compute_page_plan(total_rows, params.page_size)
        result.page_plan = page_plan
        order_by = [column.name for column in columns]
        queries = self.planner.render_pages(
            table.name,
            order_by,
            predicate,
            page_plan,
            self.configuration.columns_to_return,
        )
        logger.info(
            f"{table.name}: {total_rows} rows in {page_plan.page_count} pages "
            f"of {page_plan.page_size}"
        )

        self._transition(result, InvocationState.EMIT_PAGES)
        fragment_id = str(uuid.uuid4())
        for index, (query, page) in enumerate(zip(queries, page_plan.pages)):
            unit = WorkUnit(
                content=query,
                attributes={
                    **attributes,
                    f"{ATTRIBUTE_PREFIX}.tableName": table.name,
                    f"{ATTRIBUTE_PREFIX}.columnNames": ", ".join(
                        self.configuration.columns_to_return
                    ),
                    f"{ATTRIBUTE_PREFIX}.whereClause": predicate or "",
                    f"{ATTRIBUTE_PREFIX}.maxColumnNames": ", ".join(order_by),
                    f"{ATTRIBUTE_PREFIX}.limit": str(page_plan.page_size),
                    f"{ATTRIBUTE_PREFIX}.offset": str(page.offset),
                    FRAGMENT_IDENTIFIER: fragment_id,
                    FRAGMENT_COUNT: str(page_plan.page_count),
                    FRAGMENT_INDEX: str(index),
                },
            )
            logger.info(f"Emitting page {index}: {query}")
            try:
                await self.sink.transfer_success(unit)
            except Exception as e:
                raise EmissionError(f"page {index} of {table.name} was rejected: {e}")
            result.queries.append(query)

        self._transition(result, InvocationState.COMMIT_WATERMARKS)
        updates = (
            self.planner.next_watermarks(columns, current, row[1:]) if total_rows else {}
        )
        await self.watermark_store.commit(snapshot, table, updates)
        self._own(table, [column.name for column in columns])
        result.committed_watermarks = updates

        self._transition(result, InvocationState.SUCCESS)

    def _transition(self, result: InvocationResult, state: InvocationState) -> None:
        logger.debug(f"{result.table_name}: {result.state.value} -> {state.value}")
        result.state = state

    def _resolve(self, value: str, attributes: Mapping[str, str]) -> str:
        return resolve_template(value, attributes, self.variables)

    def _resolve_parameters(self, attributes: Mapping[str, str]) -> _ResolvedParameters:
        configuration = self.configuration

        table_name = self._resolve(configuration.table_name, attributes).strip()
        if not table_name:
            raise ConfigurationError("table name resolved to an empty string")
        table = TargetTable(
            name=table_name, is_dynamic=is_templated(configuration.table_name)
        )

        max_value_columns = split_column_names(
            self._resolve(configuration.max_value_column_names or "", attributes)
        )

        page_size = configuration.page_size
        if page_size is None:
            page_size = self.settings.default_page_size
        elif isinstance(page_size, str):
            resolved = self._resolve(page_size, attributes).strip()
            try:
                page_size = int(resolved)
            except ValueError:
                raise ConfigurationError(f"page size '{resolved}' is not an integer")
        if page_size <= 0:
            raise ConfigurationError(f"page size must be positive, got {page_size}")

        timeout = configuration.query_timeout_seconds
        if timeout is None:
            timeout = self.settings.query_timeout_seconds

        return _ResolvedParameters(
            table=table,
            max_value_columns=max_value_columns,
            page_size=page_size,
            timeout=timeout or None,
        )

    def _current_watermark(
        self, stored: Optional[str], column: MaxValueColumn
    ) -> Optional[str]:
        if stored is not None:
            return stored
        for name, value in self.configuration.initial_max_values.items():
            if canonical_name(name) == canonical_name(column.name):
                return value
        return None

    async def _count(self, connection, table: TargetTable, query: str, timeout):
        try:
            return await self.sql_client.fetch_one(connection, query, timeout)
        except DBAPIError as e:
            if e.connection_invalidated:
                raise DatabaseConnectionError(str(e))
            raise TableNotFoundError(table.name)
