"""Incremental table-fetch query generation.

Given a table, a set of watermark columns and a page size, an
:class:`~table_fetch.controller.InvocationController` emits one bounded
``SELECT`` per page covering only rows newer than the persisted watermarks.
"""

from table_fetch.controller import (
    InvocationController,
    InvocationResult,
    InvocationState,
)
from table_fetch.models import FetchConfiguration, SqlType, TargetTable, WorkUnit
from table_fetch.planner import PageBounds, PagePlan, QueryPlanner, compute_page_plan

__version__ = "0.1.0"

__all__ = [
    "FetchConfiguration",
    "InvocationController",
    "InvocationResult",
    "InvocationState",
    "PageBounds",
    "PagePlan",
    "QueryPlanner",
    "SqlType",
    "TargetTable",
    "WorkUnit",
    "compute_page_plan",
]
