"""Destinations for work units produced by an invocation."""

import threading
from abc import ABC, abstractmethod
from typing import List

from table_fetch.models import WorkUnit


class WorkUnitSink(ABC):
    """Success and failure channels of the surrounding runtime."""

    @abstractmethod
    async def transfer_success(self, unit: WorkUnit) -> None:
        """Accept one generated page. Raising aborts the invocation."""

    @abstractmethod
    async def transfer_failure(self, unit: WorkUnit) -> None:
        """Accept an inbound unit whose invocation failed."""


class CollectingSink(WorkUnitSink):
    """Keeps transferred units in memory, in transfer order."""

    def __init__(self):
        self._lock = threading.Lock()
        self.success: List[WorkUnit] = []
        self.failure: List[WorkUnit] = []

    async def transfer_success(self, unit: WorkUnit) -> None:
        with self._lock:
            self.success.append(unit)

    async def transfer_failure(self, unit: WorkUnit) -> None:
        with self._lock:
            self.failure.append(unit)

    def clear(self) -> None:
        with self._lock:
            self.success.clear()
            self.failure.clear()
