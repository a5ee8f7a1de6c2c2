"""Key-value backends holding persisted watermark state.

Each backend stores string values under string keys, one namespace per
:class:`StateScope`, and gives every key its own version token. Writes are
compare-and-set per key: an update fails only when one of the keys it writes
changed since it was read, so invocations working on different tables never
contend with each other.
"""

import json
import os
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from dapr.clients import DaprClient
from dapr.clients.grpc._request import (
    TransactionalStateOperation,
    TransactionOperationType,
)
from dapr.clients.grpc._state import Concurrency, StateOptions

from table_fetch.common.exceptions import StateConflictError, StateUnavailableError
from table_fetch.constants import STATE_INDEX_RETRIES
from table_fetch.observability.logger_adaptor import get_logger

logger = get_logger(__name__)


class StateScope(Enum):
    CLUSTER = "cluster"
    LOCAL = "local"


@dataclass
class StateSnapshot:
    """Values of some keys as read from a backend, with each key's version.

    A key missing from ``versions`` did not exist when it was read.
    """

    values: Dict[str, str] = field(default_factory=dict)
    versions: Dict[str, str] = field(default_factory=dict)

    def merge(self, other: "StateSnapshot") -> None:
        self.values.update(other.values)
        self.versions.update(other.versions)


def _stale_keys(
    current: Dict[str, Optional[str]], expected: StateSnapshot, keys: Iterable[str]
) -> List[str]:
    return [key for key in keys if current.get(key) != expected.versions.get(key)]


class StateBackend(ABC):
    """Interface for persisted state storage."""

    @abstractmethod
    async def get_state(self, keys: Iterable[str], scope: StateScope) -> StateSnapshot:
        """Read ``keys`` from ``scope``; absent keys are left out.

        Raises:
            StateUnavailableError: If the backend cannot be reached.
        """

    @abstractmethod
    async def update(
        self, expected: StateSnapshot, changes: Dict[str, str], scope: StateScope
    ) -> StateSnapshot:
        """Write ``changes`` if none of their keys moved past ``expected``.

        Keys not named in ``changes`` are neither checked nor touched.

        Returns:
            StateSnapshot: The written keys with their new versions.

        Raises:
            StateConflictError: If another writer changed one of the keys first.
            StateUnavailableError: If the backend cannot be reached.
        """

    @abstractmethod
    async def delete(self, keys: Iterable[str], scope: StateScope) -> None:
        """Remove ``keys`` from ``scope``; unknown keys are ignored."""

    @abstractmethod
    async def clear(self, scope: StateScope) -> None:
        """Remove every key in ``scope``."""


class InMemoryStateBackend(StateBackend):
    """Process-local backend, used by tests and single-process deployments."""

    def __init__(self):
        self._lock = threading.Lock()
        self._states: Dict[StateScope, Dict[str, Tuple[str, str]]] = {}
        self._version = 0

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    async def get_state(self, keys: Iterable[str], scope: StateScope) -> StateSnapshot:
        snapshot = StateSnapshot()
        with self._lock:
            entries = self._states.get(scope, {})
            for key in keys:
                if key in entries:
                    snapshot.values[key], snapshot.versions[key] = entries[key]
        return snapshot

    async def update(
        self, expected: StateSnapshot, changes: Dict[str, str], scope: StateScope
    ) -> StateSnapshot:
        written = StateSnapshot()
        with self._lock:
            entries = self._states.setdefault(scope, {})
            current = {key: entry[1] for key, entry in entries.items()}
            stale = _stale_keys(current, expected, changes)
            if stale:
                raise StateConflictError(
                    f"{scope.value} keys {stale} changed since they were read"
                )
            for key, value in changes.items():
                version = self._next_version()
                entries[key] = (value, version)
                written.values[key] = value
                written.versions[key] = version
        return written

    async def delete(self, keys: Iterable[str], scope: StateScope) -> None:
        with self._lock:
            entries = self._states.get(scope, {})
            for key in keys:
                entries.pop(key, None)

    async def clear(self, scope: StateScope) -> None:
        with self._lock:
            self._states.pop(scope, None)

    async def set_state(self, values: Dict[str, str], scope: StateScope) -> None:
        """Overwrite ``values`` unconditionally, for seeding state."""
        with self._lock:
            entries = self._states.setdefault(scope, {})
            for key, value in values.items():
                entries[key] = (value, self._next_version())

    def dump(self, scope: StateScope) -> Dict[str, str]:
        """Return every key and value held for ``scope``."""
        with self._lock:
            return {key: entry[0] for key, entry in self._states.get(scope, {}).items()}


class FileStateBackend(StateBackend):
    """JSON file backend for local persistence across restarts.

    The file holds ``{scope: {key: {"value": str, "version": str}}}``.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def _read_all(self) -> Dict[str, Dict[str, Dict[str, str]]]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r") as file:
                return json.load(file)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read state file {self.path}: {str(e)}")
            raise StateUnavailableError(f"cannot read {self.path}: {e}")

    def _write_all(self, document: Dict[str, Dict[str, Dict[str, str]]]) -> None:
        try:
            os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
            tmp_path = f"{self.path}.tmp"
            with open(tmp_path, "w") as file:
                json.dump(document, file)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Failed to write state file {self.path}: {str(e)}")
            raise StateUnavailableError(f"cannot write {self.path}: {e}")

    async def get_state(self, keys: Iterable[str], scope: StateScope) -> StateSnapshot:
        with self._lock:
            entries = self._read_all().get(scope.value, {})
        snapshot = StateSnapshot()
        for key in keys:
            if key in entries:
                snapshot.values[key] = entries[key]["value"]
                snapshot.versions[key] = entries[key]["version"]
        return snapshot

    async def update(
        self, expected: StateSnapshot, changes: Dict[str, str], scope: StateScope
    ) -> StateSnapshot:
        written = StateSnapshot()
        with self._lock:
            document = self._read_all()
            entries = document.setdefault(scope.value, {})
            current = {key: entry["version"] for key, entry in entries.items()}
            stale = _stale_keys(current, expected, changes)
            if stale:
                raise StateConflictError(
                    f"{scope.value} keys {stale} in {self.path} changed since they were read"
                )
            for key, value in changes.items():
                version = str(int(current.get(key) or 0) + 1)
                entries[key] = {"value": value, "version": version}
                written.values[key] = value
                written.versions[key] = version
            self._write_all(document)
        return written

    async def delete(self, keys: Iterable[str], scope: StateScope) -> None:
        with self._lock:
            document = self._read_all()
            entries = document.get(scope.value, {})
            for key in keys:
                entries.pop(key, None)
            self._write_all(document)

    async def clear(self, scope: StateScope) -> None:
        with self._lock:
            document = self._read_all()
            document.pop(scope.value, None)
            self._write_all(document)


class DaprStateBackend(StateBackend):
    """Cluster-visible backend on a Dapr state store component.

    Every key is its own Dapr entry, ``{component_id}-{scope}:{key}``, and the
    Dapr etag is its version. Updates run as one state transaction carrying
    the etags that were read. A key created for the first time has no etag to
    check, so two writers creating the same key at once resolve last-write-wins.

    Dapr cannot list keys, so the keys of a scope are also recorded in an
    index entry, ``{component_id}-{scope}-index``, which only :meth:`clear`
    reads. Index writes retry on conflict.
    """

    def __init__(self, component_id: str, store_name: str):
        self.component_id = component_id
        self.store_name = store_name

    def _key(self, key: str, scope: StateScope) -> str:
        return f"{self.component_id}-{scope.value}:{key}"

    def _index_key(self, scope: StateScope) -> str:
        return f"{self.component_id}-{scope.value}-index"

    async def get_state(self, keys: Iterable[str], scope: StateScope) -> StateSnapshot:
        keys = list(keys)
        snapshot = StateSnapshot()
        if not keys:
            return snapshot
        names = {self._key(key, scope): key for key in keys}
        try:
            with DaprClient() as client:
                response = client.get_bulk_state(
                    store_name=self.store_name, keys=list(names)
                )
        except Exception as e:
            logger.error(f"Failed to read {self.component_id} state: {str(e)}")
            raise StateUnavailableError(str(e))

        for item in response.items:
            if item.error:
                raise StateUnavailableError(f"cannot read {item.key}: {item.error}")
            if item.data:
                key = names[item.key]
                snapshot.values[key] = item.data.decode("utf-8")
                snapshot.versions[key] = item.etag
        return snapshot

    async def update(
        self, expected: StateSnapshot, changes: Dict[str, str], scope: StateScope
    ) -> StateSnapshot:
        operations = [
            TransactionalStateOperation(
                key=self._key(key, scope),
                data=value,
                etag=expected.versions.get(key),
                operation_type=TransactionOperationType.upsert,
            )
            for key, value in changes.items()
        ]
        try:
            with DaprClient() as client:
                client.execute_state_transaction(
                    store_name=self.store_name, operations=operations
                )
        except Exception as e:
            if "etag" in str(e).lower():
                raise StateConflictError(
                    f"{self.component_id} keys {list(changes)} were modified concurrently: {e}"
                )
            logger.error(f"Failed to save {self.component_id} state: {str(e)}")
            raise StateUnavailableError(str(e))

        created = [key for key in changes if key not in expected.versions]
        if created:
            await self._update_index(scope, add=created)
        return await self.get_state(changes, scope)

    async def delete(self, keys: Iterable[str], scope: StateScope) -> None:
        keys = list(keys)
        if not keys:
            return
        operations = [
            TransactionalStateOperation(
                key=self._key(key, scope),
                operation_type=TransactionOperationType.delete,
            )
            for key in keys
        ]
        try:
            with DaprClient() as client:
                client.execute_state_transaction(
                    store_name=self.store_name, operations=operations
                )
        except Exception as e:
            logger.error(f"Failed to delete {self.component_id} state: {str(e)}")
            raise StateUnavailableError(str(e))
        await self._update_index(scope, remove=keys)

    async def clear(self, scope: StateScope) -> None:
        keys, _ = self._read_index(scope)
        await self.delete(keys, scope)
        try:
            with DaprClient() as client:
                client.delete_state(store_name=self.store_name, key=self._index_key(scope))
        except Exception as e:
            logger.error(f"Failed to clear {self.component_id} state: {str(e)}")
            raise StateUnavailableError(str(e))

    def _read_index(self, scope: StateScope) -> Tuple[List[str], Optional[str]]:
        try:
            with DaprClient() as client:
                state = client.get_state(
                    store_name=self.store_name, key=self._index_key(scope)
                )
        except Exception as e:
            logger.error(f"Failed to read {self.component_id} key index: {str(e)}")
            raise StateUnavailableError(str(e))
        if not state.data:
            return [], state.etag or None
        return json.loads(state.data), state.etag or None

    async def _update_index(
        self,
        scope: StateScope,
        add: Iterable[str] = (),
        remove: Iterable[str] = (),
    ) -> None:
        add, remove = set(add), set(remove)
        for _ in range(STATE_INDEX_RETRIES):
            keys, etag = self._read_index(scope)
            updated = sorted((set(keys) | add) - remove)
            try:
                with DaprClient() as client:
                    client.save_state(
                        store_name=self.store_name,
                        key=self._index_key(scope),
                        value=json.dumps(updated),
                        etag=etag,
                        options=StateOptions(concurrency=Concurrency.first_write),
                    )
                return
            except Exception as e:
                if "etag" not in str(e).lower():
                    logger.error(f"Failed to save {self.component_id} key index: {str(e)}")
                    raise StateUnavailableError(str(e))
                logger.debug(f"Key index of {self.component_id} moved, retrying")
        logger.warning(
            f"Key index of {self.component_id} kept changing after "
            f"{STATE_INDEX_RETRIES} attempts, clear() may miss {sorted(add)}"
        )
