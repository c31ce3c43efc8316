"""
store/memory.py — In-process KeyValueStore.

Used by the unit tests and by single-worker deployments (LEDGER_STORE=memory).
The lock is held only for the duration of one get_many or atomic_multi_update
call, which is what makes a multi-key update atomic here; callers never hold
it across their own work.
"""

from __future__ import annotations

import copy
import threading
from typing import Any, Iterable

from groupledger.app.store.base import ABSENT, KeyValueStore, VersionConflict, Versioned


class MemoryStore(KeyValueStore):

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._entries: dict[str, Versioned] = {}
        self._lock = threading.Lock()
        for path, value in (initial or {}).items():
            self._entries[path] = Versioned(copy.deepcopy(value), 1)

    def get_many(self, paths: Iterable[str]) -> dict[str, Versioned]:
        with self._lock:
            result = {}
            for path in paths:
                entry = self._entries.get(path, ABSENT)
                result[path] = Versioned(copy.deepcopy(entry.value), entry.version)
            return result

    def atomic_multi_update(
            self,
            updates: dict[str, Any],
            expected_versions: dict[str, int] | None = None,
    ) -> None:
        with self._lock:
            conflicts = [
                path
                for path, version in (expected_versions or {}).items()
                if self._entries.get(path, ABSENT).version != version
            ]
            if conflicts:
                raise VersionConflict(conflicts)

            for path, value in updates.items():
                current = self._entries.get(path, ABSENT)
                if value is None:
                    self._entries.pop(path, None)
                else:
                    self._entries[path] = Versioned(copy.deepcopy(value), current.version + 1)

    def paths(self) -> list[str]:
        """Sorted list of stored paths. Handy when debugging a test."""
        with self._lock:
            return sorted(self._entries)

    def snapshot(self) -> dict[str, Any]:
        """Deep copy of every stored value, keyed by path."""
        with self._lock:
            return {path: copy.deepcopy(entry.value) for path, entry in self._entries.items()}
