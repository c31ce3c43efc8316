"""
store/base.py — The key-value store contract the ledger is written against.

The engine only needs two primitives:

    get(path)                              -> value or None
    atomic_multi_update({path: value|None}) -> all entries commit or none do

plus versions, so that every ledger operation can be a compare-and-swap:
a read returns ``Versioned(value, version)`` and a write may pass
``expected_versions={path: version}``. Version 0 means "absent". If any
expected version no longer matches, the whole update is rejected with
``VersionConflict`` and nothing is written.

Implementations raise ``StoreUnavailable`` (errors.py) on I/O failure.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterable, NamedTuple


class Versioned(NamedTuple):
    value: Any
    version: int


ABSENT = Versioned(None, 0)


class VersionConflict(Exception):
    """A compare-and-swap precondition failed; nothing was written."""

    def __init__(self, paths: Iterable[str]) -> None:
        self.paths = tuple(paths)
        super().__init__(f"Version conflict on: {', '.join(self.paths)}")


class KeyValueStore(ABC):

    @abstractmethod
    def get_many(self, paths: Iterable[str]) -> dict[str, Versioned]:
        """
        Reads several paths as one snapshot.

        Every requested path appears in the result; missing ones map to ABSENT.
        Returned values are copies; mutating them never touches stored state.
        """

    @abstractmethod
    def atomic_multi_update(
            self,
            updates: dict[str, Any],
            expected_versions: dict[str, int] | None = None,
    ) -> None:
        """
        Writes every entry of `updates` together (None deletes the path).

        `expected_versions` may name paths that are not being written; they act
        as read guards. Raises VersionConflict if any guard fails.
        """

    def get_versioned(self, path: str) -> Versioned:
        return self.get_many([path])[path]

    def get(self, path: str) -> Any:
        return self.get_versioned(path).value
