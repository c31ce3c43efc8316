"""
tests/unit/test_memory_store.py — Unit tests for the in-process KeyValueStore.

What this file proves:
  - Missing paths read as (None, 0)
  - Every write bumps the version by one
  - A failed guard rejects the WHOLE update; nothing is written
  - Guards may name paths that are not being written
  - None deletes
  - Reads hand out copies
"""

from __future__ import annotations

import pytest

from groupledger.app.store.base import ABSENT, VersionConflict
from groupledger.app.store.memory import MemoryStore


def test_missing_path_is_absent():
    store = MemoryStore()
    assert store.get_versioned("x") == ABSENT
    assert store.get("x") is None


def test_initial_entries_start_at_version_one():
    store = MemoryStore({"a": {"n": 1}})
    assert store.get_versioned("a").version == 1


def test_writes_bump_version():
    store = MemoryStore()
    store.atomic_multi_update({"a": 1}, {"a": 0})
    store.atomic_multi_update({"a": 2}, {"a": 1})

    assert store.get_versioned("a") == (2, 2)


def test_conflict_rejects_whole_update():
    store = MemoryStore({"b": "old"})

    with pytest.raises(VersionConflict) as exc_info:
        store.atomic_multi_update({"a": 1, "b": "new"}, {"a": 0, "b": 5})

    assert exc_info.value.paths == ("b",)
    assert store.get("a") is None
    assert store.get("b") == "old"


def test_guard_on_unwritten_path():
    store = MemoryStore({"guard": 1})

    with pytest.raises(VersionConflict):
        store.atomic_multi_update({"a": 1}, {"guard": 0})

    store.atomic_multi_update({"a": 1}, {"guard": 1})
    assert store.get("a") == 1


def test_none_deletes():
    store = MemoryStore({"a": 1})
    store.atomic_multi_update({"a": None})

    assert store.get_versioned("a") == ABSENT
    assert store.paths() == []


def test_reads_are_copies():
    store = MemoryStore({"a": {"list": [1]}})
    value = store.get("a")
    value["list"].append(2)

    assert store.get("a") == {"list": [1]}
