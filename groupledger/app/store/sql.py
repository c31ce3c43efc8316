"""
store/sql.py — KeyValueStore backed by the ledger_entries table.

Each atomic_multi_update runs in one database transaction:

  1. Writes to existing paths are `UPDATE ... WHERE path = :p AND version = :v`.
     Zero affected rows means somebody else got there first.
  2. Writes to absent paths (expected version 0) are plain INSERTs; a primary
     key collision means the path was created concurrently.
  3. Guard-only paths (expected but not written) are re-read FOR UPDATE after
     the writes and compared.

Any mismatch rolls the transaction back and raises VersionConflict. Database
connectivity problems become StoreUnavailable. The store commits its own work;
callers never call db.session.commit() around it.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError, OperationalError

from groupledger.app.errors import StoreUnavailable
from groupledger.app.models.ledger_entry import LedgerEntry
from groupledger.app.store.base import ABSENT, KeyValueStore, VersionConflict, Versioned

logger = logging.getLogger(__name__)


class SqlStore(KeyValueStore):

    def __init__(self, session) -> None:
        self.session = session

    def get_many(self, paths: Iterable[str]) -> dict[str, Versioned]:
        paths = list(paths)
        try:
            rows = self.session.execute(
                select(LedgerEntry)
                .where(LedgerEntry.path.in_(paths))
                .execution_options(populate_existing=True)
            ).scalars().all()
            found = {row.path: Versioned(row.value, row.version) for row in rows}
            # End the read transaction so the next read sees fresh data.
            self.session.commit()
        except OperationalError as exc:
            self.session.rollback()
            logger.error("ledger store read failed: %s", exc)
            raise StoreUnavailable() from exc

        return {path: found.get(path, ABSENT) for path in paths}

    def atomic_multi_update(
            self,
            updates: dict[str, Any],
            expected_versions: dict[str, int] | None = None,
    ) -> None:
        expected_versions = expected_versions or {}
        conflicts: list[str] = []

        try:
            for path, value in updates.items():
                expected = expected_versions.get(path)
                if not self._write(path, value, expected):
                    conflicts.append(path)

            if not conflicts:
                guard_paths = [p for p in expected_versions if p not in updates]
                conflicts.extend(self._check_guards(guard_paths, expected_versions))

            if conflicts:
                self.session.rollback()
                raise VersionConflict(conflicts)

            self.session.commit()

        except IntegrityError as exc:
            # INSERT raced with another writer creating the same path.
            self.session.rollback()
            raise VersionConflict(updates.keys()) from exc
        except OperationalError as exc:
            self.session.rollback()
            logger.error("ledger store write failed: %s", exc)
            raise StoreUnavailable() from exc

    # ── Private helpers ────────────────────────────────────────────────────

    def _write(self, path: str, value: Any, expected: int | None) -> bool:
        """Applies one write; returns False when the version precondition fails."""
        if value is None:
            stmt = (
                delete(LedgerEntry)
                .where(LedgerEntry.path == path)
                .execution_options(synchronize_session=False)
            )
            if expected is not None:
                if expected == 0:
                    return self._current_version(path) == 0
                stmt = stmt.where(LedgerEntry.version == expected)
            result = self.session.execute(stmt)
            return expected is None or result.rowcount == 1

        if expected == 0:
            self._insert(path, value)
            return True

        stmt = (
            update(LedgerEntry)
            .where(LedgerEntry.path == path)
            .values(value=value, version=LedgerEntry.version + 1)
            .execution_options(synchronize_session=False)
        )
        if expected is not None:
            stmt = stmt.where(LedgerEntry.version == expected)
        result = self.session.execute(stmt)
        if result.rowcount == 1:
            return True
        if expected is not None:
            return False

        # Unconditional write to a path that does not exist yet.
        self._insert(path, value)
        return True

    def _insert(self, path: str, value: Any) -> None:
        """Plain INSERT; a primary key collision surfaces as IntegrityError."""
        self.session.execute(insert(LedgerEntry).values(path=path, value=value, version=1))

    def _current_version(self, path: str) -> int:
        version = self.session.execute(
            select(LedgerEntry.version).where(LedgerEntry.path == path)
        ).scalar_one_or_none()
        return version or 0

    def _check_guards(self, paths: list[str], expected_versions: dict[str, int]) -> list[str]:
        if not paths:
            return []
        rows = self.session.execute(
            select(LedgerEntry.path, LedgerEntry.version)
            .where(LedgerEntry.path.in_(paths))
            .with_for_update()
        ).all()
        current = {row.path: row.version for row in rows}
        return [p for p in paths if current.get(p, 0) != expected_versions[p]]
