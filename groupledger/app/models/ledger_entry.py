"""
models/ledger_entry.py — LedgerEntry table definition.

One row per store path. The SqlStore (store/sql.py) is the only writer; no
business logic lives here.

version starts at 1 on insert and increases by one on every write. A path
without a row has version 0 as far as the store contract is concerned.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, CheckConstraint, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from groupledger.app.extensions import db


class LedgerEntry(db.Model):
    __tablename__ = "ledger_entries"

    __table_args__ = (
        CheckConstraint("version > 0", name="ck_ledger_entries_version_positive"),
    )

    path: Mapped[str] = mapped_column(String(512), primary_key=True)

    value: Mapped[dict] = mapped_column(JSON, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<LedgerEntry path={self.path!r} version={self.version}>"
