"""Ledger store table.

Revision: 001_ledger_entries
Created:  2026-10-18

Creates ledger_entries, the single table behind SqlStore (app/store/sql.py).
Every store path (group records, balances, summaries, expenses, settlement
records, member summaries) is one row; `version` drives compare-and-swap.

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_ledger_entries"
down_revision: str | None = None      # first migration, no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:
    op.create_table(
        "ledger_entries",
        sa.Column("path", sa.String(length=512), nullable=False),
        sa.Column("value", sa.JSON(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("path", name="pk_ledger_entries"),
        sa.CheckConstraint("version > 0", name="ck_ledger_entries_version_positive"),
    )


def downgrade() -> None:
    op.drop_table("ledger_entries")
