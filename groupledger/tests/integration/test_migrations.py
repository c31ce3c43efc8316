"""
tests/integration/test_migrations.py — The Alembic revision against a real engine.

What this file proves:
  - 001_ledger_entries creates exactly the table the LedgerEntry model maps
    (same columns, path as primary key)
  - A ledger row can be written to and read back from the migrated table
  - downgrade() removes the table again

Runs the revision through alembic's Operations on a throwaway in-memory SQLite
engine, independent of the app's db.create_all().
"""

from __future__ import annotations

import importlib

import pytest
import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations

from groupledger.app.models.ledger_entry import LedgerEntry

revision = importlib.import_module("groupledger.migrations.versions.001_ledger_entries")


# ── Helpers ────────────────────────────────────────────────────────────────

def _run(connection, step) -> None:
    ctx = MigrationContext.configure(connection)
    with Operations.context(ctx):
        step()


@pytest.fixture
def connection():
    engine = sa.create_engine("sqlite://")
    with engine.begin() as conn:
        yield conn
    engine.dispose()


# ── Tests ──────────────────────────────────────────────────────────────────

def test_upgrade_matches_model(connection):
    _run(connection, revision.upgrade)

    inspector = sa.inspect(connection)
    assert inspector.get_table_names() == [LedgerEntry.__tablename__]
    columns = {c["name"] for c in inspector.get_columns(LedgerEntry.__tablename__)}
    assert columns == set(LedgerEntry.__table__.columns.keys())
    pk = inspector.get_pk_constraint(LedgerEntry.__tablename__)
    assert pk["constrained_columns"] == ["path"]


def test_migrated_table_accepts_ledger_rows(connection):
    _run(connection, revision.upgrade)

    connection.execute(
        sa.insert(LedgerEntry.__table__).values(path="groups/g1", value={"name": "Trip"}, version=1)
    )
    row = connection.execute(
        sa.select(LedgerEntry.__table__.c.value, LedgerEntry.__table__.c.version)
    ).one()

    assert row.value == {"name": "Trip"}
    assert row.version == 1


def test_downgrade_drops_table(connection):
    _run(connection, revision.upgrade)
    _run(connection, revision.downgrade)

    assert sa.inspect(connection).get_table_names() == []
