"""
tests/integration/conftest.py — Fixtures for all integration tests.

Design:
  - The app is created once per session using create_app("testing"), which
    points SQLAlchemy at TEST_DATABASE_URL (in-memory SQLite by default) and
    wires BalanceLedger to SqlStore over the ledger_entries table.
  - The table is created once via db.create_all() at session start.
  - Between tests, every ledger entry is deleted and the rate cache cleared,
    so tests are isolated.

Helper functions (make_group, make_expense, ...) live in helpers.py so test
modules can import them by name.
"""

from __future__ import annotations

import pytest
from sqlalchemy import text

from groupledger.app import create_app
from groupledger.app.extensions import db as _db, get_rate_cache


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire session.

    Steps:
      1. Create app with TestingConfig.
      2. Run db.create_all() to create ledger_entries.
      3. Yield the app for the test session.
      4. Drop all tables at teardown.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all ledger entries after EVERY test in the integration suite.
    """
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test
        _db.session.execute(text("DELETE FROM ledger_entries"))
        _db.session.commit()
        get_rate_cache().clear()


# ═══════════════════════════════════════════════════════════════════════════
# Client fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()
