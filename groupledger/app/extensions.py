"""
extensions.py — Flask extension singletons and ledger wiring.

Initialises SQLAlchemy and marshmallow as module-level objects so they can be
imported anywhere without creating circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db` or `ma` from here wherever needed.

    from groupledger.app.extensions import db, ma

The ledger and the rate cache are NOT module globals. init_ledger(app) stores
them in app.extensions; routes reach them through get_ledger() and
get_rate_cache(), which resolve against current_app.
"""

from flask import current_app
from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Marshmallow instance, available for serialization helpers.
# Import as:  from groupledger.app.extensions import ma
#
# IMPORTANT: schema inheritance rule.
#   All validation Schema classes (in app/schemas/) must inherit from
#   marshmallow.Schema directly, NOT from ma.Schema.
#
#   Reason: ma.Schema requires an active Flask application context. Unit tests
#   in tests/unit/ run without a Flask app. If schemas inherit from ma.Schema,
#   every unit test that instantiates a schema would require an app context
#   fixture.
ma = Marshmallow()

LEDGER_EXTENSION = "ledger"
RATE_CACHE_EXTENSION = "rate_cache"


def init_ledger(app) -> None:
    """
    Builds the store, path layout, BalanceLedger and RateCache for `app`.

    LEDGER_STORE selects the backend:
      "sql"    — SqlStore over db.session (ledger_entries table)
      "memory" — MemoryStore, process-local
    """
    from groupledger.app.errors import AppError, ErrorCode
    from groupledger.app.services.balance_ledger import BalanceLedger
    from groupledger.app.services.currency_service import RateCache
    from groupledger.app.store.memory import MemoryStore
    from groupledger.app.store.paths import PathLayout
    from groupledger.app.store.sql import SqlStore

    backend = app.config.get("LEDGER_STORE", "sql")
    if backend == "sql":
        store = SqlStore(db.session)
    elif backend == "memory":
        store = MemoryStore()
    else:
        raise AppError(
            ErrorCode.INTERNAL_ERROR,
            f"Unknown LEDGER_STORE '{backend}'. Use 'sql' or 'memory'.",
            500,
        )

    app.extensions[LEDGER_EXTENSION] = BalanceLedger(
        store,
        paths=PathLayout.from_config(app.config),
        max_retries=app.config.get("LEDGER_MAX_RETRIES", 5),
    )
    app.extensions[RATE_CACHE_EXTENSION] = RateCache(
        ttl_seconds=app.config.get("RATE_CACHE_TTL_SECONDS", 24 * 60 * 60),
    )
    app.logger.info("ledger initialised with %s store", backend)


def get_ledger():
    return current_app.extensions[LEDGER_EXTENSION]


def get_rate_cache():
    return current_app.extensions[RATE_CACHE_EXTENSION]
