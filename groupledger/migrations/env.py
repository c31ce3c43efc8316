"""
groupledger/migrations/env.py — Alembic environment for the ledger store.

The schema is a single table, ledger_entries, which backs SqlStore. The
database URL is taken from the same config class the app factory would load
(FLASK_ENV selects development / testing / production), so migrations always
target the database the running service uses. groupledger.config loads the
project and package .env files on import.

Only ledger_entries is managed here. Any other table sharing the database
(for instance a host application's own tables) is ignored by autogenerate.
"""

from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from groupledger.app.extensions import db
from groupledger.app.models.ledger_entry import LedgerEntry
from groupledger.config import ActiveConfig

LEDGER_TABLE = LedgerEntry.__tablename__

target_metadata = db.metadata

# ── Database URL ───────────────────────────────────────────────────────────
db_url = ActiveConfig.SQLALCHEMY_DATABASE_URI
if not db_url:
    raise RuntimeError(
        "No database URL configured for migrations. Set DATABASE_URL "
        "(or TEST_DATABASE_URL with FLASK_ENV=testing)."
    )

config = context.config
config.set_main_option("sqlalchemy.url", db_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def include_object(obj, name, type_, reflected, compare_to) -> bool:
    """Restricts autogenerate to the ledger table and its constraints."""
    if type_ == "table":
        return name == LEDGER_TABLE
    table = getattr(obj, "table", None)
    return table is None or table.name == LEDGER_TABLE


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        include_object=include_object,
        compare_type=True,
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emits SQL for ledger_entries without connecting."""
    _configure(
        url=db_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
