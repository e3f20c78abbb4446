"""Alembic environment script.

This project supports both SQLite and PostgreSQL backends.
For SQLite, many ALTER operations require Alembic "batch mode" ("move and copy").
We enable that via render_as_batch=True.
See: https://alembic.sqlalchemy.org/en/latest/batch.html

All revisions of one ``upgrade``/``downgrade`` run share a single transaction.
On SQLite the engine emits an explicit BEGIN (see
``interview_analyzer.db_config.install_sqlite_transaction_hooks``) so DDL is
rolled back together with the data steps when anything fails.
"""

from __future__ import annotations

from alembic import context
from sqlalchemy import create_engine
from sqlalchemy.pool import NullPool

from interview_analyzer.database import Base
from interview_analyzer.db_config import get_database_url, install_sqlite_transaction_hooks, normalize_database_url

# Alembic Config object provides access to values within the config file.
config = context.config

# NOTE: logging.config.fileConfig() is not called here.
# The project ships no `alembic.ini`; `interview_analyzer.db_bootstrap` builds the
# Alembic Config in Python and configures logging itself.

target_metadata = Base.metadata


def _get_database_url() -> str:
    """Get database URL.

    Priority:
    1. Alembic config override (via set_main_option, e.g. from db_bootstrap.py)
    2. DATABASE_URL / PG* environment variables
    3. SQLite default
    """
    alembic_url = config.get_main_option("sqlalchemy.url")
    if alembic_url:
        return normalize_database_url(alembic_url)
    return get_database_url()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    connectable = config.attributes.get("connection")
    if connectable is not None:
        # Caller supplied a connection (tests, programmatic use); reuse it
        _run_with_connection(connectable)
        return

    url = _get_database_url()
    is_sqlite = url.startswith("sqlite")

    connect_args = {"check_same_thread": False, "timeout": 30} if is_sqlite else {}
    engine = create_engine(url, connect_args=connect_args, poolclass=NullPool)
    if is_sqlite:
        install_sqlite_transaction_hooks(engine)

    with engine.connect() as connection:
        _run_with_connection(connection)
    engine.dispose()


def _run_with_connection(connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=True,  # Required for SQLite, safe for PostgreSQL
        compare_type=True,
        # SQLite DDL is transactional once the engine emits its own BEGIN
        transactional_ddl=True,
    )

    with context.begin_transaction():
        context.run_migrations()


#
# Note: Alembic also supports "offline" migrations (e.g. `alembic upgrade head --sql`)
# where it renders SQL without connecting to the database. The data steps in
# 0002/0003 read rows, so this env.py is "online-only".
#
run_migrations_online()
