"""Database bootstrap and schema administration (SQLite + PostgreSQL + Alembic).

Entry point: ``python -m interview_analyzer.db_bootstrap <command>``

- ``migrate``: stamp a pre-Alembic database to ``0001_legacy_schema`` and
  upgrade to head, folding the legacy suggestion tables into ``features``.
- ``rollback``: downgrade to ``0001_legacy_schema``, moving pending
  suggestions back into the legacy tables.
- ``bootstrap-if-missing``: create an empty database via migrations.

On API startup the same code runs as a deployment safety net (see
``maybe_bootstrap_db_on_startup``). FastAPI lifespan runs once per worker
process, so every command is protected by an inter-process lock.
"""

from __future__ import annotations

import argparse
import logging
import os
import time
import traceback
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from interview_analyzer.db_config import DatabaseBackend, get_database_url, normalize_database_url
from interview_analyzer.exceptions import MigrationError
from interview_analyzer.schema_store import (
    MIGRATION_RESULT_KEY,
    ROLLBACK_RESULT_KEY,
    MigrationResult,
    RollbackResult,
)

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "migrations"
LEGACY_REVISION = "0001_legacy_schema"


def _truthy(v: str | None) -> bool:
    if v is None:
        return False
    return v.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _db_path_from_url(url: str) -> str:
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "", 1)
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "", 1)
    return url


@dataclass(frozen=True)
class BootstrapPlan:
    database_url: str
    db_path: str  # Only used for SQLite
    lock_path: str
    backend: DatabaseBackend


def _bootstrap_plan(database_url: str | None = None) -> BootstrapPlan:
    url = normalize_database_url(database_url or get_database_url())

    if not url.startswith("sqlite"):
        return BootstrapPlan(
            database_url=url,
            db_path="",  # Not applicable for PostgreSQL
            lock_path="/tmp/interview-analyzer-db-bootstrap.lock",
            backend=DatabaseBackend.POSTGRESQL,
        )

    # Keep the lock next to the DB so it works across processes sharing that volume.
    db_path_abs = str(Path(_db_path_from_url(url)).expanduser().resolve())
    return BootstrapPlan(
        database_url=url,
        db_path=db_path_abs,
        lock_path=f"{db_path_abs}.bootstrap.lock",
        backend=DatabaseBackend.SQLITE,
    )


@contextmanager
def _interprocess_lock(lock_path: str, timeout_s: float) -> Iterator[None]:
    """Acquire an exclusive lock using POSIX advisory locks (works across processes)."""
    import fcntl

    start = time.time()
    lock_file = Path(lock_path)
    lock_file.parent.mkdir(parents=True, exist_ok=True)

    with lock_file.open("a+") as f:
        while True:
            try:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError as e:
                if time.time() - start >= timeout_s:
                    raise TimeoutError(f"Timed out waiting for DB bootstrap lock: {lock_path}") from e
                time.sleep(0.2)

        f.seek(0)
        f.truncate(0)
        f.write(f"pid={os.getpid()} acquired_at={time.time():.3f}\n")
        f.flush()
        try:
            yield
        finally:
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)


def _list_tables(database_url: str) -> list[str]:
    """List tables through the SQLAlchemy inspector (works for both backends)."""
    from sqlalchemy import create_engine, inspect
    from sqlalchemy.pool import NullPool

    engine = create_engine(database_url, poolclass=NullPool)
    try:
        return inspect(engine).get_table_names()
    finally:
        engine.dispose()


def _alembic_config(database_url: str):
    from alembic.config import Config

    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    # configparser interpolation: a literal % (URL-encoded passwords) must be doubled
    cfg.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))
    return cfg


def _stamp_legacy_if_untracked(database_url: str) -> None:
    from alembic import command

    tables = _list_tables(database_url)
    user_tables = [t for t in tables if t != "alembic_version" and not t.startswith("sqlite_")]
    if user_tables and "alembic_version" not in tables:
        print(f"📌 Stamping legacy database to {LEGACY_REVISION}...")
        command.stamp(_alembic_config(database_url), LEGACY_REVISION)


def migrate_schema(database_url: str | None = None) -> MigrationResult:
    """Upgrade the database to head and report what the unification moved.

    Returns ``already_migrated=True`` with zero counts when the unification
    revision did not run (database already past it).
    """
    from alembic import command

    plan = _bootstrap_plan(database_url)
    try:
        _stamp_legacy_if_untracked(plan.database_url)
        cfg = _alembic_config(plan.database_url)
        print("🔄 Applying pending migrations...")
        command.upgrade(cfg, "head")
    except Exception as e:
        logger.exception("Schema migration failed")
        raise MigrationError("migrate", e) from e

    result = cfg.attributes.get(MIGRATION_RESULT_KEY)
    if result is None:
        result = MigrationResult(already_migrated=True)
    logger.info("Migration complete: %s", result.as_dict())
    return result


def rollback_schema(database_url: str | None = None) -> RollbackResult:
    """Downgrade to the legacy schema and report how many suggestions moved back."""
    from alembic import command

    plan = _bootstrap_plan(database_url)
    try:
        cfg = _alembic_config(plan.database_url)
        print(f"⏪ Downgrading to {LEGACY_REVISION}...")
        command.downgrade(cfg, LEGACY_REVISION)
    except Exception as e:
        logger.exception("Schema rollback failed")
        raise MigrationError("rollback", e) from e

    result = cfg.attributes.get(ROLLBACK_RESULT_KEY)
    if result is None:
        result = RollbackResult(already_rolled_back=True)
    logger.info("Rollback complete: %s", result.as_dict())
    return result


def _bootstrap_if_missing(plan: BootstrapPlan) -> None:
    """Create the database via migrations when it is missing or has no tables.

    SQLite creates the .db file on first connection, so the file can exist
    with zero tables. Check for actual user tables, not just file existence.
    """
    if plan.backend == DatabaseBackend.SQLITE and not Path(plan.db_path).exists():
        print(f"📦 DB missing; creating via migrations: {plan.db_path}")
    else:
        tables = _list_tables(plan.database_url)
        user_tables = [t for t in tables if t != "alembic_version" and not t.startswith("sqlite_")]
        if user_tables:
            print(f"✅ Database already has {len(user_tables)} tables")
            return
        print("📦 Database has no tables; bootstrapping via migrations...")

    from alembic import command

    command.upgrade(_alembic_config(plan.database_url), "head")
    print("✅ Database created successfully!")


def _lock_timeout(lock_timeout_s: float | None) -> float:
    if lock_timeout_s is not None:
        return float(lock_timeout_s)
    return float(os.getenv("DB_BOOTSTRAP_LOCK_TIMEOUT_S", "300"))


def bootstrap_database(*, full: bool, database_url: str | None = None, lock_timeout_s: float | None = None) -> None:
    """Bootstrap the database via Alembic, protected by an inter-process lock.

    ``full=True`` stamps legacy databases and upgrades to head;
    ``full=False`` only creates a missing database.
    """
    plan = _bootstrap_plan(database_url)
    print(f"🔍 Database backend: {plan.backend.value}")

    with _interprocess_lock(plan.lock_path, timeout_s=_lock_timeout(lock_timeout_s)):
        # Re-check under the lock.
        if full:
            migrate_schema(plan.database_url)
        else:
            _bootstrap_if_missing(plan)


def maybe_bootstrap_db_on_startup() -> None:
    """Run a safe DB bootstrap during app startup when configured/needed.

    Behavior:
    - Default: create DB *only if missing* (safe fallback).
    - If `DB_BOOTSTRAP_ON_STARTUP=true`: run full migrate (stamp legacy + upgrade head).
    - If `DB_BOOTSTRAP_ON_STARTUP=false`: disable entirely.
    """
    mode_raw = os.getenv("DB_BOOTSTRAP_ON_STARTUP")
    if mode_raw is not None and not _truthy(mode_raw):
        # Explicitly disabled.
        return

    full = _truthy(mode_raw) if mode_raw is not None else False
    try:
        bootstrap_database(full=full)
    except Exception as e:
        # Don't hard-fail app startup; requests will surface DB errors.
        print(f"❌ Error during DB bootstrap: {e}")
        traceback.print_exc()


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Schema administration for the interview analyzer database.")
    sub = p.add_subparsers(dest="command", required=True)

    help_by_command = {
        "migrate": "Stamp legacy DBs, upgrade to head and fold suggestions into features.",
        "rollback": f"Downgrade to {LEGACY_REVISION}, restoring pending suggestions to the legacy tables.",
        "bootstrap-if-missing": "Create DB via migrations only when DB is missing/empty.",
    }
    for name, help_text in help_by_command.items():
        sp = sub.add_parser(name, help=help_text)
        sp.add_argument("--database-url", default=None, help="Override DATABASE_URL (otherwise uses env/default).")
        sp.add_argument(
            "--lock-timeout-s",
            type=float,
            default=None,
            help="Time to wait for inter-process lock (defaults to DB_BOOTSTRAP_LOCK_TIMEOUT_S or 300).",
        )

    return p


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    args = _build_arg_parser().parse_args(argv)
    plan = _bootstrap_plan(args.database_url)
    timeout_s = _lock_timeout(args.lock_timeout_s)

    try:
        with _interprocess_lock(plan.lock_path, timeout_s=timeout_s):
            if args.command == "migrate":
                result = migrate_schema(plan.database_url)
                if result.already_migrated:
                    print("✅ Already migrated, nothing to do")
                print(
                    f"✅ Migrated {result.features_migrated} suggestions "
                    f"and {result.quotes_migrated} quotes"
                )
                return 0
            if args.command == "rollback":
                result = rollback_schema(plan.database_url)
                print(f"✅ Restored {result.suggestions_restored} pending suggestions")
                return 0
            if args.command == "bootstrap-if-missing":
                _bootstrap_if_missing(plan)
                return 0
        raise AssertionError(f"Unhandled command: {args.command}")
    except Exception as e:
        print(f"❌ {args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
