"""Database configuration with PostgreSQL and SQLite support.

This module provides automatic database backend detection:
- If DATABASE_URL points at PostgreSQL, or the libpq environment variables
  (PGHOST, PGDATABASE, PGUSER) are set, PostgreSQL is used via psycopg.
- Otherwise, falls back to SQLite (default behavior).

Environment variables for PostgreSQL:
- DATABASE_URL: full connection URL (``postgres://`` and ``postgresql://`` accepted)
- PGHOST / PGDATABASE / PGUSER / PGPASSWORD: discrete connection settings
- PGPORT: Port (default 5432)
- PGSSLMODE: SSL mode (default 'require' when APP_ENV=production, else 'prefer')
- PGAPPNAME: Application name for connection tracking

Every engine built here hands transaction control to SQLAlchemy: on SQLite the
driver's implicit transaction handling is switched off and an explicit BEGIN
is emitted, so DDL issued by migrations is rolled back together with data
changes when a step fails.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING
from urllib.parse import quote_plus

from interview_analyzer.config import ServerConfig

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

DEFAULT_SQLITE_URL = "sqlite:///./interview_analyzer.db"


class DatabaseBackend(Enum):
    """Supported database backends."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


@dataclass
class PostgresConfig:
    """Configuration for a PostgreSQL connection assembled from PG* variables."""

    host: str
    database: str
    user: str
    password: str = ""
    port: int = 5432
    sslmode: str = "prefer"
    app_name: str = "interview-analyzer"

    @classmethod
    def from_env(cls) -> PostgresConfig | None:
        """Create PostgresConfig from environment variables.

        Returns None if required variables are not set.
        """
        host = os.getenv("PGHOST")
        database = os.getenv("PGDATABASE")
        user = os.getenv("PGUSER")

        if not all([host, database, user]):
            return None

        return cls(
            host=host,  # type: ignore
            database=database,  # type: ignore
            user=user,  # type: ignore
            password=os.getenv("PGPASSWORD", ""),
            port=int(os.getenv("PGPORT", "5432")),
            sslmode=default_sslmode(),
            app_name=os.getenv("PGAPPNAME", "interview-analyzer"),
        )

    def url(self) -> str:
        credentials = quote_plus(self.user)
        if self.password:
            credentials = f"{credentials}:{quote_plus(self.password)}"
        return (
            f"postgresql+psycopg://{credentials}@"
            f"{self.host}:{self.port}/{self.database}"
            f"?sslmode={self.sslmode}"
            f"&application_name={self.app_name}"
        )


def default_sslmode() -> str:
    """SSL mode for PostgreSQL connections; production always requires TLS."""
    explicit = os.getenv("PGSSLMODE")
    if explicit:
        return explicit
    return "require" if ServerConfig.is_production() else "prefer"


def normalize_database_url(url: str) -> str:
    """Map ``postgres://`` style URLs onto the psycopg 3 SQLAlchemy driver."""
    if url.startswith("postgres://"):
        return "postgresql+psycopg://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        return "postgresql+psycopg://" + url[len("postgresql://"):]
    return url


def detect_database_backend() -> DatabaseBackend:
    """Detect which database backend to use based on environment variables.

    Returns:
        DatabaseBackend.POSTGRESQL if DATABASE_URL is a PostgreSQL URL or the
        PG* variables are set, DatabaseBackend.SQLITE otherwise.
    """
    url = os.getenv("DATABASE_URL", "")
    if url.startswith(("postgres://", "postgresql")):
        logger.info("PostgreSQL detected from DATABASE_URL")
        return DatabaseBackend.POSTGRESQL

    pg_config = PostgresConfig.from_env()
    if pg_config is not None:
        logger.info(
            f"PostgreSQL detected: host={pg_config.host}, "
            f"database={pg_config.database}, "
            f"app_name={pg_config.app_name}"
        )
        return DatabaseBackend.POSTGRESQL

    logger.info("PostgreSQL not configured, using SQLite")
    return DatabaseBackend.SQLITE


def get_database_url() -> str:
    """Get the database URL based on detected backend.

    For SQLite: Uses DATABASE_URL env var or default.
    For PostgreSQL: DATABASE_URL when set, else a URL built from PG* vars.
    """
    backend = detect_database_backend()

    if backend == DatabaseBackend.SQLITE:
        return os.getenv("DATABASE_URL") or DEFAULT_SQLITE_URL

    url = os.getenv("DATABASE_URL", "")
    if url:
        return normalize_database_url(url)

    config = PostgresConfig.from_env()
    if config is None:
        raise RuntimeError("PostgreSQL detected but config could not be created")
    return config.url()


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url


def install_sqlite_transaction_hooks(engine: "Engine") -> None:
    """Let SQLAlchemy, not pysqlite, decide where transactions begin.

    Also turns on foreign key enforcement, which SQLite leaves off by default
    and which the ON DELETE CASCADE / SET NULL clauses depend on.
    """
    from sqlalchemy import event

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=60000")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_engine_for_url(url: str, *, echo: bool = False) -> "Engine":
    """Create a pooled SQLAlchemy engine for an explicit URL.

    Args:
        url: SQLAlchemy database URL.
        echo: Log emitted SQL.

    Returns:
        Configured SQLAlchemy engine.
    """
    from sqlalchemy import create_engine
    from sqlalchemy.pool import StaticPool

    url = normalize_database_url(url)

    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 60}
        if _is_memory_sqlite(url):
            # One shared connection, otherwise every checkout sees an empty database
            engine = create_engine(url, connect_args=connect_args, poolclass=StaticPool, echo=echo)
        else:
            engine = create_engine(
                url,
                connect_args=connect_args,
                pool_size=ServerConfig.DB_POOL_SIZE,
                max_overflow=ServerConfig.DB_MAX_OVERFLOW,
                pool_timeout=ServerConfig.DB_POOL_TIMEOUT,
                pool_recycle=ServerConfig.DB_POOL_RECYCLE,
                pool_pre_ping=True,
                echo=echo,
            )
        install_sqlite_transaction_hooks(engine)
        return engine

    connect_args = {}
    if "sslmode=" not in url:
        connect_args["sslmode"] = default_sslmode()

    engine = create_engine(
        url,
        connect_args=connect_args,
        pool_size=ServerConfig.DB_POOL_SIZE,
        max_overflow=ServerConfig.DB_MAX_OVERFLOW,
        pool_timeout=ServerConfig.DB_POOL_TIMEOUT,
        pool_recycle=ServerConfig.DB_POOL_RECYCLE,
        pool_pre_ping=True,
        echo=echo,
    )
    logger.info("PostgreSQL engine created (pool_size=%s)", ServerConfig.DB_POOL_SIZE)
    return engine


def create_engine_for_backend(backend: DatabaseBackend | None = None) -> "Engine":
    """Create the application engine for the detected (or given) backend."""
    if backend is None:
        backend = detect_database_backend()
    if backend == DatabaseBackend.POSTGRESQL:
        return create_engine_for_url(get_database_url())
    return create_engine_for_url(os.getenv("DATABASE_URL") or DEFAULT_SQLITE_URL)
