"""
Database connection and session management.

Provides synchronous database access with connection pooling and
session lifecycle management. One engine per process.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

DEFAULT_DATABASE_URL = "sqlite:///data/tenderfeed.db"


# =============================================================================
# Global Engine References
# =============================================================================

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


# =============================================================================
# SQLite Configuration
# =============================================================================


def _is_memory_url(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:")


def _configure_sqlite(engine: Engine, in_memory: bool) -> None:
    """Configure SQLite pragmas on every new connection.

    Enables:
    - Foreign key enforcement
    - WAL mode for file databases
    - Synchronous mode for durability
    """
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if not in_memory:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    # pysqlite's own transaction handling breaks SAVEPOINT; emit BEGIN ourselves
    @event.listens_for(engine, "connect")
    def disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


# =============================================================================
# Engine Creation
# =============================================================================


def get_engine(url: str = DEFAULT_DATABASE_URL, echo: bool = False, pool_size: int = 5) -> Engine:
    """Get or create the database engine.

    Args:
        url: SQLAlchemy database URL
        echo: Whether to log SQL statements
        pool_size: Connection pool size (ignored for SQLite)

    Returns:
        SQLAlchemy Engine instance
    """
    global _engine, _session_factory

    if _engine is not None:
        return _engine

    if url.startswith("sqlite"):
        in_memory = _is_memory_url(url)
        if in_memory:
            # A single shared connection keeps the in-memory schema alive
            _engine = create_engine(
                url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            db_path = url.replace("sqlite:///", "")
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            _engine = create_engine(
                url,
                echo=echo,
                connect_args={"check_same_thread": False},
            )
        _configure_sqlite(_engine, in_memory)
    else:
        _engine = create_engine(
            url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=10,
            pool_pre_ping=True,
        )

    _session_factory = sessionmaker(
        bind=_engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )

    return _engine


# =============================================================================
# Session Management
# =============================================================================


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Get a database session that commits on success.

    Usage:
        with get_session() as session:
            session.execute(...)

    Yields:
        SQLAlchemy Session instance
    """
    if _session_factory is None:
        get_engine()

    assert _session_factory is not None
    session = _session_factory()

    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# =============================================================================
# Database Initialization
# =============================================================================


def init_db(url: str = DEFAULT_DATABASE_URL, echo: bool = False) -> Engine:
    """Create all tables if they don't exist.

    Args:
        url: Database URL
        echo: Whether to log SQL

    Returns:
        The engine the schema was created on
    """
    engine = get_engine(url, echo=echo)
    Base.metadata.create_all(bind=engine)
    return engine


def drop_db(url: str = DEFAULT_DATABASE_URL) -> None:
    """Drop all database tables.

    WARNING: This will delete all data!
    """
    engine = get_engine(url)
    Base.metadata.drop_all(bind=engine)


# =============================================================================
# Cleanup
# =============================================================================


def dispose_engine() -> None:
    """Dispose of the engine; the next call to get_engine builds a fresh one."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
        _engine = None
        _session_factory = None
