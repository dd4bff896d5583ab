"""Database configuration and base setup for the primary feedback store."""

import os
from typing import Optional

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.engine.url import URL, make_url
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

from ..config import get_settings


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


# Default to a local SQLite database when DATABASE_URL is not provided.
DEFAULT_DATABASE_URL = "sqlite:///./artifact_feedback.db"


def _ensure_sync_driver(url: URL) -> URL:
    """Force a synchronous driver for Alembic and the ORM engine."""

    if url.drivername.startswith("postgresql+"):
        # Normalize any async driver variants to psycopg (sync)
        if any(token in url.drivername for token in ("async", "aiopg")):
            url = url.set(drivername="postgresql+psycopg")
    elif url.drivername.startswith("sqlite+"):
        if "aiosqlite" in url.drivername:
            url = url.set(drivername="sqlite")

    return url


def get_database_url(raw_url: Optional[str] = None) -> str:
    """Return a database URL with a guaranteed synchronous driver."""

    url = make_url(raw_url or os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL)
    # str(url) would mask the password with ***
    return _ensure_sync_driver(url).render_as_string(hide_password=False)


def _begin_immediate(engine: Engine) -> None:
    """Take SQLite's write lock when a transaction begins.

    A deferred transaction that reads and then writes can deadlock against
    another connection doing the same; an immediate one waits on the busy
    timeout instead.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: str) -> Engine:
    """Create an engine tuned for the target dialect."""
    if database_url.startswith("sqlite"):
        # SQLite configuration for development/testing
        if make_url(database_url).database in (None, "", ":memory:"):
            # An in-memory database lives and dies with its one connection
            return create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        # Request handlers run in a threadpool; each checkout gets its own
        # connection so transactions never share a sqlite3 handle.
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 30},
            poolclass=NullPool,
        )
        _begin_immediate(engine)
        return engine

    # PostgreSQL configuration for production
    return create_engine(
        database_url,
        pool_size=20,
        max_overflow=30,
        pool_pre_ping=True,
        pool_recycle=3600,
    )


_engine: Optional[Engine] = None


def get_engine() -> Engine:
    """
    Create and cache the database engine.

    Lazy so environment variables are read at runtime rather than at import.
    """
    global _engine
    if _engine is None:
        _engine = build_engine(get_database_url(get_settings().database_url))
    return _engine


def get_session_local(engine: Optional[Engine] = None) -> sessionmaker:
    """Get a sessionmaker bound to the given engine (or the cached one)."""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine or get_engine(),
    )


def init_database(engine: Optional[Engine] = None) -> None:
    """Create the feedback tables if they do not exist."""
    # Import all models to ensure they're registered with Base
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())
