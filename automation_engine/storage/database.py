"""Database connection and session management."""

import os
from typing import Optional

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

DEFAULT_DATABASE_URL = "sqlite:///./automation_engine.db"

# Base class for all database models
Base = declarative_base()

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def create_database_engine(database_url: str, echo: bool = False,
                           connect_args: Optional[dict] = None) -> Engine:
    """Create a new engine with settings appropriate to the backend.

    In-memory SQLite shares one connection across threads; file-backed SQLite
    uses the regular pool with foreign keys switched on.
    """
    is_sqlite = database_url.startswith("sqlite")
    if connect_args is None:
        connect_args = {"check_same_thread": False} if is_sqlite else {}

    if is_sqlite and ":memory:" in database_url:
        engine = create_engine(database_url, connect_args=connect_args, poolclass=StaticPool, echo=echo)
    else:
        engine = create_engine(database_url, connect_args=connect_args, echo=echo, pool_pre_ping=not is_sqlite)

    if is_sqlite:
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def get_database_engine(database_url: Optional[str] = None,
                        echo: bool = False,
                        connect_args: Optional[dict] = None) -> Engine:
    """Get or create the process-wide database engine."""
    global _engine

    if _engine is None:
        if database_url is None:
            database_url = os.getenv("AUTOMATION_ENGINE_DATABASE_URL", DEFAULT_DATABASE_URL)
        _engine = create_database_engine(database_url, echo=echo, connect_args=connect_args)

    return _engine


def get_session_factory(engine: Optional[Engine] = None) -> sessionmaker:
    """Session factory bound to ``engine``, or to the process-wide engine."""
    global _session_factory
    if engine is not None:
        return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    if _session_factory is None:
        _session_factory = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=get_database_engine()
        )
    return _session_factory


def create_tables(engine: Optional[Engine] = None):
    """Create all database tables."""
    from . import models  # noqa: F401  registers the tables on Base.metadata
    Base.metadata.create_all(bind=engine or get_database_engine())


def drop_tables(engine: Optional[Engine] = None):
    """Drop all database tables."""
    from . import models  # noqa: F401
    Base.metadata.drop_all(bind=engine or get_database_engine())
