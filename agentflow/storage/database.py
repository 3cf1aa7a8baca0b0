"""Engine and session helpers for the execution store."""

import os
from typing import Optional

from sqlalchemy import create_engine, Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

DEFAULT_DATABASE_URL = "sqlite:///./agentflow.db"

Base = declarative_base()

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _is_in_memory(database_url: str) -> bool:
    return database_url.startswith("sqlite") and (":memory:" in database_url or database_url.rstrip("/") == "sqlite:")


def build_engine(database_url: str, echo: bool = False, connect_args: Optional[dict] = None) -> Engine:
    """Create an engine for ``database_url``.

    SQLite connections may be used from the worker threads of parallel
    branches, so same-thread checking is disabled. An in-memory database
    lives on a single shared connection, otherwise every session would
    see an empty database.
    """
    is_sqlite = database_url.startswith("sqlite")
    if connect_args is None:
        connect_args = {"check_same_thread": False} if is_sqlite else {}

    if _is_in_memory(database_url):
        return create_engine(database_url, echo=echo, connect_args=connect_args, poolclass=StaticPool)
    if is_sqlite:
        return create_engine(database_url, echo=echo, connect_args=connect_args)
    return create_engine(database_url, echo=echo, connect_args=connect_args, pool_pre_ping=True)


def get_database_engine(database_url: Optional[str] = None,
                        echo: bool = False,
                        connect_args: Optional[dict] = None) -> Engine:
    """The process-wide engine, created on first use."""
    global _engine
    if _engine is None:
        url = database_url or os.getenv("AGENTFLOW_DATABASE_URL", DEFAULT_DATABASE_URL)
        _engine = build_engine(url, echo=echo, connect_args=connect_args)
    return _engine


def get_session_factory(engine: Optional[Engine] = None) -> sessionmaker:
    """Session factory bound to ``engine``, or to the process-wide engine."""
    global _session_factory
    if engine is not None:
        return sessionmaker(autoflush=False, expire_on_commit=False, bind=engine)
    if _session_factory is None:
        _session_factory = sessionmaker(autoflush=False, expire_on_commit=False, bind=get_database_engine())
    return _session_factory


def reset_database_engine():
    """Dispose of the process-wide engine (mainly for testing)."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


def create_tables(engine: Optional[Engine] = None):
    """Create the execution tables if they do not exist."""
    from . import models  # noqa: F401  registers the tables on Base.metadata
    Base.metadata.create_all(bind=engine or get_database_engine())


def drop_tables(engine: Optional[Engine] = None):
    from . import models  # noqa: F401
    Base.metadata.drop_all(bind=engine or get_database_engine())
