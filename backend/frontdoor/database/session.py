"""
Database engine and session factory.

The engine is built once by the service container from Settings and passed
to whatever needs sessions; there is no module-level engine.
"""

import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from frontdoor.config.settings import normalize_database_url
from frontdoor.db_base import Base

logger = logging.getLogger(__name__)


def create_db_engine(database_url: str) -> Engine:
    """
    Create an engine for database_url.

    SQLite connections are shared across worker threads; in-memory SQLite
    uses a single static connection so every session sees the same data.
    Other databases get a connection pool with pre-ping.
    """
    database_url = normalize_database_url(database_url)
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, **kwargs)
    else:
        engine = create_engine(
            database_url,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
    logger.info("Database engine created", extra={"dialect": engine.dialect.name})
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_schema(engine: Engine) -> None:
    """Create any missing tables."""
    import frontdoor.models  # noqa: F401  registers models on Base.metadata

    Base.metadata.create_all(bind=engine)
