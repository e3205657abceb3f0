"""Database configuration and base setup for the deploy ledger."""

from typing import Optional

import structlog
from sqlalchemy import Engine, create_engine
from sqlalchemy.engine.url import URL, make_url
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

logger = structlog.get_logger()


class Base(DeclarativeBase):
    """Base class for all ledger models."""

    pass


# Default to a local SQLite database when no URL is configured.
DEFAULT_DATABASE_URL = "sqlite:///./deploy_ledger.db"


def _ensure_sync_driver(url: URL) -> URL:
    """Force a synchronous driver; the ledger never runs on an event loop."""

    if url.drivername.startswith("postgresql+"):
        if any(token in url.drivername for token in ("async", "aiopg")):
            url = url.set(drivername="postgresql+psycopg")
    elif url.drivername.startswith("mysql+"):
        if any(token in url.drivername for token in ("aiomysql", "asyncmy")):
            url = url.set(drivername="mysql+pymysql")
    elif url.drivername.startswith("sqlite+"):
        if "aiosqlite" in url.drivername:
            url = url.set(drivername="sqlite")

    return url


def get_database_url(raw_url: Optional[str] = None) -> str:
    """Return a database URL with a guaranteed synchronous driver."""
    from ..config import get_settings

    url = make_url(raw_url or get_settings().database_url or DEFAULT_DATABASE_URL)
    # render_as_string keeps the password; str(url) would mask it
    return _ensure_sync_driver(url).render_as_string(hide_password=False)


_engine: Optional[Engine] = None


def get_engine(database_url: Optional[str] = None) -> Engine:
    """
    Create and cache the database engine.

    Lazy so that settings are read at first use rather than at import time.
    Asking for a different URL than the cached engine's rebuilds it.
    """
    global _engine
    database_url = get_database_url(database_url)
    if _engine is not None:
        if _engine.url.render_as_string(hide_password=False) == database_url:
            return _engine
        reset_engine()

    if database_url.startswith("sqlite"):
        _engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        _engine = create_engine(
            database_url,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
            pool_recycle=3600,
        )

    return _engine


def reset_engine() -> None:
    """Dispose of the cached engine so the next call rebuilds it."""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None


def get_session_local(bind: Optional[Engine] = None) -> sessionmaker:
    """Get a sessionmaker bound to the given or current engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=bind or get_engine())


def init_database(bind: Optional[Engine] = None) -> None:
    """Create all ledger tables that do not exist yet."""
    # Import the models so they register with Base
    from . import models  # noqa: F401

    engine = bind or get_engine()
    Base.metadata.create_all(bind=engine)
    logger.info("ledger_schema_created", url=engine.url.render_as_string())
