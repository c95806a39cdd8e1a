"""Database setup and session management."""

import logging
from functools import lru_cache

from sqlalchemy import create_engine, text
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def _connect_args(database_url: str) -> dict:
    """Driver-level connect arguments carrying the configured timeout.

    SQLite takes a busy timeout in seconds; PostgreSQL drivers take a
    ``connect_timeout``.
    """
    timeout = settings.DATABASE_TIMEOUT_SECONDS
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False, "timeout": timeout}
    if database_url.startswith("postgresql"):
        return {"connect_timeout": timeout}
    return {}


@lru_cache
def get_engine():
    """Get or create the database engine (cached)."""
    database_url = settings.DATABASE_URL
    kwargs = {
        "connect_args": _connect_args(database_url),
        "echo": False,
        "pool_pre_ping": True,
    }
    if not database_url.startswith("sqlite"):
        kwargs["pool_timeout"] = settings.DATABASE_TIMEOUT_SECONDS

    engine = create_engine(database_url, **kwargs)
    logger.info("Database engine created for %s", engine.url.get_backend_name())
    return engine


def get_session_local():
    """Get a sessionmaker bound to the engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine())


def init_db() -> None:
    """Create all tables that do not exist yet."""
    import models  # noqa: F401  (registers the mappers on Base.metadata)

    Base.metadata.create_all(bind=get_engine())


def check_connection(db) -> bool:
    """Run a trivial query to verify the database is reachable."""
    db.execute(text("SELECT 1"))
    return True


def get_db():
    """Dependency that provides a database session.

    Transaction conventions:
    - Default: services ``flush()``, API layer ``commit()``
    - Exceptions that commit internally:
      - ``ExchangeService.exchange_and_sync()``: commits after every stage so
        a later stage failure never rolls back an earlier one
      - ``TransactionSyncService.sync_owner()``: commits per linked account
    """
    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
