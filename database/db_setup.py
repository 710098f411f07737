# database/db_setup.py
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from core.config import DATABASE_URL

# ---------------------------------------------------------------------
# Base class for ORM models
# ---------------------------------------------------------------------
Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column in the schema is naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------
# Engine factory
# ---------------------------------------------------------------------
def get_engine(url: str = DATABASE_URL):
    """
    Return a SQLAlchemy Engine for ``url`` (defaults to DATABASE_URL).

    In-memory SQLite shares a single connection so every session sees the
    same database.

    Example:
        engine = get_engine()
    """
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=False, future=True, **kwargs)
    return create_engine(url, echo=False, future=True, pool_pre_ping=True)


# ---------------------------------------------------------------------
# Session factory
# ---------------------------------------------------------------------
engine = get_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def init_db() -> None:
    """Create all tables that do not exist yet."""
    from database import models  # noqa: F401  (registers mappers)

    Base.metadata.create_all(bind=engine)
