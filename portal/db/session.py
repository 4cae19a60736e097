"""SQLAlchemy engine and session factory backing the key-value store."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..core.config import settings

# ``Base`` is the parent class for every SQLAlchemy model defined in portal/models.
Base = declarative_base()


def build_engine(url: str) -> Engine:
    """Create an engine, sharing one connection for in-memory SQLite URLs.

    ``sqlite://`` databases live inside a single connection, so every session
    has to reuse it or each one would see an empty database.
    """

    if not url.startswith("sqlite"):
        return create_engine(url)
    kwargs: dict[str, object] = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


engine = build_engine(settings.DB_URL)
# ``SessionLocal`` builds a short-lived session per store operation.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
