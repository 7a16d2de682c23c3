"""
Engine and session factory helpers. Nothing is created at import time: the
service container builds the engine at startup and disposes it at shutdown.
"""
from typing import Any

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ideon.db.models import Base


def create_db_engine(url: str, **kwargs: Any) -> Engine:
    """Create an engine, adjusting connect args for SQLite."""
    if url.startswith("sqlite"):
        # In-memory SQLite needs StaticPool so all connections share the same DB
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs.setdefault("poolclass", StaticPool)
            kwargs.pop("pool_size", None)
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(url, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create all tables."""
    Base.metadata.create_all(bind=engine)
