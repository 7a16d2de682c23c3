"""Service container built once per process.

Holds the long-lived collaborators (DB engine, quota store, session resolver)
that used to be module globals. ``build_services`` runs in the application
lifespan and ``Services.close`` disposes everything at shutdown.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from fastapi import Request
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from ideon.core.auth import RoleChecker, SessionResolver
from ideon.core.config import Settings, settings as default_settings
from ideon.core.rate_limit import RateLimitService, build_quota_store
from ideon.db.database import create_db_engine, create_session_factory, init_db
from ideon.services.sessions import DatabaseSessionResolver

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    engine: Engine
    session_factory: sessionmaker[Session]
    rate_limiter: RateLimitService
    sessions: SessionResolver
    roles: RoleChecker = field(default_factory=RoleChecker)

    def close(self) -> None:
        self.rate_limiter.close()
        self.engine.dispose()
        logger.info("services.closed")


def build_services(settings: Settings) -> Services:
    """Create the engine, tables, quota store and resolvers for one process."""
    engine = create_db_engine(settings.database.resolved_url())
    init_db(engine)
    session_factory = create_session_factory(engine)

    rate_limiter = RateLimitService(
        build_quota_store(settings),
        enabled=settings.rate_limit.enabled,
    )

    services = Services(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        rate_limiter=rate_limiter,
        sessions=DatabaseSessionResolver(session_factory, settings.app.session_cookie_name),
    )
    logger.info(
        "services.ready",
        extra={
            "db_dialect": engine.dialect.name,
            "rate_limit_shared": rate_limiter.store.shared,
        },
    )
    return services


def get_services(request: Request) -> Services:
    """Dependency: the container attached to the running app."""
    return request.app.state.services


def get_settings(request: Request) -> Settings:
    """Settings of the container serving the request.

    Apps without a container (bare ``FastAPI()`` instances in tests, or a
    request arriving before startup) use the process-wide settings.
    """
    services = getattr(request.app.state, "services", None)
    if services is None:
        return default_settings
    return services.settings
