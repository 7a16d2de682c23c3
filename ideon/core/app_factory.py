"""Application factory for the FastAPI app.

Centralizes app construction (metadata, lifespan, middleware, handlers,
routers) so tests can build isolated apps around their own services.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from ideon.api.routes import (
    auth_router,
    health_router,
    management_router,
    projects_router,
    share_router,
    users_router,
)
from ideon.core.config import Settings, settings as default_settings
from ideon.core.container import Services, build_services
from ideon.core.exception_handlers import setup_exception_handlers
from ideon.core.logging import configure_logging
from ideon.core.middleware import request_id_middleware
from ideon.core.openapi import apply_openapi_customizations


def create_app(
    settings: Settings | None = None,
    *,
    services: Services | None = None,
    configure_logs: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        settings: Settings to build services from; defaults to the global settings.
        services: Prebuilt container. The caller keeps ownership and closes it.
        configure_logs: Install the root log handler (disabled by tests).

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    cfg = settings or (services.settings if services else default_settings)

    # Logging first so subsequent init logs are formatted as desired
    if configure_logs:
        configure_logging(cfg.log)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = services is None
        app.state.services = services or build_services(cfg)
        try:
            yield
        finally:
            if owned:
                app.state.services.close()

    app = FastAPI(
        title="Ideon API",
        description=(
            "Backend for Ideon project canvases: session authentication, "
            "per-action rate limiting, projects, collaborators, share links and the audit trail."
        ),
        version="0.1.0",
        debug=cfg.app.debug,
        lifespan=lifespan,
    )

    # Services are reachable before startup too (TestClient without a context manager)
    if services is not None:
        app.state.services = services

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(health_router, prefix="/api")
    app.include_router(auth_router, prefix="/api")
    app.include_router(projects_router, prefix="/api")
    app.include_router(share_router, prefix="/api")
    app.include_router(users_router, prefix="/api")
    app.include_router(management_router, prefix="/api")

    apply_openapi_customizations(app, cfg.app.session_cookie_name)

    return app
