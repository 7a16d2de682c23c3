from __future__ import annotations

from ideon.api.routes.auth import router as auth_router
from ideon.api.routes.health import router as health_router
from ideon.api.routes.management import router as management_router
from ideon.api.routes.projects import router as projects_router
from ideon.api.routes.share import router as share_router
from ideon.api.routes.users import router as users_router

__all__ = [
    "auth_router",
    "health_router",
    "management_router",
    "projects_router",
    "share_router",
    "users_router",
]
