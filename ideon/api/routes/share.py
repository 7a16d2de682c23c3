"""Public read-only access to projects through share tokens."""

from __future__ import annotations

from fastapi import APIRouter, Request

from ideon.core.actions import ActionContext, authenticated_action
from ideon.core.rate_limit import check_rate_limit
from ideon.schemas.projects import SharedProjectOut
from ideon.services import projects

router = APIRouter(prefix="/share", tags=["Share"])


@router.get("/{token}")
@authenticated_action(require_user=False)
def view_shared_project(request: Request, ctx: ActionContext) -> SharedProjectOut:
    """Serve a shared project to anyone holding an enabled token."""
    check_rate_limit(request, "share-view", 60, 60)
    project = projects.get_shared_project(ctx.db, ctx.params["token"])
    return SharedProjectOut.model_validate(project)
