"""Project endpoints: CRUD, collaborators and share-link management."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ideon.core.actions import ActionContext, ProjectActionContext, authenticated_action, project_action
from ideon.core.rate_limit import request_client_ip
from ideon.schemas.projects import (
    CollaboratorCreate,
    CollaboratorOut,
    ProjectCreate,
    ProjectOut,
    ProjectUpdate,
    ShareSettings,
    ShareToggle,
)
from ideon.services import audit, projects

router = APIRouter(prefix="/projects", tags=["Projects"])


@router.get("")
@authenticated_action
def list_projects(request: Request, ctx: ActionContext) -> list[ProjectOut]:
    return [ProjectOut.model_validate(p) for p in projects.list_projects(ctx.db, ctx.user)]


@router.post("")
@authenticated_action(schema=ProjectCreate)
def create_project(request: Request, ctx: ActionContext):
    data: ProjectCreate = ctx.body
    project = projects.create_project(ctx.db, ctx.user, name=data.name, description=data.description)
    return JSONResponse(
        content=ProjectOut.model_validate(project).model_dump(mode="json"),
        status_code=201,
    )


@router.get("/{project_id}")
@project_action
def get_project(request: Request, ctx: ProjectActionContext) -> ProjectOut:
    return ProjectOut.model_validate(ctx.project)


@router.patch("/{project_id}")
@project_action(schema=ProjectUpdate)
def update_project(request: Request, ctx: ProjectActionContext) -> ProjectOut:
    projects.require_editor(ctx.access)
    data: ProjectUpdate = ctx.body
    project = projects.update_project(
        ctx.db, ctx.project, name=data.name, description=data.description
    )
    return ProjectOut.model_validate(project)


@router.delete("/{project_id}")
@project_action
def delete_project(request: Request, ctx: ProjectActionContext):
    projects.require_owner(ctx.project, ctx.user)
    projects.delete_project(ctx.db, ctx.project)
    return {"success": True}


@router.post("/{project_id}/collaborators")
@project_action(schema=CollaboratorCreate)
def add_collaborator(request: Request, ctx: ProjectActionContext):
    projects.require_owner(ctx.project, ctx.user)
    data: CollaboratorCreate = ctx.body
    collaborator = projects.add_collaborator(ctx.db, ctx.project, data.identifier, data.role)
    return JSONResponse(
        content=CollaboratorOut.model_validate(collaborator).model_dump(),
        status_code=201,
    )


def _share_settings(ctx: ProjectActionContext) -> ShareSettings:
    token = ctx.project.share_token
    public_url = ctx.services.settings.app.public_url
    return ShareSettings(
        share_enabled=bool(ctx.project.share_enabled),
        share_token=token,
        share_url=projects.share_url(public_url, token) if token else None,
    )


@router.get("/{project_id}/share")
@project_action
def get_share(request: Request, ctx: ProjectActionContext) -> ShareSettings:
    """Only the owner manages sharing."""
    projects.require_owner(ctx.project, ctx.user)
    return _share_settings(ctx)


@router.post("/{project_id}/share")
@project_action
def create_share(request: Request, ctx: ProjectActionContext) -> ShareSettings:
    """Generate a new share link, replacing any previous one."""
    projects.require_owner(ctx.project, ctx.user)
    projects.generate_share_token(ctx.db, ctx.project)
    audit.log_security_event(
        ctx.db,
        audit.EVENT_SHARE_ENABLED,
        user_id=ctx.user.id,
        ip=request_client_ip(request),
        details={"project_id": ctx.project.id},
    )
    return _share_settings(ctx)


@router.patch("/{project_id}/share")
@project_action(schema=ShareToggle)
def toggle_share(request: Request, ctx: ProjectActionContext) -> ShareSettings:
    projects.require_owner(ctx.project, ctx.user)
    enabled = ctx.body.resolved()
    projects.set_share_enabled(ctx.db, ctx.project, enabled)
    audit.log_security_event(
        ctx.db,
        audit.EVENT_SHARE_ENABLED if enabled else audit.EVENT_SHARE_DISABLED,
        user_id=ctx.user.id,
        ip=request_client_ip(request),
        details={"project_id": ctx.project.id},
    )
    return _share_settings(ctx)


@router.delete("/{project_id}/share")
@project_action
def revoke_share(request: Request, ctx: ProjectActionContext):
    projects.require_owner(ctx.project, ctx.user)
    projects.revoke_share(ctx.db, ctx.project)
    audit.log_security_event(
        ctx.db,
        audit.EVENT_SHARE_REVOKED,
        user_id=ctx.user.id,
        ip=request_client_ip(request),
        details={"project_id": ctx.project.id},
    )
    return {"success": True}
