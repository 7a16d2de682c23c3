"""Projects, collaborator access and share tokens."""

from __future__ import annotations

import logging
import secrets

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ideon.core.auth import AuthUser
from ideon.core.errors import AuthorizationAppError, ConflictAppError, NotFoundAppError
from ideon.db.models import (
    COLLABORATOR_EDITOR,
    COLLABORATOR_VIEWER,
    Project,
    ProjectCollaborator,
    utc_now,
)
from ideon.services.users import find_by_identifier

logger = logging.getLogger(__name__)

ACCESS_OWNER = "owner"

# 12 random bytes, base64url: 16 characters
SHARE_TOKEN_BYTES = 12


def _project_not_found() -> NotFoundAppError:
    return NotFoundAppError(code="project_not_found", message="Project not found")


def _forbidden() -> AuthorizationAppError:
    return AuthorizationAppError(code="forbidden", message="Forbidden")


def get_project_access(db: Session, project_id: str, user: AuthUser) -> tuple[Project, str]:
    """Load a project and the caller's access level on it.

    Returns:
        Tuple of (project, access) where access is ``owner``, ``editor`` or ``viewer``.

    Raises:
        NotFoundAppError: If the project does not exist.
        AuthorizationAppError: If the user is neither owner nor collaborator.
    """
    project = db.get(Project, project_id)
    if project is None:
        raise _project_not_found()

    if project.owner_id == user.id:
        return project, ACCESS_OWNER

    collaborator_role = db.scalar(
        select(ProjectCollaborator.role)
        .where(ProjectCollaborator.project_id == project_id)
        .where(ProjectCollaborator.user_id == user.id)
    )
    if collaborator_role is None:
        raise _forbidden()
    return project, collaborator_role


def require_owner(project: Project, user: AuthUser) -> None:
    if project.owner_id != user.id:
        raise _forbidden()


def require_editor(access: str) -> None:
    if access not in (ACCESS_OWNER, COLLABORATOR_EDITOR):
        raise _forbidden()


def list_projects(db: Session, user: AuthUser) -> list[Project]:
    """Projects owned by the user or shared with them as collaborator."""
    shared_ids = select(ProjectCollaborator.project_id).where(
        ProjectCollaborator.user_id == user.id
    )
    stmt = (
        select(Project)
        .where(or_(Project.owner_id == user.id, Project.id.in_(shared_ids)))
        .order_by(Project.updated_at.desc())
    )
    return list(db.scalars(stmt))


def create_project(db: Session, owner: AuthUser, *, name: str, description: str | None) -> Project:
    project = Project(name=name, description=description, owner_id=owner.id)
    db.add(project)
    db.commit()
    logger.info("project.created", extra={"project_id": project.id, "user_id": owner.id})
    return project


def update_project(
    db: Session,
    project: Project,
    *,
    name: str | None = None,
    description: str | None = None,
) -> Project:
    if name is not None:
        project.name = name
    if description is not None:
        project.description = description
    project.updated_at = utc_now()
    db.commit()
    return project


def delete_project(db: Session, project: Project) -> None:
    db.delete(project)
    db.commit()
    logger.info("project.deleted", extra={"project_id": project.id})


def add_collaborator(db: Session, project: Project, identifier: str, role: str) -> ProjectCollaborator:
    """Grant another user access to the project.

    Raises:
        NotFoundAppError: If no user matches the identifier.
        ConflictAppError: If the user is the owner or already a collaborator.
    """
    if role not in (COLLABORATOR_VIEWER, COLLABORATOR_EDITOR):
        role = COLLABORATOR_VIEWER

    user = find_by_identifier(db, identifier)
    if user is None:
        raise NotFoundAppError(code="user_not_found", message="User not found")
    if user.id == project.owner_id:
        raise ConflictAppError(code="already_owner", message="User already owns this project")

    collaborator = ProjectCollaborator(project_id=project.id, user_id=user.id, role=role)
    db.add(collaborator)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictAppError(
            code="already_collaborator",
            message="User is already a collaborator",
        ) from exc
    return collaborator


def share_url(public_url: str, token: str) -> str:
    return f"{public_url.rstrip('/')}/share/{token}"


def generate_share_token(db: Session, project: Project) -> str:
    """Issue a fresh share token (invalidating the previous one) and enable sharing."""
    token = secrets.token_urlsafe(SHARE_TOKEN_BYTES)
    project.share_token = token
    project.share_enabled = True
    project.share_created_at = utc_now()
    db.commit()
    return token


def set_share_enabled(db: Session, project: Project, enabled: bool) -> None:
    project.share_enabled = enabled
    db.commit()


def revoke_share(db: Session, project: Project) -> None:
    project.share_token = None
    project.share_enabled = False
    project.share_created_at = None
    db.commit()


def get_shared_project(db: Session, token: str) -> Project:
    """Resolve a share token to its project.

    Disabled and unknown tokens are indistinguishable to the caller.

    Raises:
        NotFoundAppError: If the token is unknown or sharing is disabled.
    """
    project = db.scalars(
        select(Project).where(Project.share_token == token).where(Project.share_enabled.is_(True))
    ).first()
    if project is None:
        raise NotFoundAppError(code="share_not_found", message="Shared project not found")
    return project
