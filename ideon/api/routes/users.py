"""User administration endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request

from ideon.core.actions import ActionContext, admin_action, super_admin_action
from ideon.core.errors import ValidationAppError
from ideon.core.rate_limit import request_client_ip
from ideon.schemas.users import AdminUserOut, RoleUpdate
from ideon.services import audit, users

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("")
@admin_action
def list_users(request: Request, ctx: ActionContext) -> list[AdminUserOut]:
    return [AdminUserOut.model_validate(u) for u in users.list_users(ctx.db)]


@router.patch("/{user_id}/role")
@super_admin_action(schema=RoleUpdate)
def change_role(request: Request, ctx: ActionContext) -> AdminUserOut:
    """Change a user's role. Superadmins cannot demote themselves."""
    data: RoleUpdate = ctx.body
    user_id = ctx.params["user_id"]
    if user_id == ctx.user.id:
        raise ValidationAppError(
            code="cannot_change_own_role",
            message="You cannot change your own role",
        )

    user = users.set_role(ctx.db, user_id, data.role)
    audit.log_security_event(
        ctx.db,
        audit.EVENT_ROLE_CHANGED,
        user_id=ctx.user.id,
        ip=request_client_ip(request),
        details={"target_user_id": user_id, "role": data.role},
    )
    return AdminUserOut.model_validate(user)
