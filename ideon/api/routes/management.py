"""Administrative read endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request

from ideon.core.actions import ActionContext, admin_action
from ideon.schemas.management import AuditLogOut
from ideon.services import audit

router = APIRouter(prefix="/management", tags=["Management"])


@router.get("/audit")
@admin_action
def list_audit_logs(request: Request, ctx: ActionContext) -> list[AuditLogOut]:
    """Latest security events, newest first."""
    return [
        AuditLogOut(
            id=log.id,
            event=log.event,
            status=log.status,
            ip=log.ip,
            created_at=log.created_at,
            user_email=email,
        )
        for log, email in audit.list_audit_logs(ctx.db)
    ]
