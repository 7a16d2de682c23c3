"""
Security audit trail. Records who did what from where; never tokens,
passwords or request bodies. Administrators read the latest rows back.
"""
import json
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ideon.db.models import AuditLog, User

logger = logging.getLogger(__name__)

AUDIT_PAGE_SIZE = 100

STATUS_SUCCESS = "success"
STATUS_FAILURE = "failure"

EVENT_LOGIN = "login"
EVENT_LOGIN_RATE_LIMITED = "login_rate_limited"
EVENT_LOGOUT = "logout"
EVENT_REGISTER = "register"
EVENT_PASSWORD_RESET_REQUEST = "password_reset_request"
EVENT_PASSWORD_RESET = "password_reset"
EVENT_SHARE_ENABLED = "share_enabled"
EVENT_SHARE_DISABLED = "share_disabled"
EVENT_SHARE_REVOKED = "share_revoked"
EVENT_ROLE_CHANGED = "role_changed"


def log_security_event(
    db: Session,
    event: str,
    status: str = STATUS_SUCCESS,
    *,
    user_id: str | None = None,
    ip: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Append one audit record and mirror it to the application log.

    Failing to write the record is logged and never breaks the request.
    """
    logger.info(
        "audit.event",
        extra={"event": event, "status": status, "user_id": user_id, "ip": ip},
    )
    try:
        db.add(
            AuditLog(
                event=event,
                status=status,
                user_id=user_id,
                ip=ip,
                details=json.dumps(details) if details else None,
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("audit.write_failed", extra={"event": event})


def list_audit_logs(db: Session, limit: int = AUDIT_PAGE_SIZE) -> list[tuple[AuditLog, str | None]]:
    """Most recent audit rows first, each with the acting user's email (if any)."""
    stmt = (
        select(AuditLog, User.email)
        .outerjoin(User, User.id == AuditLog.user_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit)
    )
    return [(log, email) for log, email in db.execute(stmt)]
