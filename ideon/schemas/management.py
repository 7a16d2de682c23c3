"""Pydantic schemas for the management endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class AuditLogOut(BaseModel):
    """One audit row as shown to administrators; details stay server-side."""

    id: int
    event: str
    status: str
    ip: str | None = None
    created_at: datetime
    user_email: str | None = None
