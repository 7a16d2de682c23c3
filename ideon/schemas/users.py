"""Pydantic schemas for user administration."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class AdminUserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    username: str
    role: str
    created_at: datetime
    last_online: datetime | None = None


class RoleUpdate(BaseModel):
    role: str = Field(..., pattern="^(member|admin|superadmin)$")
