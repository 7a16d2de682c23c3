"""Pydantic schemas for projects and sharing."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from ideon.db.models import COLLABORATOR_EDITOR


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=10000)


class ProjectUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=10000)


class ProjectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None = None
    owner_id: str
    share_enabled: bool
    created_at: datetime
    updated_at: datetime


class SharedProjectOut(BaseModel):
    """Read-only view served to share-link visitors; no owner or token data."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None = None
    updated_at: datetime


class ShareSettings(BaseModel):
    share_enabled: bool
    share_token: str | None = None
    share_url: str | None = None


class ShareToggle(BaseModel):
    # Older clients send "enabled"
    share_enabled: bool | None = None
    enabled: bool | None = None

    def resolved(self) -> bool:
        if self.share_enabled is not None:
            return self.share_enabled
        return bool(self.enabled)


class CollaboratorCreate(BaseModel):
    identifier: str = Field(..., min_length=1, description="Email or username.")
    role: str = Field(COLLABORATOR_EDITOR, pattern="^(viewer|editor)$")


class CollaboratorOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    project_id: str
    user_id: str
    role: str
