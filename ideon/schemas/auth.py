"""Pydantic schemas for authentication endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field

from ideon.core.auth import AuthUser


class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    username: str = Field(..., min_length=2, max_length=64)
    password: str = Field(..., min_length=8, max_length=256)


class LoginRequest(BaseModel):
    identifier: str = Field(..., min_length=1, description="Email or username.")
    password: str = Field(..., min_length=1)


class ForgotPasswordRequest(BaseModel):
    identifier: str = Field("", description="Email or username of the account.")


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=8, max_length=256)


class UserOut(BaseModel):
    """Public view of an account."""

    id: str
    email: str
    username: str
    role: str

    @classmethod
    def from_auth(cls, user: AuthUser) -> "UserOut":
        return cls(id=user.id, email=user.email, username=user.username, role=user.role)


class LoginResponse(BaseModel):
    token: str = Field(..., description="Opaque session token; also set as a cookie.")
    user: UserOut
