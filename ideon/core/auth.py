"""Identity resolution and role checks used by the action guards.

The guards only depend on two capabilities:
- a ``SessionResolver`` turning a request into the current ``AuthUser`` (or None)
- a ``RoleChecker`` deciding whether a user holds a required role

Both are injected through the service container so tests can substitute them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from fastapi import Request

from ideon.db.models import ROLE_ADMIN, ROLE_MEMBER, ROLE_SUPERADMIN

ROLE_HIERARCHY: dict[str, int] = {
    ROLE_SUPERADMIN: 3,
    ROLE_ADMIN: 2,
    ROLE_MEMBER: 1,
}


@dataclass(frozen=True)
class AuthUser:
    """The authenticated caller, detached from any DB session."""

    id: str
    email: str
    username: str
    role: str = ROLE_MEMBER


def extract_session_token(request: Request, cookie_name: str) -> str | None:
    """Return the opaque session token from the Authorization header or cookie.

    A ``Bearer`` token wins over the cookie so API clients and browsers can
    share the same endpoints.
    """
    authorization = request.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(cookie_name) or None


class SessionResolver(ABC):
    """Resolves the user behind a request."""

    @abstractmethod
    def resolve(self, request: Request) -> AuthUser | None:
        """Return the current user, or None for anonymous requests."""
        raise NotImplementedError


class RoleChecker:
    """Role hierarchy check: a higher rank satisfies every lower requirement."""

    def __init__(self, hierarchy: dict[str, int] | None = None) -> None:
        self._hierarchy = hierarchy or ROLE_HIERARCHY

    def rank(self, role: str | None) -> int:
        return self._hierarchy.get(role or "", 0)

    def has_role(self, user: AuthUser | None, required_role: str) -> bool:
        if user is None:
            return False
        return self.rank(user.role) >= self.rank(required_role) > 0
