"""Application-level exception types.

Every expected failure in the API is an ``AppError`` subclass bound to exactly
one ``ErrorKind``. The kind carries the HTTP status, so turning a handler
failure into a response is a lookup rather than guesswork.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, NotRequired, TypedDict


class ErrorKind(Enum):
    """Closed set of failure kinds surfaced by the API."""

    VALIDATION = ("validation_error", 400)
    UNAUTHENTICATED = ("unauthenticated", 401)
    FORBIDDEN = ("forbidden", 403)
    NOT_FOUND = ("not_found", 404)
    CONFLICT = ("conflict", 409)
    RATE_LIMITED = ("rate_limited", 429)
    INTERNAL = ("internal_server_error", 500)

    def __init__(self, default_code: str, http_status: int) -> None:
        self.default_code = default_code
        self.http_status = http_status


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    hint: str
    retry_after: int
    limit: int
    remaining: int
    reset_at: int
    resource: str
    required_role: str
    errors: list[dict[str, Any]]
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message, safe to show to clients.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    kind: ClassVar[ErrorKind] = ErrorKind.INTERNAL

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)

    @property
    def http_status(self) -> int:
        return self.kind.http_status


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""

    kind = ErrorKind.VALIDATION


class AuthenticationAppError(AppError):
    """Raised when a request carries no valid session."""

    kind = ErrorKind.UNAUTHENTICATED


class AuthorizationAppError(AppError):
    """Raised when the resolved user lacks the role or ownership required."""

    kind = ErrorKind.FORBIDDEN


class NotFoundAppError(AppError):
    """Raised when the addressed resource does not exist (or is hidden)."""

    kind = ErrorKind.NOT_FOUND


class ConflictAppError(AppError):
    """Raised when a write collides with existing state."""

    kind = ErrorKind.CONFLICT


class RateLimitedAppError(AppError):
    """Raised when a caller exhausts the quota of a protected action."""

    kind = ErrorKind.RATE_LIMITED
