"""Authentication endpoints: register, login/logout, current user, password reset."""

from __future__ import annotations

import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ideon.core.actions import ActionContext, authenticated_action
from ideon.core.auth import extract_session_token
from ideon.core.errors import AuthenticationAppError, RateLimitedAppError
from ideon.core.rate_limit import RateLimit, check_rate_limit, request_client_ip
from ideon.schemas.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    ResetPasswordRequest,
    UserOut,
)
from ideon.services import audit, users
from ideon.services.sessions import create_session, revoke_session, to_auth_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


def _session_response(request: Request, ctx: ActionContext, user_id: str, status_code: int = 200) -> JSONResponse:
    app_cfg = ctx.services.settings.app
    ttl = timedelta(hours=app_cfg.session_ttl_hours)
    token = create_session(ctx.db, user_id, ttl)

    user = to_auth_user(users.get_user(ctx.db, user_id))
    body = LoginResponse(token=token, user=UserOut.from_auth(user)).model_dump()

    response = JSONResponse(content=body, status_code=status_code)
    response.set_cookie(
        app_cfg.session_cookie_name,
        token,
        max_age=int(ttl.total_seconds()),
        httponly=True,
        samesite="lax",
        secure=request.url.scheme == "https",
    )
    return response


@router.post("/register", dependencies=[Depends(RateLimit("register", 5, 600))])
@authenticated_action(require_user=False, schema=RegisterRequest)
def register(request: Request, ctx: ActionContext):
    """Create an account and log it in."""
    data: RegisterRequest = ctx.body
    user = users.register_user(ctx.db, email=data.email, username=data.username, password=data.password)
    audit.log_security_event(
        ctx.db, audit.EVENT_REGISTER, user_id=user.id, ip=request_client_ip(request)
    )
    return _session_response(request, ctx, user.id, status_code=201)


@router.post("/login")
@authenticated_action(require_user=False, schema=LoginRequest)
def login(request: Request, ctx: ActionContext):
    """Exchange credentials for a session token (cookie + body)."""
    data: LoginRequest = ctx.body
    ip = request_client_ip(request)

    # Keyed by client IP, never by the submitted identifier
    try:
        check_rate_limit(request, "login", 5, 900)
    except RateLimitedAppError:
        audit.log_security_event(
            ctx.db, audit.EVENT_LOGIN_RATE_LIMITED, audit.STATUS_FAILURE, ip=ip
        )
        raise

    user = users.authenticate(ctx.db, data.identifier, data.password)
    if user is None:
        audit.log_security_event(
            ctx.db, audit.EVENT_LOGIN, audit.STATUS_FAILURE, ip=ip
        )
        raise AuthenticationAppError(
            code="invalid_credentials",
            message="Invalid credentials",
        )

    audit.log_security_event(ctx.db, audit.EVENT_LOGIN, user_id=user.id, ip=ip)
    return _session_response(request, ctx, user.id)


@router.post("/logout")
@authenticated_action
def logout(request: Request, ctx: ActionContext):
    cookie_name = ctx.services.settings.app.session_cookie_name
    token = extract_session_token(request, cookie_name)
    if token:
        revoke_session(ctx.db, token)
    audit.log_security_event(
        ctx.db, audit.EVENT_LOGOUT, user_id=ctx.user.id, ip=request_client_ip(request)
    )

    response = JSONResponse(content={"success": True})
    response.delete_cookie(cookie_name)
    return response


@router.get("/me")
@authenticated_action
async def me(request: Request, ctx: ActionContext) -> UserOut:
    return UserOut.from_auth(ctx.user)


@router.post("/forgot-password")
@authenticated_action(require_user=False, schema=ForgotPasswordRequest)
def forgot_password(request: Request, ctx: ActionContext):
    """Issue a reset token. Always answers success to prevent account enumeration."""
    data: ForgotPasswordRequest = ctx.body
    identifier = data.identifier.strip()

    check_rate_limit(request, "forgot-password", 5, 600, identifier.lower() or None)

    if not identifier:
        return {"success": True}

    user = users.find_by_identifier(ctx.db, identifier)
    if user is not None:
        ttl = timedelta(minutes=ctx.services.settings.app.password_reset_ttl_minutes)
        users.create_password_reset(ctx.db, user, ttl)
        # Delivery (email) is handled outside this service
        logger.info("password_reset.issued", extra={"user_id": user.id})
        audit.log_security_event(
            ctx.db,
            audit.EVENT_PASSWORD_RESET_REQUEST,
            user_id=user.id,
            ip=request_client_ip(request),
        )

    return {"success": True}


@router.post("/reset-password")
@authenticated_action(require_user=False, schema=ResetPasswordRequest)
def reset_password(request: Request, ctx: ActionContext):
    data: ResetPasswordRequest = ctx.body
    check_rate_limit(request, "reset-password", 5, 600)

    user = users.reset_password(ctx.db, data.token, data.password)
    audit.log_security_event(
        ctx.db, audit.EVENT_PASSWORD_RESET, user_id=user.id, ip=request_client_ip(request)
    )
    return {"success": True}
