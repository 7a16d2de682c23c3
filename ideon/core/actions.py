"""Action guards wrapping API handlers.

A guard turns ``handler(request, ctx)`` into a FastAPI endpoint that:

1. resolves the session user and enforces ``require_user`` / ``required_role``
2. refreshes the user's ``last_online`` timestamp
3. parses the JSON body (validated against a pydantic ``schema`` if given)
4. runs the handler with a per-request DB session
5. renders the result as JSON, or any failure as an error response

The guard is the single recovery boundary: handlers raise ``AppError``
subclasses for expected failures and let everything else fall through to a
generic 500 whose detail only reaches the server log.

Usage:
    @router.get("/projects/{project_id}")
    @project_action
    def get_project(request, ctx):
        return ProjectOut.from_model(ctx.project)
"""

from __future__ import annotations

import inspect
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from fastapi import Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException

from ideon.core.auth import AuthUser
from ideon.core.container import Services, get_services
from ideon.core.errors import (
    AppError,
    AuthenticationAppError,
    AuthorizationAppError,
    ValidationAppError,
)
from ideon.core.exception_handlers import (
    app_error_response,
    internal_error_response,
    validation_error,
)
from ideon.db.models import ROLE_ADMIN, ROLE_SUPERADMIN, Project
from ideon.services.projects import get_project_access
from ideon.services.users import touch_last_online

logger = logging.getLogger(__name__)

_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


@dataclass(frozen=True)
class ActionContext:
    """Per-request context handed to guarded handlers."""

    request: Request
    services: Services
    db: Session
    user: AuthUser | None
    params: dict[str, str]
    body: Any


@dataclass(frozen=True)
class ProjectActionContext(ActionContext):
    """Context for project-scoped handlers; ``user`` is always set."""

    project: Project | None = None
    access: str = ""


Handler = Callable[[Request, Any], Any]


@dataclass(frozen=True)
class ActionOptions:
    require_user: bool = True
    required_role: str | None = None
    schema: type[BaseModel] | None = None


async def _call(handler: Handler, *args: Any) -> Any:
    """Await coroutine handlers, run plain functions in the threadpool."""
    if inspect.iscoroutinefunction(handler):
        return await handler(*args)
    return await run_in_threadpool(handler, *args)


def _authorize(services: Services, user: AuthUser | None, options: ActionOptions) -> None:
    if user is None and options.require_user:
        raise AuthenticationAppError(code="unauthenticated", message="Unauthorized")

    if options.required_role and not services.roles.has_role(user, options.required_role):
        logger.warning(
            "auth.forbidden",
            extra={
                "user_id": user.id if user else None,
                "role": user.role if user else None,
                "required_role": options.required_role,
            },
        )
        raise AuthorizationAppError(
            code="forbidden",
            message="Forbidden",
            details={"required_role": options.required_role},
        )


def _refresh_last_online(services: Services, user: AuthUser) -> None:
    try:
        with services.session_factory() as db:
            touch_last_online(db, user.id)
    except SQLAlchemyError:
        logger.exception("auth.last_online_failed", extra={"user_id": user.id})


async def _read_body(request: Request, schema: type[BaseModel] | None) -> Any:
    if request.method not in _BODY_METHODS:
        return {}

    raw: Any = {}
    if "application/json" in request.headers.get("content-type", ""):
        try:
            raw = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raw = {}

    if schema is None:
        return raw
    try:
        return schema.model_validate(raw)
    except ValidationError as exc:
        raise validation_error(list(exc.errors())) from exc


def _to_response(result: Any) -> Response:
    if isinstance(result, Response):
        return result
    return JSONResponse(content=jsonable_encoder(result))


def _http_exception_response(exc: HTTPException) -> Response:
    message = exc.detail if isinstance(exc.detail, str) else "Error"
    return app_error_response(
        _StatusError(code="http_error", message=message, status=exc.status_code)
    )


class _StatusError(AppError):
    """Adapter for framework HTTPExceptions raised inside handlers."""

    def __init__(self, *, code: str, message: str, status: int) -> None:
        super().__init__(code=code, message=message)
        self._status = status

    @property
    def http_status(self) -> int:
        return self._status


def _build_endpoint(handler: Handler, options: ActionOptions) -> Callable[[Request], Awaitable[Response]]:
    async def endpoint(request: Request) -> Response:
        services = get_services(request)
        try:
            user = await run_in_threadpool(services.sessions.resolve, request)
            _authorize(services, user, options)

            if user is not None:
                await run_in_threadpool(_refresh_last_online, services, user)

            body = await _read_body(request, options.schema)

            db = services.session_factory()
            try:
                ctx = ActionContext(
                    request=request,
                    services=services,
                    db=db,
                    user=user,
                    params=dict(request.path_params),
                    body=body,
                )
                result = await _call(handler, request, ctx)
            finally:
                db.close()

            return _to_response(result)
        except AppError as exc:
            include = services.settings.rate_limit.include_headers
            return app_error_response(exc, include_rate_limit_headers=include)
        except HTTPException as exc:
            return _http_exception_response(exc)
        except Exception as exc:  # noqa: BLE001 - recovery boundary, logged in full
            return internal_error_response(exc, path=request.url.path, method=request.method)

    # No functools.wraps: FastAPI would follow __wrapped__ to the handler's signature
    endpoint.__name__ = getattr(handler, "__name__", "endpoint")
    endpoint.__qualname__ = getattr(handler, "__qualname__", endpoint.__name__)
    endpoint.__doc__ = handler.__doc__
    return endpoint


def authenticated_action(
    handler: Handler | None = None,
    *,
    require_user: bool = True,
    required_role: str | None = None,
    schema: type[BaseModel] | None = None,
):
    """Guard a handler behind session resolution and optional role checks.

    Works bare (``@authenticated_action``) or with options
    (``@authenticated_action(require_user=False)``).

    Args:
        handler: ``(request, ctx) -> result``; sync or async.
        require_user: Reject anonymous callers with 401 before the handler runs.
        required_role: Minimum role; callers below it get 403.
        schema: Pydantic model the JSON body must satisfy (400 otherwise).

    Returns:
        An ``async (request) -> Response`` endpoint.
    """
    options = ActionOptions(require_user=require_user, required_role=required_role, schema=schema)

    def decorate(fn: Handler):
        return _build_endpoint(fn, options)

    if handler is None:
        return decorate
    return decorate(handler)


def admin_action(handler: Handler | None = None, *, require_user: bool = True, schema: type[BaseModel] | None = None):
    """``authenticated_action`` requiring at least the ``admin`` role."""
    return authenticated_action(
        handler, require_user=require_user, required_role=ROLE_ADMIN, schema=schema
    )


def super_admin_action(handler: Handler | None = None, *, require_user: bool = True, schema: type[BaseModel] | None = None):
    """``authenticated_action`` requiring the ``superadmin`` role."""
    return authenticated_action(
        handler, require_user=require_user, required_role=ROLE_SUPERADMIN, schema=schema
    )


def project_action(handler: Handler | None = None, *, schema: type[BaseModel] | None = None):
    """Guard for ``/projects/{project_id}`` routes.

    Loads the project and admits its owner and collaborators. Unknown projects
    yield 404, everyone else 403. The handler receives a ``ProjectActionContext``.
    """

    def decorate(fn: Handler):
        async def load_project(request: Request, ctx: ActionContext) -> Any:
            project_id = ctx.params.get("project_id", "")
            try:
                uuid.UUID(project_id)
            except ValueError as exc:
                raise ValidationAppError(
                    code="invalid_project_id",
                    message="Invalid project id",
                ) from exc

            project, access = await run_in_threadpool(get_project_access, ctx.db, project_id, ctx.user)
            project_ctx = ProjectActionContext(
                **{f: getattr(ctx, f) for f in ActionContext.__dataclass_fields__},
                project=project,
                access=access,
            )
            return await _call(fn, request, project_ctx)

        load_project.__name__ = getattr(fn, "__name__", "project_endpoint")
        load_project.__doc__ = fn.__doc__
        return authenticated_action(load_project, require_user=True, schema=schema)

    if handler is None:
        return decorate
    return decorate(handler)
