"""Tests for the action guards wrapping API handlers."""

from __future__ import annotations

import uuid
from dataclasses import replace

import pytest
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse
from fastapi.testclient import TestClient
from pydantic import BaseModel

from ideon.core.actions import (
    ActionContext,
    ProjectActionContext,
    admin_action,
    authenticated_action,
    project_action,
    super_admin_action,
)
from ideon.core.auth import AuthUser, SessionResolver
from ideon.core.errors import NotFoundAppError
from ideon.core.exception_handlers import INTERNAL_ERROR_MESSAGE, setup_exception_handlers
from ideon.db.models import COLLABORATOR_VIEWER, ROLE_ADMIN, ROLE_SUPERADMIN, Project, ProjectCollaborator


class StubResolver(SessionResolver):
    """Returns whatever user the test assigns."""

    def __init__(self) -> None:
        self.user: AuthUser | None = None

    def resolve(self, request: Request) -> AuthUser | None:
        return self.user


class Item(BaseModel):
    name: str


@pytest.fixture
def resolver() -> StubResolver:
    return StubResolver()


@pytest.fixture
def calls() -> list[str]:
    return []


@pytest.fixture
def guarded_client(services, resolver: StubResolver, calls: list[str]):
    app = FastAPI()
    setup_exception_handlers(app)
    app.state.services = replace(services, sessions=resolver)

    @app.get("/private")
    @authenticated_action
    def private(request: Request, ctx: ActionContext):
        calls.append("private")
        return {"user": ctx.user.username}

    @app.get("/public")
    @authenticated_action(require_user=False)
    async def public(request: Request, ctx: ActionContext):
        calls.append("public")
        return {"user": ctx.user.username if ctx.user else None}

    @app.get("/admin")
    @admin_action
    def admin_only(request: Request, ctx: ActionContext):
        calls.append("admin")
        return {"ok": True}

    @app.get("/super")
    @super_admin_action
    def super_only(request: Request, ctx: ActionContext):
        calls.append("super")
        return {"ok": True}

    @app.get("/maybe-admin")
    @authenticated_action(require_user=False, required_role=ROLE_ADMIN)
    def maybe_admin(request: Request, ctx: ActionContext):
        calls.append("maybe-admin")
        return {"ok": True}

    @app.get("/missing")
    @authenticated_action
    def missing(request: Request, ctx: ActionContext):
        raise NotFoundAppError(code="thing_not_found", message="Thing not found")

    @app.get("/crash")
    @authenticated_action
    def crash(request: Request, ctx: ActionContext):
        raise RuntimeError("connection string postgres://secret")

    @app.get("/teapot")
    @authenticated_action
    async def teapot(request: Request, ctx: ActionContext):
        raise HTTPException(status_code=418, detail="I'm a teapot")

    @app.post("/items")
    @authenticated_action(schema=Item)
    def create_item(request: Request, ctx: ActionContext):
        calls.append("items")
        return {"name": ctx.body.name}

    @app.post("/echo")
    @authenticated_action
    def echo(request: Request, ctx: ActionContext):
        return {"body": ctx.body}

    @app.get("/items/{item_id}")
    @authenticated_action
    async def get_item(request: Request, ctx: ActionContext):
        return Item(name=ctx.params["item_id"])

    @app.get("/text")
    @authenticated_action
    def text(request: Request, ctx: ActionContext):
        return PlainTextResponse("raw", status_code=202)

    @app.get("/projects/{project_id}")
    @project_action
    def project_view(request: Request, ctx: ProjectActionContext):
        calls.append("project")
        return {"id": ctx.project.id, "access": ctx.access}

    with TestClient(app) as client:
        yield client


@pytest.fixture
def member() -> AuthUser:
    return AuthUser(id=str(uuid.uuid4()), email="m@example.com", username="member")


def _insert_project(services, owner_id: str) -> str:
    with services.session_factory() as db:
        project = Project(name="Canvas", owner_id=owner_id)
        db.add(project)
        db.commit()
        return project.id


class TestAuthentication:
    def test_anonymous_gets_401_and_handler_is_not_called(self, guarded_client, calls):
        response = guarded_client.get("/private")

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Unauthorized"
        assert calls == []

    def test_user_reaches_handler(self, guarded_client, resolver, member, calls):
        resolver.user = member

        response = guarded_client.get("/private")

        assert response.status_code == 200
        assert response.json() == {"user": "member"}
        assert calls == ["private"]

    def test_optional_user_runs_handler_anonymously(self, guarded_client, calls):
        response = guarded_client.get("/public")

        assert response.status_code == 200
        assert response.json() == {"user": None}
        assert calls == ["public"]

    def test_optional_user_still_sees_session(self, guarded_client, resolver, member):
        resolver.user = member

        assert guarded_client.get("/public").json() == {"user": "member"}


class TestRoles:
    def test_member_is_forbidden_on_admin_route(self, guarded_client, resolver, member, calls):
        resolver.user = member

        response = guarded_client.get("/admin")

        assert response.status_code == 403
        assert response.json()["error"]["message"] == "Forbidden"
        assert calls == []

    def test_admin_passes_admin_route(self, guarded_client, resolver, member):
        resolver.user = replace(member, role=ROLE_ADMIN)

        assert guarded_client.get("/admin").status_code == 200

    def test_superadmin_satisfies_lower_roles(self, guarded_client, resolver, member):
        resolver.user = replace(member, role=ROLE_SUPERADMIN)

        assert guarded_client.get("/admin").status_code == 200
        assert guarded_client.get("/super").status_code == 200

    def test_admin_is_forbidden_on_superadmin_route(self, guarded_client, resolver, member):
        resolver.user = replace(member, role=ROLE_ADMIN)

        assert guarded_client.get("/super").status_code == 403

    def test_anonymous_on_admin_route_is_unauthenticated(self, guarded_client):
        assert guarded_client.get("/admin").status_code == 401

    def test_anonymous_with_optional_user_and_role_is_forbidden(self, guarded_client, calls):
        response = guarded_client.get("/maybe-admin")

        assert response.status_code == 403
        assert calls == []


class TestErrorRecovery:
    def test_app_error_keeps_status_and_message(self, guarded_client, resolver, member):
        resolver.user = member

        response = guarded_client.get("/missing")

        assert response.status_code == 404
        error = response.json()["error"]
        assert error["code"] == "thing_not_found"
        assert error["message"] == "Thing not found"

    def test_unexpected_error_is_generic_500(self, guarded_client, resolver, member):
        resolver.user = member

        response = guarded_client.get("/crash")

        assert response.status_code == 500
        assert response.json()["error"]["message"] == INTERNAL_ERROR_MESSAGE
        assert "secret" not in response.text

    def test_http_exception_keeps_its_status(self, guarded_client, resolver, member):
        resolver.user = member

        response = guarded_client.get("/teapot")

        assert response.status_code == 418
        assert response.json()["error"]["message"] == "I'm a teapot"


class TestBodyAndResults:
    def test_schema_validation_failure_is_400(self, guarded_client, resolver, member, calls):
        resolver.user = member

        response = guarded_client.post("/items", json={"wrong": "field"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_error"
        assert calls == []

    def test_valid_body_is_parsed_into_schema(self, guarded_client, resolver, member):
        resolver.user = member

        response = guarded_client.post("/items", json={"name": "lamp"})

        assert response.status_code == 200
        assert response.json() == {"name": "lamp"}

    def test_malformed_json_becomes_empty_body(self, guarded_client, resolver, member):
        resolver.user = member

        response = guarded_client.post(
            "/echo", content=b"{not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 200
        assert response.json() == {"body": {}}

    def test_path_params_and_models_are_serialized(self, guarded_client, resolver, member):
        resolver.user = member

        response = guarded_client.get("/items/abc")

        assert response.json() == {"name": "abc"}

    def test_response_objects_pass_through(self, guarded_client, resolver, member):
        resolver.user = member

        response = guarded_client.get("/text")

        assert response.status_code == 202
        assert response.text == "raw"


class TestProjectAction:
    def test_invalid_project_id_is_400(self, guarded_client, resolver, member):
        resolver.user = member

        response = guarded_client.get("/projects/not-a-uuid")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_project_id"

    def test_unknown_project_is_404(self, guarded_client, resolver, member):
        resolver.user = member

        response = guarded_client.get(f"/projects/{uuid.uuid4()}")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "project_not_found"

    def test_stranger_is_forbidden(self, guarded_client, resolver, member, services, calls):
        project_id = _insert_project(services, owner_id=str(uuid.uuid4()))
        resolver.user = member

        response = guarded_client.get(f"/projects/{project_id}")

        assert response.status_code == 403
        assert calls == []

    def test_owner_gets_owner_access(self, guarded_client, resolver, member, services):
        project_id = _insert_project(services, owner_id=member.id)
        resolver.user = member

        response = guarded_client.get(f"/projects/{project_id}")

        assert response.status_code == 200
        assert response.json() == {"id": project_id, "access": "owner"}

    def test_collaborator_gets_their_role(self, guarded_client, resolver, member, services):
        project_id = _insert_project(services, owner_id=str(uuid.uuid4()))
        with services.session_factory() as db:
            db.add(ProjectCollaborator(project_id=project_id, user_id=member.id, role=COLLABORATOR_VIEWER))
            db.commit()
        resolver.user = member

        response = guarded_client.get(f"/projects/{project_id}")

        assert response.status_code == 200
        assert response.json()["access"] == "viewer"

    def test_anonymous_is_unauthenticated(self, guarded_client, services):
        project_id = _insert_project(services, owner_id=str(uuid.uuid4()))

        assert guarded_client.get(f"/projects/{project_id}").status_code == 401
