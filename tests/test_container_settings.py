"""Settings carried by an injected service container drive the HTTP layer."""

from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from ideon.core.app_factory import create_app
from ideon.core.config import LogSettings, RateLimitSettings, Settings


@pytest.fixture
def custom_client(services):
    custom = Settings(
        rate_limit=RateLimitSettings(store="memory", include_headers=False),
        log=LogSettings(request_id_header="X-Correlation-ID"),
    )
    app = create_app(services=replace(services, settings=custom), configure_logs=False)
    with TestClient(app) as client:
        yield client


def test_rate_limit_headers_can_be_disabled(custom_client):
    for _ in range(60):
        custom_client.get("/api/share/x")

    response = custom_client.get("/api/share/x")

    assert response.status_code == 429
    assert response.json()["error"]["details"]["retry_after"] == 60
    assert "Retry-After" not in response.headers
    assert "X-RateLimit-Limit" not in response.headers
    assert "X-RateLimit-Remaining" not in response.headers


def test_dependency_rate_limit_headers_can_be_disabled(custom_client):
    payload = {"email": "a@example.com", "username": "a", "password": "x"}
    for _ in range(5):
        custom_client.post("/api/auth/register", json=payload)

    response = custom_client.post("/api/auth/register", json=payload)

    assert response.status_code == 429
    assert "Retry-After" not in response.headers


def test_default_container_keeps_rate_limit_headers(client):
    for _ in range(60):
        client.get("/api/share/x")

    response = client.get("/api/share/x")

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "60"
    assert response.headers["X-RateLimit-Limit"] == "60"


def test_request_id_header_name_comes_from_container(custom_client):
    response = custom_client.get("/api/health", headers={"X-Correlation-ID": "corr-1"})

    assert response.headers["X-Correlation-ID"] == "corr-1"
    assert "X-Request-ID" not in response.headers
