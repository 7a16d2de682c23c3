"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any ``ideon`` import so the global
settings never pick up a developer's DATABASE_URL or .env file.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.pop("DATABASE_URL", None)
os.environ.setdefault("RATE_LIMIT_STORE", "memory")
os.environ.setdefault("LOG_FORMAT", "plain")

from dataclasses import dataclass
from datetime import timedelta
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from ideon.adapters.rate_limit.in_memory import InMemoryQuotaStore
from ideon.core.app_factory import create_app
from ideon.core.config import Settings
from ideon.core.container import Services
from ideon.core.rate_limit import RateLimitService
from ideon.db.database import create_db_engine, create_session_factory, init_db
from ideon.db.models import ROLE_MEMBER, User
from ideon.services.passwords import hash_password
from ideon.services.sessions import DatabaseSessionResolver, create_session

TEST_PASSWORD = "correct-horse-battery"


@dataclass
class TestUser:
    __test__ = False

    id: str
    email: str
    username: str
    headers: dict[str, str]


@pytest.fixture
def clock() -> Mock:
    """Controllable time source shared by the quota store."""
    return Mock(return_value=1_700_000_000.0)


@pytest.fixture
def test_settings() -> Settings:
    return Settings()


@pytest.fixture
def services(test_settings: Settings, clock: Mock):
    """Services wired to an in-memory SQLite database and quota store."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    session_factory = create_session_factory(engine)
    svc = Services(
        settings=test_settings,
        engine=engine,
        session_factory=session_factory,
        rate_limiter=RateLimitService(InMemoryQuotaStore(clock=clock)),
        sessions=DatabaseSessionResolver(session_factory, test_settings.app.session_cookie_name),
    )
    yield svc
    svc.close()


@pytest.fixture
def app(services: Services):
    return create_app(services=services, configure_logs=False)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_user(services: Services):
    """Insert a user with a live session and return its bearer headers."""

    def _make(username: str, role: str = ROLE_MEMBER, password: str = TEST_PASSWORD) -> TestUser:
        with services.session_factory() as db:
            user = User(
                email=f"{username}@example.com",
                username=username,
                password_hash=hash_password(password),
                role=role,
            )
            db.add(user)
            db.commit()
            token = create_session(db, user.id, timedelta(hours=1))
            return TestUser(
                id=user.id,
                email=user.email,
                username=user.username,
                headers={"Authorization": f"Bearer {token}"},
            )

    return _make
