"""Server-side login sessions stored in the relational database."""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta

from fastapi import Request
from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from ideon.core.auth import AuthUser, SessionResolver, extract_session_token
from ideon.core.security import hash_token
from ideon.db.models import User, UserSession, utc_now

logger = logging.getLogger(__name__)


def to_auth_user(user: User) -> AuthUser:
    return AuthUser(id=user.id, email=user.email, username=user.username, role=user.role)


def create_session(db: Session, user_id: str, ttl: timedelta) -> str:
    """Persist a new session and return the opaque token for the client."""
    token = secrets.token_urlsafe(32)
    db.add(
        UserSession(
            token_hash=hash_token(token),
            user_id=user_id,
            expires_at=utc_now() + ttl,
        )
    )
    db.commit()
    return token


def revoke_session(db: Session, token: str) -> bool:
    result = db.execute(delete(UserSession).where(UserSession.token_hash == hash_token(token)))
    db.commit()
    return bool(result.rowcount)


def revoke_user_sessions(db: Session, user_id: str) -> int:
    result = db.execute(delete(UserSession).where(UserSession.user_id == user_id))
    db.commit()
    return result.rowcount or 0


class DatabaseSessionResolver(SessionResolver):
    """Looks up the bearer/cookie token in the ``sessions`` table."""

    def __init__(self, session_factory: sessionmaker[Session], cookie_name: str) -> None:
        self._session_factory = session_factory
        self._cookie_name = cookie_name

    def resolve(self, request: Request) -> AuthUser | None:
        token = extract_session_token(request, self._cookie_name)
        if not token:
            return None

        stmt = (
            select(User)
            .join(UserSession, UserSession.user_id == User.id)
            .where(UserSession.token_hash == hash_token(token))
            .where(UserSession.expires_at > utc_now())
        )
        with self._session_factory() as db:
            user = db.scalars(stmt).first()
            if user is None:
                logger.info("auth.session_invalid")
                return None
            return to_auth_user(user)
