"""User accounts: registration, credential checks, password reset and roles."""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ideon.core.auth import ROLE_HIERARCHY
from ideon.core.errors import ConflictAppError, NotFoundAppError, ValidationAppError
from ideon.core.security import hash_token
from ideon.db.models import ROLE_MEMBER, ROLE_SUPERADMIN, PasswordReset, User, utc_now
from ideon.services.passwords import hash_password, verify_password
from ideon.services.sessions import revoke_user_sessions

logger = logging.getLogger(__name__)


def find_by_identifier(db: Session, identifier: str) -> User | None:
    """Look a user up by email or username (case-insensitive email)."""
    stmt = select(User).where(
        or_(func.lower(User.email) == identifier.lower(), User.username == identifier)
    )
    return db.scalars(stmt).first()


def get_user(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundAppError(code="user_not_found", message="User not found")
    return user


def register_user(db: Session, *, email: str, username: str, password: str) -> User:
    """Create an account. The very first account becomes superadmin.

    Raises:
        ConflictAppError: If the email or username is already taken.
    """
    is_first = db.scalar(select(func.count()).select_from(User)) == 0
    user = User(
        email=email.lower(),
        username=username,
        password_hash=hash_password(password),
        role=ROLE_SUPERADMIN if is_first else ROLE_MEMBER,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictAppError(
            code="user_exists",
            message="A user with this email or username already exists",
        ) from exc

    logger.info("user.registered", extra={"user_id": user.id, "role": user.role})
    return user


def authenticate(db: Session, identifier: str, password: str) -> User | None:
    """Return the user when the credentials match, otherwise None."""
    user = find_by_identifier(db, identifier)
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


def touch_last_online(db: Session, user_id: str) -> None:
    db.execute(update(User).where(User.id == user_id).values(last_online=utc_now()))
    db.commit()


def list_users(db: Session) -> list[User]:
    return list(db.scalars(select(User).order_by(User.created_at)))


def set_role(db: Session, user_id: str, role: str) -> User:
    if role not in ROLE_HIERARCHY:
        raise ValidationAppError(
            code="invalid_role",
            message=f"Unknown role: {role}",
            details={"hint": f"Expected one of {sorted(ROLE_HIERARCHY)}"},
        )
    user = get_user(db, user_id)
    user.role = role
    db.commit()
    logger.info("user.role_changed", extra={"user_id": user_id, "role": role})
    return user


def create_password_reset(db: Session, user: User, ttl: timedelta) -> str:
    """Store a single-use reset token and return it in clear for delivery."""
    token = secrets.token_urlsafe(32)
    db.add(
        PasswordReset(
            user_id=user.id,
            token_hash=hash_token(token),
            expires_at=utc_now() + ttl,
        )
    )
    db.commit()
    return token


def reset_password(db: Session, token: str, new_password: str) -> User:
    """Consume a reset token, set the new password and drop all sessions.

    Raises:
        ValidationAppError: If the token is unknown, used or expired.
    """
    reset = db.scalars(
        select(PasswordReset).where(PasswordReset.token_hash == hash_token(token))
    ).first()
    if reset is None or reset.used or reset.expires_at <= utc_now():
        raise ValidationAppError(
            code="invalid_reset_token",
            message="Invalid or expired reset token",
        )

    user = get_user(db, reset.user_id)
    user.password_hash = hash_password(new_password)
    reset.used = True
    db.commit()

    revoke_user_sessions(db, user.id)
    return user
