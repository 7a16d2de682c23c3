"""Per-action rate limiting.

This module wires the quota stores into the HTTP layer.

Design goals:
- One storage decision per process: ``build_quota_store`` runs when services
  are built and every limiter shares the chosen store.
- Limiters are cached by ``(action_name, limit, window_seconds)`` so repeated
  checks aggregate into one logical bucket per caller.
- Callers are identified by an explicit unique key (e.g. the submitted email)
  or, when none is given, by the client IP.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError

from ideon.adapters.rate_limit.base import QuotaStore, RateLimitResult
from ideon.adapters.rate_limit.in_memory import InMemoryQuotaStore
from ideon.adapters.rate_limit.sql import SqlQuotaStore
from ideon.core.config import Settings
from ideon.core.errors import RateLimitedAppError
from ideon.core.security import DEFAULT_CLIENT_IP, fingerprint, get_client_ip
from ideon.db.database import create_db_engine

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 5
DEFAULT_WINDOW_SECONDS = 60
RATE_LIMITED_MESSAGE = "Too many requests, please try again later."


def build_quota_store(settings: Settings) -> QuotaStore:
    """Pick the quota store for this process.

    The SQL store is used when ``RATE_LIMIT_STORE`` is ``sql``, or ``auto`` with
    ``DATABASE_URL`` set. Failing to reach the store degrades to memory with a
    warning instead of preventing startup.

    Returns:
        QuotaStore: The store every limiter of this process will share.
    """

    cfg = settings.rate_limit
    url = settings.database.url

    if cfg.store == "sql" and not url:
        logger.warning(
            "rate_limit.store.fallback",
            extra={"reason": "database_url_not_configured", "requested": cfg.store},
        )
    elif cfg.store != "memory" and url:
        engine = None
        try:
            engine = create_db_engine(url, pool_size=cfg.sql_pool_size, pool_pre_ping=True)
            store = SqlQuotaStore(
                engine,
                prune_interval_seconds=cfg.prune_interval_seconds,
                owns_engine=True,
            )
        except (SQLAlchemyError, ImportError, ValueError) as exc:
            if engine is not None:
                engine.dispose()
            logger.warning(
                "rate_limit.store.fallback",
                extra={"reason": type(exc).__name__, "error_msg": str(exc)},
            )
        else:
            logger.info("rate_limit.store.sql", extra={"dialect": engine.dialect.name})
            return store

    logger.warning(
        "rate_limit.store.in_memory",
        extra={
            "hint": (
                "Rate limits are tracked per process and are not shared across "
                "instances; set DATABASE_URL to enforce them globally"
            ),
        },
    )
    return InMemoryQuotaStore(prune_interval_seconds=cfg.prune_interval_seconds)


@dataclass(frozen=True)
class RateLimiter:
    """Counting policy for one protected action."""

    key_prefix: str
    limit: int
    window_seconds: int
    store: QuotaStore

    def consume(self, caller: str, *, cost: int = 1) -> RateLimitResult:
        return self.store.consume(
            f"{self.key_prefix}:{caller}",
            limit=self.limit,
            window_seconds=self.window_seconds,
            cost=cost,
        )


class RateLimitService:
    """Process-wide entry point for rate limit checks.

    Built once at startup around a single ``QuotaStore`` and closed at shutdown.
    """

    def __init__(self, store: QuotaStore, *, enabled: bool = True) -> None:
        self._store = store
        self._enabled = enabled
        self._limiters: dict[tuple[str, int, int], RateLimiter] = {}
        self._lock = threading.Lock()

    @property
    def store(self) -> QuotaStore:
        return self._store

    def get_limiter(self, action_name: str, limit: int, window_seconds: int) -> RateLimiter:
        """Return the cached limiter for the triple, creating it on first use."""
        cache_key = (action_name, limit, window_seconds)
        limiter = self._limiters.get(cache_key)
        if limiter is not None:
            return limiter

        with self._lock:
            limiter = self._limiters.get(cache_key)
            if limiter is None:
                limiter = RateLimiter(
                    key_prefix=action_name,
                    limit=limit,
                    window_seconds=window_seconds,
                    store=self._store,
                )
                self._limiters[cache_key] = limiter
            return limiter

    def check_rate_limit(
        self,
        action_name: str,
        limit: int = DEFAULT_LIMIT,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        unique_key: str | None = None,
        *,
        client_ip: str | None = None,
    ) -> None:
        """Consume one unit for the caller or raise when the quota is spent.

        Args:
            action_name: Name of the protected operation.
            limit: Operations allowed per window.
            window_seconds: Window length in seconds.
            unique_key: Caller identity; the client IP is used when omitted.
            client_ip: Resolved client address of the current request.

        Raises:
            ValueError: If action_name is empty or limit/window are not positive.
            RateLimitedAppError: When the caller exceeded the quota (HTTP 429).
        """
        if not action_name:
            raise ValueError("action_name must be a non-empty string")
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        if not self._enabled:
            return

        caller = unique_key or client_ip or DEFAULT_CLIENT_IP
        key_type = "unique_key" if unique_key else "ip"

        result = self.get_limiter(action_name, limit, window_seconds).consume(caller)
        if result.allowed:
            logger.debug(
                "rate_limit.allowed",
                extra={
                    "action": action_name,
                    "key_type": key_type,
                    "key_hash": fingerprint(caller),
                    "remaining": result.remaining,
                },
            )
            return

        retry_after = result.retry_after_seconds or 0
        logger.warning(
            "rate_limit.exceeded",
            extra={
                "action": action_name,
                "key_type": key_type,
                "key_hash": fingerprint(caller),
                "limit": result.limit,
                "window_s": window_seconds,
                "retry_after_s": retry_after,
            },
        )
        raise RateLimitedAppError(
            code="rate_limited",
            message=RATE_LIMITED_MESSAGE,
            details={
                "retry_after": retry_after,
                "limit": result.limit,
                "remaining": result.remaining,
                "reset_at": result.reset_at,
            },
        )

    def close(self) -> None:
        with self._lock:
            self._limiters.clear()
        self._store.close()


def request_client_ip(request: Request) -> str:
    """Resolve the client IP of a FastAPI request."""
    peer = request.client.host if request.client else None
    return get_client_ip(request.headers, fallback=peer)


def check_rate_limit(
    request: Request,
    action_name: str,
    limit: int = DEFAULT_LIMIT,
    window_seconds: int = DEFAULT_WINDOW_SECONDS,
    unique_key: str | None = None,
) -> None:
    """Rate limit the current request using the app's service container.

    Raises:
        RateLimitedAppError: When the caller exceeded the quota (HTTP 429).
    """
    service: RateLimitService = request.app.state.services.rate_limiter
    service.check_rate_limit(
        action_name,
        limit,
        window_seconds,
        unique_key,
        client_ip=request_client_ip(request),
    )


class RateLimit:
    """FastAPI dependency enforcing a per-IP quota on a route.

    Usage:
        @router.post("/register", dependencies=[Depends(RateLimit("register", 5, 3600))])
    """

    def __init__(
        self,
        action_name: str,
        limit: int = DEFAULT_LIMIT,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
    ) -> None:
        self.action_name = action_name
        self.limit = limit
        self.window_seconds = window_seconds

    async def __call__(self, request: Request) -> None:
        check_rate_limit(request, self.action_name, self.limit, self.window_seconds)
