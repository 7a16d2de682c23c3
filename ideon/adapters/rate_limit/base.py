"""Quota store interface.

The rate limit service depends on this abstraction, never on a concrete
store, so the storage strategy is decided once when services are built.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a consume operation.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max units per window.
        remaining: Units left in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when the current window ends.
        retry_after_seconds: Suggested wait in seconds when blocked.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None


def validate_consume_args(key: str, limit: int, window_seconds: int, cost: int) -> None:
    """Reject arguments no store can honour.

    Raises:
        ValueError: On an empty key or a non-positive limit, window or cost.
    """
    if not key:
        raise ValueError("key must be a non-empty string")
    if limit < 1:
        raise ValueError("limit must be >= 1")
    if window_seconds < 1:
        raise ValueError("window_seconds must be >= 1")
    if cost < 1:
        raise ValueError("cost must be >= 1")


def build_result(*, consumed: int, limit: int, expire: float, now: float) -> RateLimitResult:
    """Translate a bucket's counter into a RateLimitResult."""
    allowed = consumed <= limit
    retry_after = None if allowed else max(1, int(math.ceil(expire - now)))
    return RateLimitResult(
        allowed=allowed,
        limit=limit,
        remaining=max(0, limit - consumed),
        reset_at=int(math.ceil(expire)),
        retry_after_seconds=retry_after,
    )


class QuotaStore(ABC):
    """Strategy interface for windowed counters."""

    @abstractmethod
    def consume(
        self,
        key: str,
        *,
        limit: int,
        window_seconds: int,
        cost: int = 1,
    ) -> RateLimitResult:
        """Consume budget for a key.

        The first consumption for a key opens a window of ``window_seconds``;
        consumptions after it expires start a fresh one.

        Args:
            key: Fully qualified bucket key (action prefix included).
            limit: Units allowed per window.
            window_seconds: Window length in seconds.
            cost: Units to consume (default 1).

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError

    def close(self) -> None:
        """Release resources held by the store."""

    @property
    def shared(self) -> bool:
        """Whether counters are visible to other server processes."""
        return False
