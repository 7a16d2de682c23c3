"""In-memory quota store.

Notes:
- Per-process only: running multiple workers or instances multiplies the
  effective limit.
- Thread-safe: uses a lock around shared state.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from ideon.adapters.rate_limit.base import QuotaStore, RateLimitResult, validate_consume_args


@dataclass
class _Bucket:
    expire: float
    count: int


class InMemoryQuotaStore(QuotaStore):
    """Windowed counters kept in a dict.

    A bucket's window starts with its first consumption and lasts
    ``window_seconds``. Rejected consumptions leave the counter untouched.

    Important:
        Counters are not shared between processes. Use the SQL store when the
        API runs on more than one worker or host.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        prune_interval_seconds: int = 300,
    ) -> None:
        """Initialize the store.

        Args:
            clock: Time source function returning UNIX time in seconds.
            prune_interval_seconds: Minimum delay between sweeps of expired buckets.
        """
        self._clock = clock
        self._prune_interval = prune_interval_seconds
        self._lock = threading.RLock()
        self._buckets: dict[str, _Bucket] = {}
        self._last_prune = clock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def _prune_locked(self, now: float) -> None:
        if now - self._last_prune < self._prune_interval:
            return
        expired = [key for key, bucket in self._buckets.items() if bucket.expire <= now]
        for key in expired:
            del self._buckets[key]
        self._last_prune = now

    def consume(
        self,
        key: str,
        *,
        limit: int,
        window_seconds: int,
        cost: int = 1,
    ) -> RateLimitResult:
        """Consume budget for the provided key.

        Raises:
            ValueError: If key is empty or limit, window or cost is invalid.
        """
        validate_consume_args(key, limit, window_seconds, cost)

        now = self._clock()

        with self._lock:
            self._prune_locked(now)

            bucket = self._buckets.get(key)
            if bucket is None or bucket.expire <= now:
                bucket = _Bucket(expire=now + window_seconds, count=0)
                self._buckets[key] = bucket

            if bucket.count + cost <= limit:
                bucket.count += cost
                return RateLimitResult(
                    allowed=True,
                    limit=limit,
                    remaining=limit - bucket.count,
                    reset_at=int(math.ceil(bucket.expire)),
                    retry_after_seconds=None,
                )

            return RateLimitResult(
                allowed=False,
                limit=limit,
                remaining=max(0, limit - bucket.count),
                reset_at=int(math.ceil(bucket.expire)),
                retry_after_seconds=max(1, int(math.ceil(bucket.expire - now))),
            )

    def close(self) -> None:
        with self._lock:
            self._buckets.clear()
