"""Relational quota store shared by every API process.

Each consumption is one ``INSERT ... ON CONFLICT DO UPDATE ... RETURNING``
statement. The database serializes concurrent upserts on the same key row,
so all instances pointing at the same store enforce one quota.

Rejected consumptions are still counted: the row reflects every attempt made
in the window, which is what other processes need to see.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from sqlalchemy import Engine, case, delete
from sqlalchemy.dialects import postgresql, sqlite

from ideon.adapters.rate_limit.base import (
    QuotaStore,
    RateLimitResult,
    build_result,
    validate_consume_args,
)
from ideon.db.models import RateLimitRecord

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class SqlQuotaStore(QuotaStore):
    """Windowed counters persisted in the ``rate_limits`` table."""

    def __init__(
        self,
        engine: Engine,
        *,
        clock: Callable[[], float] = time.time,
        prune_interval_seconds: int = 300,
        owns_engine: bool = False,
    ) -> None:
        """Bind the store to an engine and make sure its table exists.

        Args:
            engine: Engine connected to PostgreSQL or SQLite.
            clock: Time source function returning UNIX time in seconds.
            prune_interval_seconds: Minimum delay between deletes of expired rows.
            owns_engine: Dispose the engine when the store is closed.

        Raises:
            ValueError: If the engine's dialect has no upsert support here.
            sqlalchemy.exc.SQLAlchemyError: If the table cannot be created.
        """
        insert = _DIALECT_INSERTS.get(engine.dialect.name)
        if insert is None:
            raise ValueError(f"Unsupported dialect for rate limiting: {engine.dialect.name}")

        self._engine = engine
        self._insert = insert
        self._clock = clock
        self._prune_interval = prune_interval_seconds
        self._owns_engine = owns_engine
        self._prune_lock = threading.Lock()
        self._last_prune = clock()

        RateLimitRecord.__table__.create(bind=engine, checkfirst=True)

    @property
    def shared(self) -> bool:
        return True

    def _upsert_statement(self, key: str, cost: int, now: float, window_seconds: int):
        table = RateLimitRecord.__table__
        expire = now + window_seconds
        stmt = self._insert(table).values(key=key, points=cost, expire=expire)
        live = table.c.expire > now
        return stmt.on_conflict_do_update(
            index_elements=[table.c.key],
            set_={
                "points": case((live, table.c.points + cost), else_=cost),
                "expire": case((live, table.c.expire), else_=expire),
            },
        ).returning(table.c.points, table.c.expire)

    def consume(
        self,
        key: str,
        *,
        limit: int,
        window_seconds: int,
        cost: int = 1,
    ) -> RateLimitResult:
        """Atomically add ``cost`` to the key's counter and report the outcome.

        Raises:
            ValueError: If key is empty or limit, window or cost is invalid.
            sqlalchemy.exc.SQLAlchemyError: If the store is unreachable.
        """
        validate_consume_args(key, limit, window_seconds, cost)

        now = self._clock()
        stmt = self._upsert_statement(key, cost, now, window_seconds)
        with self._engine.begin() as conn:
            points, expire = conn.execute(stmt).one()

        self._maybe_prune(now)
        return build_result(consumed=points, limit=limit, expire=expire, now=now)

    def prune_expired(self) -> int:
        """Delete rows whose window has ended. Returns the number removed."""
        now = self._clock()
        table = RateLimitRecord.__table__
        with self._engine.begin() as conn:
            result = conn.execute(delete(table).where(table.c.expire <= now))
        return result.rowcount or 0

    def _maybe_prune(self, now: float) -> None:
        if now - self._last_prune < self._prune_interval:
            return
        if not self._prune_lock.acquire(blocking=False):
            return
        try:
            self._last_prune = now
            removed = self.prune_expired()
            logger.debug("rate_limit.pruned", extra={"rows": removed})
        finally:
            self._prune_lock.release()

    def close(self) -> None:
        if self._owns_engine:
            self._engine.dispose()
