"""Quota stores backing the rate limiter.

Two strategies share one interface: a durable SQL store whose counters are
visible to every server process, and an in-memory store for single-instance
deployments and tests.
"""

from ideon.adapters.rate_limit.base import QuotaStore, RateLimitResult
from ideon.adapters.rate_limit.in_memory import InMemoryQuotaStore
from ideon.adapters.rate_limit.sql import SqlQuotaStore

__all__ = ["QuotaStore", "RateLimitResult", "InMemoryQuotaStore", "SqlQuotaStore"]
