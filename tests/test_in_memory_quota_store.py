"""Unit tests for the in-memory quota store."""

from unittest.mock import Mock

import pytest

from ideon.adapters.rate_limit.in_memory import InMemoryQuotaStore


def test_allows_up_to_limit_in_same_window() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryQuotaStore(clock=clock)

    assert store.consume("k", limit=3, window_seconds=60).allowed is True
    assert store.consume("k", limit=3, window_seconds=60).allowed is True
    result = store.consume("k", limit=3, window_seconds=60)
    assert result.allowed is True
    assert result.remaining == 0


def test_blocks_when_over_limit() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryQuotaStore(clock=clock)

    assert store.consume("k", limit=2, window_seconds=60).allowed is True
    assert store.consume("k", limit=2, window_seconds=60).allowed is True

    blocked = store.consume("k", limit=2, window_seconds=60)
    assert blocked.allowed is False
    assert blocked.remaining == 0
    assert blocked.retry_after_seconds == 60
    assert blocked.reset_at == 1060


def test_window_is_anchored_on_first_consumption() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryQuotaStore(clock=clock)

    assert store.consume("k", limit=1, window_seconds=10).allowed is True

    clock.return_value = 1009.0
    blocked = store.consume("k", limit=1, window_seconds=10)
    assert blocked.allowed is False
    assert blocked.retry_after_seconds == 1

    clock.return_value = 1010.0
    assert store.consume("k", limit=1, window_seconds=10).allowed is True


def test_rejected_calls_do_not_extend_the_window() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryQuotaStore(clock=clock)

    store.consume("k", limit=1, window_seconds=10)
    for offset in range(1, 10):
        clock.return_value = 1000.0 + offset
        assert store.consume("k", limit=1, window_seconds=10).allowed is False

    clock.return_value = 1010.0
    assert store.consume("k", limit=1, window_seconds=10).allowed is True


def test_isolated_by_key() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryQuotaStore(clock=clock)

    assert store.consume("k1", limit=1, window_seconds=60).allowed is True
    assert store.consume("k1", limit=1, window_seconds=60).allowed is False

    assert store.consume("k2", limit=1, window_seconds=60).allowed is True


def test_cost_larger_than_remaining_is_rejected_without_consuming() -> None:
    store = InMemoryQuotaStore(clock=Mock(return_value=1000.0))

    assert store.consume("k", limit=3, window_seconds=60, cost=2).allowed is True
    blocked = store.consume("k", limit=3, window_seconds=60, cost=2)
    assert blocked.allowed is False
    assert blocked.remaining == 1
    assert store.consume("k", limit=3, window_seconds=60).allowed is True


def test_expired_buckets_are_pruned() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryQuotaStore(clock=clock, prune_interval_seconds=60)

    store.consume("a", limit=1, window_seconds=10)
    store.consume("b", limit=1, window_seconds=10)
    assert len(store) == 2

    clock.return_value = 1100.0
    store.consume("c", limit=1, window_seconds=10)
    assert len(store) == 1


@pytest.mark.parametrize(
    "kwargs",
    [
        {"key": "", "limit": 1, "window_seconds": 60},
        {"key": "k", "limit": 0, "window_seconds": 60},
        {"key": "k", "limit": 1, "window_seconds": 0},
        {"key": "k", "limit": 1, "window_seconds": 60, "cost": 0},
    ],
)
def test_invalid_consume_args(kwargs: dict) -> None:
    store = InMemoryQuotaStore()
    key = kwargs.pop("key")

    with pytest.raises(ValueError):
        store.consume(key, **kwargs)


def test_store_is_not_shared() -> None:
    assert InMemoryQuotaStore().shared is False
