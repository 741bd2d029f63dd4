"""Unit tests for the in-memory rate limit store."""

import threading

import pytest

from app.adapters.rate_limit.in_memory import InMemoryRateLimitStore


def test_first_hit_opens_window() -> None:
    store = InMemoryRateLimitStore()

    entry, admitted = store.hit("k", max_requests=3, window_ms=1000, now_ms=5000)

    assert admitted is True
    assert entry.count == 1
    assert entry.window_start == 5000
    assert entry.expires_at == 6000
    assert len(store) == 1


def test_hits_increment_until_limit_then_reject_without_counting() -> None:
    store = InMemoryRateLimitStore()

    for _ in range(3):
        _, admitted = store.hit("k", max_requests=3, window_ms=1000, now_ms=0)
        assert admitted is True

    entry, admitted = store.hit("k", max_requests=3, window_ms=1000, now_ms=10)
    assert admitted is False
    assert entry.count == 3

    entry, admitted = store.hit("k", max_requests=3, window_ms=1000, now_ms=20)
    assert admitted is False
    assert entry.count == 3


def test_expired_entry_is_replaced_by_fresh_window() -> None:
    store = InMemoryRateLimitStore()
    store.hit("k", max_requests=1, window_ms=1000, now_ms=0)
    store.hit("k", max_requests=1, window_ms=1000, now_ms=500)

    entry, admitted = store.hit("k", max_requests=1, window_ms=1000, now_ms=1000)

    assert admitted is True
    assert entry.count == 1
    assert entry.window_start == 1000


def test_sweep_removes_only_expired_entries() -> None:
    store = InMemoryRateLimitStore()
    store.hit("old", max_requests=5, window_ms=1000, now_ms=0)
    store.hit("new", max_requests=5, window_ms=1000, now_ms=900)

    removed = store.sweep(now_ms=1000)

    assert removed == 1
    assert store.get("old") is None
    assert store.get("new") is not None


def test_get_returns_snapshot() -> None:
    store = InMemoryRateLimitStore()
    store.hit("k", max_requests=5, window_ms=1000, now_ms=0)

    snapshot = store.get("k")
    store.hit("k", max_requests=5, window_ms=1000, now_ms=1)

    assert snapshot is not None
    assert snapshot.count == 1
    assert store.get("k").count == 2


def test_clear_and_entries() -> None:
    store = InMemoryRateLimitStore()
    store.hit("a", max_requests=5, window_ms=1000, now_ms=0)
    store.hit("b", max_requests=5, window_ms=1000, now_ms=0)

    assert sorted(e.key for e in store.entries()) == ["a", "b"]

    store.clear()
    assert len(store) == 0
    assert store.entries() == []


def test_rejects_empty_key() -> None:
    store = InMemoryRateLimitStore()

    with pytest.raises(ValueError):
        store.hit("", max_requests=1, window_ms=1000, now_ms=0)


def test_concurrent_hits_never_exceed_limit() -> None:
    store = InMemoryRateLimitStore()
    barrier = threading.Barrier(20)
    admitted: list[bool] = []
    lock = threading.Lock()

    def worker() -> None:
        barrier.wait()
        for _ in range(10):
            _, ok = store.hit("k", max_requests=7, window_ms=60_000, now_ms=0)
            with lock:
                admitted.append(ok)

    threads = [threading.Thread(target=worker) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(admitted) == 200
    assert sum(admitted) == 7
    assert store.get("k").count == 7
