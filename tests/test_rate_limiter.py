import json

import pytest

from tutorhub import rate_limiter
from tutorhub.rate_limiter import MemoryStore, RedisStore, rate_limit


class RecordingRedis:
    """Minimal client exposing the get/set calls RedisStore makes"""

    def __init__(self):
        self.values = {}
        self.ttls = {}

    def get(self, key):
        return self.values.get(key)

    def set(self, key, value, ex=None):
        self.values[key] = value
        self.ttls[key] = ex


class BrokenStore:
    def get(self, key):
        raise ConnectionError("redis down")

    def set(self, key, timestamps, ttl):
        raise ConnectionError("redis down")


def test_allows_up_to_limit_then_blocks():
    store = MemoryStore()

    results = [rate_limit("10.0.0.1", max_requests=3, window=60, store=store) for _ in range(4)]

    assert [r.success for r in results] == [True, True, True, False]
    assert [r.remaining for r in results] == [2, 1, 0, 0]
    assert 0 < results[-1].reset <= 60


def test_limits_are_per_identifier_and_prefix():
    store = MemoryStore()
    rate_limit("a", max_requests=1, window=60, prefix="one", store=store)

    assert not rate_limit("a", max_requests=1, window=60, prefix="one", store=store).success
    assert rate_limit("b", max_requests=1, window=60, prefix="one", store=store).success
    assert rate_limit("a", max_requests=1, window=60, prefix="two", store=store).success


def test_requests_leave_the_window(monkeypatch):
    store = MemoryStore()
    clock = [1000.0]
    monkeypatch.setattr(rate_limiter.time, "time", lambda: clock[0])

    assert rate_limit("a", max_requests=1, window=10, store=store).success
    assert not rate_limit("a", max_requests=1, window=10, store=store).success

    clock[0] += 11
    assert rate_limit("a", max_requests=1, window=10, store=store).success


def test_redis_store_keeps_timestamps_with_window_ttl():
    client = RecordingRedis()
    store = RedisStore(client)

    rate_limit("10.0.0.1", max_requests=5, window=60, prefix="payment-validation", store=store)

    key = "payment-validation:10.0.0.1"
    assert len(json.loads(client.values[key])) == 1
    assert client.ttls[key] == 60


def test_store_errors_fail_open():
    result = rate_limit("a", max_requests=1, window=60, store=BrokenStore())

    assert result.success
    assert result.remaining == -1
    assert result.reset == -1


@pytest.mark.parametrize("redis_url", [None, ""])
def test_memory_store_used_without_redis(monkeypatch, redis_url):
    monkeypatch.setattr(rate_limiter, "REDIS_URL", redis_url)
    monkeypatch.setattr(rate_limiter, "redis_client", None)

    assert rate_limiter.get_store() is rate_limiter.memory_store


def test_expired_entries_are_swept_for_idle_identifiers(monkeypatch):
    clock = [1000.0]
    monkeypatch.setattr(rate_limiter.time, "time", lambda: clock[0])
    store = MemoryStore(cleanup_interval=60)

    for n in range(500):
        rate_limit(f"10.0.{n // 256}.{n % 256}", max_requests=5, window=1, store=store)
    assert len(store) == 500

    clock[0] += 61
    rate_limit("10.9.9.9", max_requests=5, window=1, store=store)

    assert len(store) == 1


def test_sweep_keeps_live_entries(monkeypatch):
    clock = [1000.0]
    monkeypatch.setattr(rate_limiter.time, "time", lambda: clock[0])
    store = MemoryStore(cleanup_interval=0)

    rate_limit("short", max_requests=5, window=1, store=store)
    rate_limit("long", max_requests=5, window=600, store=store)
    clock[0] += 2
    rate_limit("new", max_requests=5, window=60, store=store)

    assert len(store) == 2
    assert store.get("rate-limit:long")


def test_unreachable_redis_is_not_retried_on_every_request(monkeypatch):
    clock = [1000.0]
    attempts = []

    def unreachable():
        attempts.append(clock[0])
        raise ConnectionError("connect timed out")

    monkeypatch.setattr(rate_limiter.time, "time", lambda: clock[0])
    monkeypatch.setattr(rate_limiter, "REDIS_URL", "redis://10.255.255.1:6379/0")
    monkeypatch.setattr(rate_limiter, "redis_client", None)
    monkeypatch.setattr(rate_limiter, "redis_unavailable_until", 0.0)
    monkeypatch.setattr(rate_limiter, "get_redis_client", unreachable)

    for _ in range(5):
        assert rate_limit("a", max_requests=10, window=60).success

    assert len(attempts) == 1

    clock[0] += rate_limiter.REDIS_RETRY_INTERVAL + 1
    rate_limit("a", max_requests=10, window=60)

    assert len(attempts) == 2
