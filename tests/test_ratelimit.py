import time

import pytest
import redis

from gcpexporter.ratelimit import (
    REDIS_KEY,
    LocalLimiter,
    RateLimitError,
    RedisLimiter,
    take,
)


def measure_take_duration(limiter):
    start = time.monotonic()
    take(limiter)
    return time.monotonic() - start


class _FakeScript:
    def __init__(self, results):
        self.results = list(results)
        self.calls = []

    def __call__(self, keys=None, args=None):
        self.calls.append((keys, args))
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class _FakeClient:
    def __init__(self, results):
        self.script = _FakeScript(results)
        self.registered = []

    def register_script(self, source):
        self.registered.append(source)
        return self.script


def test_new_local_limiter():
    limiter = LocalLimiter(10, 1)
    assert limiter.maximum_rps == 10
    assert limiter.burstable_rps == 1


def test_local_take():
    limiter = LocalLimiter(1, 1)
    assert measure_take_duration(limiter) <= 0.1
    assert measure_take_duration(limiter) >= 0.95


def test_local_burst_allows_immediate_requests():
    limiter = LocalLimiter(1, 3)
    durations = [measure_take_duration(limiter) for _ in range(3)]
    assert max(durations) <= 0.1


def test_local_zero_burst_raises():
    with pytest.raises(RateLimitError):
        LocalLimiter(10, 0).take()


def test_local_zero_rate_raises_when_exhausted():
    limiter = LocalLimiter(0, 1)
    assert limiter.take() <= 0.1
    with pytest.raises(RateLimitError):
        limiter.take()


def test_new_redis_limiter():
    client = _FakeClient([])
    limiter = RedisLimiter(client, 10)
    assert limiter.max_rps == 10
    assert limiter.client is client
    assert len(client.registered) == 1


def test_redis_take_allowed_immediately():
    client = _FakeClient([[1, b"0"]])
    limiter = RedisLimiter(client, 5)
    assert measure_take_duration(limiter) <= 0.1
    keys, args = client.script.calls[0]
    assert keys == ["rate:" + REDIS_KEY]
    assert args == [5, 5, 1, 1]


def test_redis_take_waits_when_throttled():
    client = _FakeClient([[0, b"0.2"], [1, b"0"]])
    limiter = RedisLimiter(client, 1)
    assert measure_take_duration(limiter) >= 0.19
    assert len(client.script.calls) == 2


def test_redis_take_error_from_client():
    client = _FakeClient([redis.exceptions.ConnectionError("boom")])
    limiter = RedisLimiter(client, 1)
    with pytest.raises(RateLimitError, match="boom"):
        take(limiter)


def test_redis_take_error_unreachable_server():
    client = redis.Redis(host="127.0.0.1", port=1, socket_connect_timeout=0.5)
    limiter = RedisLimiter(client, 1)
    with pytest.raises(RateLimitError):
        take(limiter)