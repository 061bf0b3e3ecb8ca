"""Throttling of the requests sent to the GitLab API."""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any

import redis

logger = logging.getLogger(__name__)

REDIS_KEY = "gcpe:gitlab:api"
_REDIS_PREFIX = "rate:"

# Generic cell rate algorithm, evaluated atomically on the server.
# Returns {allowed, retry_after_seconds}.
_GCRA_SCRIPT = """
if redis.replicate_commands then
  redis.replicate_commands()
end

local key = KEYS[1]
local burst = tonumber(ARGV[1])
local rate = tonumber(ARGV[2])
local period = tonumber(ARGV[3])
local cost = tonumber(ARGV[4])

local emission_interval = period / rate
local increment = emission_interval * cost
local tolerance = emission_interval * burst

local clock = redis.call("TIME")
local now = tonumber(clock[1]) + tonumber(clock[2]) / 1000000

local tat = tonumber(redis.call("GET", key))
if not tat or tat < now then
  tat = now
end

local new_tat = tat + increment
local allow_at = new_tat - tolerance
local diff = now - allow_at

if diff < 0 then
  return {0, tostring(-diff)}
end

local ttl = math.ceil(new_tat - now)
if ttl < 1 then
  ttl = 1
end
redis.call("SET", key, tostring(new_tat), "EX", ttl)
return {1, "0"}
"""


class RateLimitError(RuntimeError):
    """Raised when a limiter cannot hand out a request slot."""


class Limiter(ABC):
    """Something that blocks until one more request may be sent."""

    @abstractmethod
    def take(self) -> float:
        """Block until a request is allowed; return the seconds spent waiting."""


def take(limiter: Limiter) -> None:
    """Block until the limiter allows one more request."""
    limiter.take()


class LocalLimiter(Limiter):
    """In-process token bucket holding up to ``burstable_rps`` tokens."""

    def __init__(self, maximum_rps: float, burstable_rps: int) -> None:
        self.maximum_rps = float(maximum_rps)
        self.burstable_rps = int(burstable_rps)
        self._tokens = float(self.burstable_rps)
        self._last = time.monotonic()
        self._lock = threading.Lock()

    def _reserve(self) -> float:
        """Take one token and return how long the caller must wait for it."""
        with self._lock:
            if self.burstable_rps < 1:
                raise RateLimitError(
                    f"rate: Wait(n=1) exceeds limiter's burst {self.burstable_rps}"
                )
            now = time.monotonic()
            if self.maximum_rps > 0:
                elapsed = max(0.0, now - self._last)
                self._tokens = min(
                    float(self.burstable_rps), self._tokens + elapsed * self.maximum_rps
                )
            self._last = now

            if self._tokens >= 1:
                self._tokens -= 1
                return 0.0
            if self.maximum_rps <= 0:
                raise RateLimitError("rate: Wait(n=1) would never be satisfied")
            self._tokens -= 1
            return -self._tokens / self.maximum_rps

    def take(self) -> float:
        start = time.monotonic()
        wait = self._reserve()
        if wait > 0:
            time.sleep(wait)
        return time.monotonic() - start


class RedisLimiter(Limiter):
    """Limiter shared by every process using the same Redis server."""

    def __init__(self, client: Any, max_rps: int) -> None:
        self.client = client
        self.max_rps = int(max_rps)
        self._script = client.register_script(_GCRA_SCRIPT)

    def _allow(self) -> tuple[bool, float]:
        try:
            result = self._script(
                keys=[_REDIS_PREFIX + REDIS_KEY],
                args=[self.max_rps, self.max_rps, 1, 1],
            )
        except redis.exceptions.RedisError as exc:
            raise RateLimitError(str(exc)) from exc

        allowed, retry_after = result
        if isinstance(retry_after, bytes):
            retry_after = retry_after.decode()
        return int(allowed) > 0, float(retry_after)

    def take(self) -> float:
        start = time.monotonic()
        while True:
            allowed, retry_after = self._allow()
            if allowed:
                break
            logger.debug("throttled GitLab requests for %.3fs", retry_after)
            time.sleep(retry_after)
        return time.monotonic() - start