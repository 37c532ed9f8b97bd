"""
Token bucket admission control for the Cédula Service.

Each client key owns one Redis hash holding the token level and last refill
time of every bandwidth. A Lua script refills, checks and consumes all
bandwidths in a single atomic step, so concurrent replicas never
double-spend a token.
"""

import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import redis.asyncio as redis
from fastapi import Request

from shared.logging import get_logger
from shared.metrics import MetricsCollector


# KEYS[1] = bucket key
# ARGV[1] = now (ms), ARGV[2] = key ttl (ms)
# ARGV[3..] = capacity, refill tokens, refill period (ms) per bandwidth
# Returns {admitted, remaining, wait_ms}
ADMISSION_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local ttl = tonumber(ARGV[2])
local count = (#ARGV - 2) / 3
local levels = {}
local admitted = 1
local wait = 0

for i = 1, count do
    local capacity = tonumber(ARGV[3 * i])
    local refill = tonumber(ARGV[3 * i + 1])
    local period = tonumber(ARGV[3 * i + 2])
    local level = tonumber(redis.call('HGET', key, 't' .. i))
    local stamp = tonumber(redis.call('HGET', key, 'ts' .. i))
    if level == nil or stamp == nil then
        level = capacity
        stamp = now
    end
    local elapsed = math.max(0, now - stamp)
    level = math.min(capacity, level + elapsed * refill / period)
    levels[i] = level
    if level < 1 then
        admitted = 0
        local need = (1 - level) * period / refill
        if need > wait then
            wait = need
        end
    end
end

local remaining = -1
for i = 1, count do
    if admitted == 1 then
        levels[i] = levels[i] - 1
    end
    local whole = math.floor(levels[i])
    if remaining < 0 or whole < remaining then
        remaining = whole
    end
    redis.call('HSET', key, 't' .. i, tostring(levels[i]), 'ts' .. i, tostring(now))
end
redis.call('PEXPIRE', key, ttl)

return {admitted, remaining, math.ceil(wait)}
"""


@dataclass(frozen=True)
class Bandwidth:
    """One limit: ``capacity`` tokens, refilled greedily at ``refill_tokens`` per ``period_seconds``."""

    name: str
    capacity: int
    refill_tokens: int
    period_seconds: float

    @property
    def seconds_to_full(self) -> float:
        return self.capacity * self.period_seconds / self.refill_tokens


@dataclass(frozen=True)
class AdmissionDecision:
    """Outcome of one admission check."""

    admitted: bool
    remaining: int = 0
    retry_after: int = 0
    degraded: bool = False


def build_bandwidths(requests_per_minute: int, burst_capacity: int, requests_per_hour: int) -> List[Bandwidth]:
    """Short window with burst allowance plus a long window without."""
    return [
        Bandwidth("minute", requests_per_minute + burst_capacity, requests_per_minute, 60.0),
        Bandwidth("hour", requests_per_hour, requests_per_hour, 3600.0),
    ]


def _retry_after_seconds(wait_seconds: float) -> int:
    return max(1, int(math.ceil(wait_seconds)))


class LocalTokenBucket:
    """In-process bucket with the same refill math as the Redis script.

    Used only while the shared store is unreachable, so limits stay bounded
    per replica instead of disappearing.
    """

    def __init__(self, bandwidths: Sequence[Bandwidth],
                 clock: Callable[[], float] = time.time,
                 max_keys: int = 10000):
        self.bandwidths = list(bandwidths)
        self._clock = clock
        self._max_keys = max_keys
        self._state: Dict[str, List[Tuple[float, float]]] = {}

    def try_consume(self, key: str) -> AdmissionDecision:
        now = self._clock()
        state = self._state.get(key)
        if state is None:
            self._prune(now)
            state = [(float(band.capacity), now) for band in self.bandwidths]

        levels = []
        wait = 0.0
        for band, (level, stamp) in zip(self.bandwidths, state):
            elapsed = max(0.0, now - stamp)
            level = min(float(band.capacity), level + elapsed * band.refill_tokens / band.period_seconds)
            levels.append(level)
            if level < 1:
                wait = max(wait, (1 - level) * band.period_seconds / band.refill_tokens)

        admitted = wait == 0.0
        if admitted:
            levels = [level - 1 for level in levels]
        self._state[key] = [(level, now) for level in levels]

        if not admitted:
            return AdmissionDecision(admitted=False, retry_after=_retry_after_seconds(wait), degraded=True)
        return AdmissionDecision(
            admitted=True,
            remaining=int(math.floor(min(levels))),
            degraded=True
        )

    def _prune(self, now: float):
        """Forget keys idle long enough to be full again, then the least recently used ones."""
        if len(self._state) < self._max_keys:
            return
        horizon = max(band.seconds_to_full for band in self.bandwidths)
        last_seen = {key: max(stamp for _, stamp in state) for key, state in self._state.items()}
        for key, stamp in last_seen.items():
            if now - stamp >= horizon:
                del self._state[key]
        overflow = len(self._state) - self._max_keys + 1
        if overflow > 0:
            for key in sorted(self._state, key=last_seen.__getitem__)[:overflow]:
                del self._state[key]


class AdmissionController:
    """Distributed two-window token bucket keyed by client address."""

    def __init__(self,
                 redis_client: redis.Redis,
                 bandwidths: Sequence[Bandwidth],
                 key_prefix: str = "jce:rate_limit",
                 metrics: Optional[MetricsCollector] = None,
                 clock: Callable[[], float] = time.time,
                 fallback: Optional[LocalTokenBucket] = None):
        self.bandwidths = list(bandwidths)
        self.key_prefix = key_prefix
        self.metrics = metrics
        self.logger = get_logger("cedula.rate_limiter")
        self._redis = redis_client
        self._clock = clock
        self._script = redis_client.register_script(ADMISSION_SCRIPT)
        self._fallback = fallback or LocalTokenBucket(self.bandwidths, clock=clock)

    @classmethod
    def from_config(cls, config, redis_client: redis.Redis,
                    metrics: Optional[MetricsCollector] = None) -> "AdmissionController":
        bandwidths = build_bandwidths(
            config.rate_limit_requests_per_minute,
            config.rate_limit_burst_capacity,
            config.rate_limit_requests_per_hour,
        )
        return cls(redis_client, bandwidths, key_prefix=config.rate_limit_key_prefix, metrics=metrics)

    def _make_key(self, client_key: str) -> str:
        return f"{self.key_prefix}:{client_key}"

    def _script_args(self, now_ms: int) -> List[Any]:
        ttl_ms = int(math.ceil(max(band.seconds_to_full for band in self.bandwidths) * 1000))
        args: List[Any] = [now_ms, ttl_ms]
        for band in self.bandwidths:
            args.extend([band.capacity, band.refill_tokens, int(band.period_seconds * 1000)])
        return args

    async def try_admit(self, client_key: str) -> AdmissionDecision:
        """Consume one token from every bandwidth, or report how long to wait."""
        now_ms = int(self._clock() * 1000)

        try:
            result = await self._script(keys=[self._make_key(client_key)], args=self._script_args(now_ms))
            admitted, remaining, wait_ms = (int(value) for value in result)
        except (redis.RedisError, OSError, ValueError, TypeError) as e:
            self.logger.warning(
                "Admission store unavailable, using local bucket",
                client_key=client_key,
                error=str(e)
            )
            if self.metrics:
                self.metrics.increment_counter("rate_limit_degraded_total")
            decision = self._fallback.try_consume(client_key)
        else:
            if admitted:
                decision = AdmissionDecision(admitted=True, remaining=max(0, remaining))
            else:
                decision = AdmissionDecision(admitted=False, retry_after=_retry_after_seconds(wait_ms / 1000.0))

        if not decision.admitted:
            self.logger.warning(
                "Rate limit exceeded",
                client_key=client_key,
                retry_after=decision.retry_after,
                degraded=decision.degraded
            )
            if self.metrics:
                self.metrics.increment_counter(
                    "rate_limit_hits_total",
                    store="local" if decision.degraded else "redis"
                )

        return decision

    def describe(self) -> Dict[str, Any]:
        """Configured limits, for the info endpoint."""
        return {
            band.name: {
                "capacity": band.capacity,
                "refill_tokens": band.refill_tokens,
                "period_seconds": band.period_seconds,
            }
            for band in self.bandwidths
        }


def get_client_key(request: Request) -> str:
    """Extract the caller address used as the admission key."""
    for header in ("X-Forwarded-For", "X-Real-IP", "X-Client-IP"):
        value = request.headers.get(header)
        if not value:
            continue
        candidate = value.split(",")[0].strip()
        if candidate and candidate.lower() != "unknown":
            return candidate

    return request.client.host if request.client else "unknown"
