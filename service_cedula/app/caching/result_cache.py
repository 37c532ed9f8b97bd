"""
Cache-aside store for registry records.

Records are cached once per cédula, independent of the requested view, and
reshaped on every hit. Store failures never fail a query: a failed read is a
miss and a failed write is skipped.
"""

import json
from typing import Optional

import redis.asyncio as redis

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..domain.models import RegistryRecord


DEFAULT_RESULT_TTL = 3600
CACHE_TYPE = "consulta"


class ResultCache:
    """Redis-backed result cache keyed by canonical cédula."""

    def __init__(self,
                 redis_client: redis.Redis,
                 ttl_seconds: int = DEFAULT_RESULT_TTL,
                 key_prefix: str = "jce:consulta",
                 metrics: Optional[MetricsCollector] = None):
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix
        self.metrics = metrics
        self.logger = get_logger("cedula.result_cache")
        self._redis = redis_client

    def _make_key(self, national_id: str) -> str:
        return f"{self.key_prefix}:{national_id}"

    def _record_error(self, operation: str, national_id: str, error: Exception):
        self.logger.warning("Cache store error", operation=operation, national_id=national_id, error=str(error))
        if self.metrics:
            self.metrics.increment_counter("cache_errors_total", operation=operation)

    async def get(self, national_id: str) -> Optional[RegistryRecord]:
        """Return the cached record, or None on miss or store failure."""
        try:
            raw = await self._redis.get(self._make_key(national_id))
        except (redis.RedisError, OSError) as e:
            self._record_error("get", national_id, e)
            return None

        if raw is None:
            if self.metrics:
                self.metrics.increment_counter("cache_misses_total", cache_type=CACHE_TYPE)
            return None

        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            record = RegistryRecord.from_dict(json.loads(raw))
        except (ValueError, TypeError) as e:
            self._record_error("decode", national_id, e)
            return None

        if self.metrics:
            self.metrics.increment_counter("cache_hits_total", cache_type=CACHE_TYPE)
        self.logger.debug("Cache hit", national_id=national_id)
        return record

    async def put(self, national_id: str, record: RegistryRecord, ttl: Optional[int] = None) -> bool:
        """Store a record with a single SET ... EX."""
        try:
            await self._redis.set(
                self._make_key(national_id),
                json.dumps(record.to_dict(), ensure_ascii=False),
                ex=ttl or self.ttl_seconds
            )
        except (redis.RedisError, OSError) as e:
            self._record_error("put", national_id, e)
            return False
        return True

    async def invalidate(self, national_id: str) -> bool:
        """Drop a cached record. Returns True when something was removed."""
        try:
            removed = await self._redis.delete(self._make_key(national_id))
        except (redis.RedisError, OSError) as e:
            self._record_error("invalidate", national_id, e)
            return False
        return bool(removed)

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except (redis.RedisError, OSError) as e:
            self.logger.warning("Cache store ping failed", error=str(e))
            return False
