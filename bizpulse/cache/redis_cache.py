"""
Redis-backed report cache.

Entries are JSON envelopes written with SETEX so Redis expires them on its
own; invalidation walks matching keys with SCAN rather than KEYS.
"""

import time
from typing import Callable, Optional

import redis
import structlog

from bizpulse.exceptions import CacheUnavailable

from .base import ReportCache

logger = structlog.get_logger(__name__)


class RedisReportCache(ReportCache):
    """
    Report cache on a synchronous redis-py client.

    The client is injected, so connection setup and pooling stay with the
    caller; see `get_report_cache` for the default wiring.
    """

    def __init__(
        self,
        client: redis.Redis,
        freshness_seconds: int = 300,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(freshness_seconds, clock)
        self.client = client

    def _read(self, key: str) -> Optional[str]:
        try:
            raw = self.client.get(key)
        except redis.RedisError as e:
            raise CacheUnavailable(f"Redis GET failed: {e}", key=key) from e
        if raw is None or not isinstance(raw, bytes):
            return raw
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CacheUnavailable("Cache entry is not valid UTF-8", key=key) from e

    def _write(self, key: str, payload: str, ttl_seconds: int) -> None:
        try:
            self.client.setex(key, ttl_seconds, payload)
        except redis.RedisError as e:
            raise CacheUnavailable(f"Redis SETEX failed: {e}", key=key) from e
        logger.debug("cache_set", key=key, ttl=ttl_seconds)

    def _delete_pattern(self, pattern: str) -> int:
        try:
            keys = list(self.client.scan_iter(match=pattern, count=500))
            if not keys:
                return 0
            return int(self.client.delete(*keys))
        except redis.RedisError as e:
            raise CacheUnavailable(f"Redis invalidation failed: {e}", pattern=pattern) from e
