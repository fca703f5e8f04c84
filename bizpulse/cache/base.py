"""
Report cache interface.

Backends implement `_read`, `_write` and `_delete_pattern` and raise
CacheUnavailable on any failure. The public `get`, `set` and `invalidate`
methods log those failures and degrade to a miss or a no-op, so a report is
never failed because its cache is down.
"""

import json
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import structlog

from bizpulse.exceptions import CacheUnavailable

logger = structlog.get_logger(__name__)


class ReportCache(ABC):
    """
    Fail-open cache for computed reports.

    Entries are stored in an envelope carrying their write time. An entry
    older than its own TTL or the freshness ceiling is treated as a miss even
    if the backend has not expired it yet.

    Attributes:
        freshness_seconds: Upper bound on the age of any served entry
        clock: Returns the current time in epoch seconds
    """

    def __init__(self, freshness_seconds: int = 300, clock: Callable[[], float] = time.time):
        self.freshness_seconds = freshness_seconds
        self.clock = clock

    @abstractmethod
    def _read(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def _write(self, key: str, payload: str, ttl_seconds: int) -> None:
        pass

    @abstractmethod
    def _delete_pattern(self, pattern: str) -> int:
        pass

    def get(self, key: str) -> Optional[Any]:
        """Cached value, or None on a miss, a stale entry or a backend failure."""
        try:
            payload = self._read(key)
            if payload is None:
                return None
            try:
                envelope = json.loads(payload)
                cached_at = float(envelope["cached_at"])
                ttl = float(envelope["ttl"])
                value = envelope["value"]
            except (UnicodeDecodeError, ValueError, KeyError, TypeError) as e:
                raise CacheUnavailable("Corrupt cache entry", key=key) from e
        except CacheUnavailable as e:
            logger.warning("cache_get_failed", key=key, error=str(e))
            return None

        age = self.clock() - cached_at
        if age > min(ttl, self.freshness_seconds):
            logger.debug("cache_entry_stale", key=key, age_seconds=round(age, 3))
            return None
        return value

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            try:
                payload = json.dumps({"cached_at": self.clock(), "ttl": ttl_seconds, "value": value})
            except (TypeError, ValueError) as e:
                raise CacheUnavailable("Value is not JSON serializable", key=key) from e
            self._write(key, payload, ttl_seconds)
        except CacheUnavailable as e:
            logger.warning("cache_set_failed", key=key, error=str(e))

    def invalidate(self, pattern: str) -> int:
        """Delete entries whose keys match a glob pattern; returns the count removed."""
        try:
            removed = self._delete_pattern(pattern)
        except CacheUnavailable as e:
            logger.warning("cache_invalidate_failed", pattern=pattern, error=str(e))
            return 0
        logger.info("cache_invalidated", pattern=pattern, removed=removed)
        return removed


class NullCache(ReportCache):
    """Cache that never stores anything; used when no backend is configured."""

    def _read(self, key):
        return None

    def _write(self, key, payload, ttl_seconds):
        pass

    def _delete_pattern(self, pattern):
        return 0
