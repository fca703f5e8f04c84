"""
Report cache layer.

The analytics facade receives a `ReportCache` at construction time:

- RedisReportCache: shared cache for multi-process deployments
- InMemoryReportCache: in-process cache for tests and demos
- NullCache: used when caching is disabled
"""

from typing import Optional

import redis
import structlog

from bizpulse.config import Settings, get_settings

from .base import NullCache, ReportCache
from .keys import fingerprint, tenant_pattern
from .memory_cache import InMemoryReportCache
from .redis_cache import RedisReportCache

logger = structlog.get_logger(__name__)


def get_report_cache(settings: Optional[Settings] = None) -> ReportCache:
    """
    Build the report cache selected by configuration.

    The Redis client connects lazily, so an unreachable server here only
    shows up later as logged cache misses.
    """
    settings = settings or get_settings()
    if not settings.cache_enabled:
        logger.info("report_cache_disabled")
        return NullCache(settings.cache_freshness_seconds)

    client = redis.Redis.from_url(
        settings.redis_url,
        socket_connect_timeout=settings.redis_socket_timeout,
        socket_timeout=settings.redis_socket_timeout,
    )
    logger.info("report_cache_configured", backend="redis")
    return RedisReportCache(client, freshness_seconds=settings.cache_freshness_seconds)


__all__ = [
    "ReportCache",
    "NullCache",
    "InMemoryReportCache",
    "RedisReportCache",
    "fingerprint",
    "tenant_pattern",
    "get_report_cache",
]
