"""
In-process report cache, for tests and single-process deployments.
"""

import fnmatch
import threading
import time
from typing import Callable, Optional

from .base import ReportCache


class InMemoryReportCache(ReportCache):
    """Thread-safe dict-backed cache with backend-side expiry."""

    def __init__(self, freshness_seconds: int = 300, clock: Callable[[], float] = time.time):
        super().__init__(freshness_seconds, clock)
        self._entries: dict[str, tuple[float, str]] = {}
        self._lock = threading.Lock()

    def _read(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, payload = entry
            if self.clock() >= expires_at:
                del self._entries[key]
                return None
            return payload

    def _write(self, key: str, payload: str, ttl_seconds: int) -> None:
        with self._lock:
            self._entries[key] = (self.clock() + ttl_seconds, payload)

    def _delete_pattern(self, pattern: str) -> int:
        with self._lock:
            matched = [k for k in self._entries if fnmatch.fnmatchcase(k, pattern)]
            for key in matched:
                del self._entries[key]
            return len(matched)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
