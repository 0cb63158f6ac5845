# services/analytics_cache.py
"""Process-local TTL cache for POST /analytics payloads.

Key:
  canonical JSON of (user id, request body)  -> structural equality, key order irrelevant

TTL:
- Enforced at read time (clock() < expires_at). Nothing is evicted proactively;
  a key is only replaced by the next write for the same key.

Per-process only. Behind more than one worker/instance each keeps its own copy.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Dict, Optional

from core.logging import logger


@dataclass
class CacheEntry:
    payload: Dict[str, Any]
    expires_at: float


class AnalyticsCache:
    def __init__(self, ttl_s: float = 60.0, *, clock: Callable[[], float] = time.time) -> None:
        self.ttl_s = float(ttl_s)
        self._clock = clock
        self._lock = Lock()
        self._entries: Dict[str, CacheEntry] = {}

    @staticmethod
    def make_key(*parts: Any) -> str:
        return json.dumps(parts, sort_keys=True, separators=(",", ":"), default=str)

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        if now >= entry.expires_at:
            logger.debug("ANALYTICS_CACHE_EXPIRED key=%s", key[:80])
            return None
        return entry.payload

    def set(self, key: str, payload: Dict[str, Any]) -> None:
        entry = CacheEntry(payload=payload, expires_at=self._clock() + self.ttl_s)
        with self._lock:
            self._entries[key] = entry

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
