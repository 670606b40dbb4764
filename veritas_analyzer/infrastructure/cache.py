"""In-process categorization cache keyed by normalized merchant"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, Optional

from veritas_analyzer.infrastructure.observability.metrics import cache_events_counter


@dataclass(frozen=True)
class CachedCategory:
    category: str
    merchant: Optional[str] = None
    tags: FrozenSet[str] = field(default_factory=frozenset)
    confidence: float = 0.0


class CategorizationCache:
    """
    TTL cache for remote classification results.

    Owned by a CategorizationEngine; guarded by a lock so concurrent batches
    (or threads running separate analyses) can read and write safely. When
    ``max_entries`` is reached the least recently written entry is evicted.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, tuple[float, CachedCategory]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[CachedCategory]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                cache_events_counter.labels(result="miss").inc()
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                cache_events_counter.labels(result="expired").inc()
                return None
            cache_events_counter.labels(result="hit").inc()
            return value

    def put(self, key: str, value: CachedCategory) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = (self._clock() + self.ttl_seconds, value)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def evict_expired(self) -> int:
        """Drop expired entries; returns how many were removed"""
        with self._lock:
            now = self._clock()
            expired = [key for key, (expires_at, _) in self._entries.items() if now >= expires_at]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
