from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Generic, List, Optional, Tuple, TypeVar

from loguru import logger

from packages.common.constants import REPLAY_CACHE_EVICT_COUNT, REPLAY_CACHE_MAX_ENTRIES
from packages.common.datetime_utils import now_s

T = TypeVar("T")

CacheKey = Tuple[str, str, int, int]  # (symbol, resolution, from_s, to_s)


def cache_key_str(key: CacheKey) -> str:
    symbol, resolution, from_s, to_s = key
    return f"{symbol}_{resolution}_{from_s}_{to_s}"


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    key: CacheKey
    payload: T
    cached_at_s: int


class ReplayCache(Generic[T]):
    """
    Exact-key memo of replay query results.

    Eviction is insertion-ordered bulk removal: once an insert pushes the size
    above max_entries, the evict_count oldest *inserted* entries are dropped.
    get() does not refresh an entry's position, so this is not an LRU.

    get/put/clear run under one lock (check-then-evict is a single critical section).
    """

    def __init__(
        self,
        max_entries: int = REPLAY_CACHE_MAX_ENTRIES,
        evict_count: int = REPLAY_CACHE_EVICT_COUNT,
    ):
        if max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        if not 1 <= evict_count <= max_entries:
            raise ValueError("evict_count must be within [1, max_entries]")

        self.max_entries = max_entries
        self.evict_count = evict_count
        self._entries: "OrderedDict[CacheKey, CacheEntry[T]]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, symbol: str, resolution: str, from_s: int, to_s: int) -> Optional[T]:
        key: CacheKey = (symbol, resolution, int(from_s), int(to_s))
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        logger.debug("Cache hit for replay data: {}", cache_key_str(key))
        return entry.payload

    def put(self, symbol: str, resolution: str, from_s: int, to_s: int, payload: T) -> int:
        """Insert (or overwrite in place) and return how many entries were evicted."""
        key: CacheKey = (symbol, resolution, int(from_s), int(to_s))
        evicted: List[CacheKey] = []

        with self._lock:
            # Overwriting an existing key keeps its original insertion position.
            self._entries[key] = CacheEntry(key=key, payload=payload, cached_at_s=now_s())

            if len(self._entries) > self.max_entries:
                for _ in range(self.evict_count):
                    old_key, _entry = self._entries.popitem(last=False)
                    evicted.append(old_key)

        logger.info("Cached replay data: {}", cache_key_str(key))
        if evicted:
            logger.info("Replay cache overflow - evicted {} oldest entries", len(evicted))
        return len(evicted)

    def clear(self) -> int:
        with self._lock:
            n = len(self._entries)
            self._entries.clear()
        return n

    def entries(self) -> List[CacheEntry[T]]:
        """Snapshot in insertion order."""
        with self._lock:
            return list(self._entries.values())

    def keys(self) -> List[CacheKey]:
        with self._lock:
            return list(self._entries.keys())
