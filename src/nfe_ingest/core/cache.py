"""Bounded in-process cache with per-entry TTL and LRU eviction."""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from ..config import CacheConfig


LOGGER = logging.getLogger(__name__)

PARSED_INVOICE_PREFIX = "parsed_invoice:"
INVOICE_LIST_PREFIX = "invoices:"


def parsed_invoice_key(invoice_key: str) -> str:
    return f"{PARSED_INVOICE_PREFIX}{invoice_key}"


def invoice_list_prefix(user_id: str) -> str:
    return f"{INVOICE_LIST_PREFIX}{user_id}:"


@dataclass(frozen=True)
class CacheStats:
    size: int
    hits: int
    misses: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class MemoryCache:
    """Thread-safe cache; the least recently used entry goes first when full."""

    def __init__(
        self,
        *,
        ttl_seconds: float = 86400,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @classmethod
    def from_settings(cls, config: CacheConfig) -> "MemoryCache":
        return cls(ttl_seconds=config.ttl_seconds, max_entries=config.max_entries)

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                LOGGER.debug("Cache miss for %s", key)
                return None

            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                self._misses += 1
                LOGGER.debug("Cache entry %s expired", key)
                return None

            self._entries.move_to_end(key)
            self._hits += 1
            LOGGER.debug("Cache hit for %s", key)
            return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._entries[key] = (self._clock() + ttl, value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                LOGGER.debug("Evicted %s from cache", evicted)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [key for key in self._entries if key.startswith(prefix)]
            for key in keys:
                del self._entries[key]
        if keys:
            LOGGER.debug("Invalidated %s cache entries with prefix %s", len(keys), prefix)
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(size=len(self._entries), hits=self._hits, misses=self._misses)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and self._clock() < entry[0]

    def as_dict(self) -> Dict[str, Any]:
        stats = self.stats()
        return {"size": stats.size, "hits": stats.hits, "misses": stats.misses, "hit_rate": stats.hit_rate}


__all__ = [
    "MemoryCache",
    "CacheStats",
    "PARSED_INVOICE_PREFIX",
    "INVOICE_LIST_PREFIX",
    "parsed_invoice_key",
    "invoice_list_prefix",
]
