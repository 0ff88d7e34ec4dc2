"""
Session Caches
==============
The only shared mutable state of the harvester, owned by one
``HarvestSession`` (one page-load) rather than kept in module globals.

- ``DetectionCache``   one gallery verdict per page load
- ``SelectorCache``    bounded, TTL'd site-key → selectors store; overflow
                       evicts the least-recently *inserted* entry
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_SELECTOR_CACHE_CAPACITY = 100
DEFAULT_SELECTOR_CACHE_TTL = 300.0   # 5 minutes


@dataclass(frozen=True)
class DetectionVerdict:
    page_key: str
    is_gallery: bool
    decided_at: float


class DetectionCache:
    """Write-once-per-load gallery verdict."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._verdict: Optional[DetectionVerdict] = None

    def get(self, page_key: str) -> Optional[bool]:
        verdict = self._verdict
        if verdict is not None and verdict.page_key == page_key:
            return verdict.is_gallery
        return None

    def record(self, page_key: str, is_gallery: bool) -> bool:
        """
        Store the verdict for ``page_key``; the first write of a load wins.

        A verdict for a different page key means the page changed without
        ``clear()`` being called, so it replaces the stale one.
        """
        current = self._verdict
        if current is not None and current.page_key == page_key:
            return current.is_gallery
        self._verdict = DetectionVerdict(page_key, bool(is_gallery), self._clock())
        return bool(is_gallery)

    @property
    def verdict(self) -> Optional[DetectionVerdict]:
        return self._verdict

    def clear(self) -> None:
        """Forget the verdict (navigation / new page load)."""
        self._verdict = None


@dataclass(frozen=True)
class SelectorCacheEntry:
    site_key: str
    selectors: Tuple[str, ...]
    written_at: float


class SelectorCache:
    """
    Site-key → selectors store with capacity and time-to-live.

    Invariants enforced on every write: expired entries are purged, and the
    size never exceeds ``capacity`` (overflow evicts in insertion order,
    regardless of how recently an entry was read).
    """

    def __init__(
        self,
        capacity: int = DEFAULT_SELECTOR_CACHE_CAPACITY,
        ttl: float = DEFAULT_SELECTOR_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[str, SelectorCacheEntry]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, site_key: str) -> bool:
        return self.get(site_key) is not None

    def _expired(self, entry: SelectorCacheEntry, now: float) -> bool:
        return now - entry.written_at > self.ttl

    def get(self, site_key: str) -> Optional[Tuple[str, ...]]:
        """Cached selectors for ``site_key``, or ``None`` if absent or stale."""
        entry = self._entries.get(site_key)
        if entry is None:
            return None
        if self._expired(entry, self._clock()):
            del self._entries[site_key]
            return None
        return entry.selectors

    def put(self, site_key: str, selectors: Iterable[str]) -> SelectorCacheEntry:
        now = self._clock()
        self._purge_expired(now)

        # Rewriting a key counts as a fresh insertion
        self._entries.pop(site_key, None)
        while len(self._entries) >= self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"[CACHE] Evicted selectors for {evicted}")

        entry = SelectorCacheEntry(site_key, tuple(selectors), now)
        self._entries[site_key] = entry
        return entry

    def _purge_expired(self, now: float) -> None:
        stale = [k for k, e in self._entries.items() if self._expired(e, now)]
        for key in stale:
            del self._entries[key]

    def keys(self):
        return list(self._entries.keys())

    def clear(self) -> None:
        self._entries.clear()
