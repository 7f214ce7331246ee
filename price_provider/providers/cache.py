"""
Per-symbol TTL cache decorator.

Requests only the symbols that are absent or expired from the wrapped
provider and merges them with cached quotes in the caller's order. When the
wrapped provider fails, whatever is still cached for the request is served
instead of the error.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from .base import Quote, QuoteProvider
from .errors import ProviderError
from .resilience import Deadline

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    quotes: tuple[Quote, ...]
    expires_at: float


class TTLCacheProvider:
    """
    Caches results per symbol for `ttl_s` seconds.

    Capacity control is best-effort and not LRU: once over `max_items`,
    expired entries are dropped first, then arbitrary entries until the cap
    holds again.
    """

    def __init__(
        self,
        inner: QuoteProvider,
        ttl_s: float,
        max_items: int = 0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.inner = inner
        self.ttl_s = ttl_s
        self.max_items = max_items
        self._clock = clock
        self._lock = threading.Lock()
        self._items: Dict[str, CacheEntry] = {}

    @property
    def provider_name(self) -> str:
        return self.inner.provider_name

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def fetch(
        self, symbols: Sequence[str], deadline: Optional[Deadline] = None
    ) -> List[Quote]:
        if self.ttl_s <= 0:
            return self.inner.fetch(symbols, deadline)

        now = self._clock()
        cached: Dict[str, tuple[Quote, ...]] = {}
        missing: List[str] = []
        seen: set[str] = set()
        with self._lock:
            for s in symbols:
                entry = self._items.get(s)
                if entry is not None and now < entry.expires_at:
                    cached[s] = entry.quotes
                elif s not in seen:
                    seen.add(s)
                    missing.append(s)

        if not missing:
            logger.debug("%s: cache hit for all %d symbols", self.provider_name, len(cached))
            return self._merge(symbols, {}, cached)

        try:
            fresh = self.inner.fetch(missing, deadline)
        except ProviderError as exc:
            if cached:
                logger.warning(
                    "%s: upstream failed (%s); serving %d cached symbols",
                    self.provider_name, exc, len(cached),
                )
                return self._merge(symbols, {}, cached)
            raise

        by_symbol: Dict[str, List[Quote]] = {}
        for q in fresh:
            by_symbol.setdefault(q.symbol, []).append(q)

        expires_at = now + self.ttl_s
        with self._lock:
            for sym, qs in by_symbol.items():
                self._items[sym] = CacheEntry(quotes=tuple(qs), expires_at=expires_at)
            self._evict_locked()

        return self._merge(symbols, by_symbol, cached)

    def _evict_locked(self) -> None:
        if self.max_items <= 0 or len(self._items) <= self.max_items:
            return
        now = self._clock()
        for key in [k for k, e in self._items.items() if now >= e.expires_at]:
            del self._items[key]
        # still over cap: drop in dict order, no recency tracking
        while len(self._items) > self.max_items:
            del self._items[next(iter(self._items))]

    @staticmethod
    def _merge(
        symbols: Sequence[str],
        fresh: Dict[str, List[Quote]],
        cached: Dict[str, tuple[Quote, ...]],
    ) -> List[Quote]:
        out: List[Quote] = []
        emitted: set[str] = set()
        for s in symbols:
            if s in emitted:
                continue
            emitted.add(s)
            if s in fresh:
                out.extend(fresh[s])
            elif s in cached:
                out.extend(cached[s])
        return out
