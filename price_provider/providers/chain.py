"""
Provider fan-out: query every configured provider chain at once.

Unlike a fallback chain, every provider is asked concurrently under one
shared deadline and the union of their quotes is returned. A provider that
fails or runs past the deadline contributes an error instead of quotes; the
fan-out itself fails only when no provider produced anything.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ..aggregate import SIDES, LatestRow, filter_latest
from .base import ProviderHealth, Quote, QuoteProvider
from .errors import Cancelled, FanoutError
from .resilience import Deadline

logger = logging.getLogger(__name__)

DEFAULT_FANOUT_TIMEOUT_S = 15.0


@dataclass
class FanoutResult:
    quotes: List[Quote] = field(default_factory=list)
    # provider name -> error message
    errors: Dict[str, str] = field(default_factory=dict)


class QuoteFanout:
    """
    Concurrent fan-out over independent quote providers.

    Results are collected in provider order regardless of completion order.
    When the deadline fires, providers still running are cancelled through
    the shared Deadline and reported as timed out.
    """

    def __init__(
        self,
        providers: List[QuoteProvider],
        timeout_s: float = DEFAULT_FANOUT_TIMEOUT_S,
    ) -> None:
        self._providers = list(providers)
        self.timeout_s = timeout_s
        self._lock = threading.Lock()
        self._health: Dict[str, ProviderHealth] = {
            p.provider_name: ProviderHealth(provider_name=p.provider_name)
            for p in self._providers
        }

    @property
    def providers(self) -> List[QuoteProvider]:
        return list(self._providers)

    def fetch(
        self, symbols: Sequence[str], timeout_s: Optional[float] = None
    ) -> FanoutResult:
        """
        Fetch `symbols` from all providers concurrently.

        Raises FanoutError when no quotes were obtained and at least one
        provider failed.
        """
        result = FanoutResult()
        if not self._providers:
            return result

        deadline = Deadline(timeout_s if timeout_s is not None else self.timeout_s)
        pool = ThreadPoolExecutor(max_workers=len(self._providers), thread_name_prefix="fanout")
        try:
            futures = [pool.submit(p.fetch, list(symbols), deadline) for p in self._providers]
            wait(futures, timeout=deadline.remaining())
        finally:
            # wake rate-limit waits and backoff sleeps in stragglers
            deadline.cancel()
            pool.shutdown(wait=False, cancel_futures=True)

        for provider, fut in zip(self._providers, futures):
            name = provider.provider_name
            if fut.cancelled():
                self._record(result, name, "cancelled before start")
                continue
            if not fut.done():
                self._record(result, name, "deadline exceeded")
                continue
            try:
                quotes = fut.result()
            except Cancelled as exc:
                self._record(result, name, str(exc))
                continue
            except Exception as exc:
                self._record(result, name, f"{type(exc).__name__}: {exc}")
                continue
            result.quotes.extend(quotes)
            with self._lock:
                self._health[name].record_success()

        if not result.quotes and result.errors:
            raise FanoutError(result.errors)
        return result

    def _record(self, result: FanoutResult, name: str, message: str) -> None:
        logger.warning("Provider %s failed: %s", name, message)
        result.errors[name] = message
        with self._lock:
            self._health[name].record_failure(message)

    def latest(
        self,
        symbols: Sequence[str],
        side: str = "all",
        market: Optional[str] = None,
        timeout_s: Optional[float] = None,
    ) -> List[LatestRow]:
        """Newest quote per market for `symbols`, filtered by side and market."""
        if (side or "all").strip().lower() not in ("all",) + SIDES:
            raise ValueError(f"side must be one of all, sell, bid; got {side!r}")
        result = self.fetch(symbols, timeout_s=timeout_s)
        return filter_latest(result.quotes, side=side, market=market)

    def get_health(self) -> Dict[str, ProviderHealth]:
        """Return health status for all providers in the fan-out."""
        with self._lock:
            return dict(self._health)
