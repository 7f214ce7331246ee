"""
SkinstableXYZ payload provider.

  GET {endpoint}?apikey=...&app=730&site=CS.MONEY

Each call returns the full item -> {p: price, t: epoch} map for one site, so
the provider caches one payload per site and filters it by the requested
symbols. Concurrent refreshes of the same site are coalesced.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..timeutils import now_utc, parse_epoch_maybe_millis
from .base import Quote, format_price
from .coalesce import PayloadCache
from .errors import ConfigurationError, DecodeError, NoDataError, ProviderError
from .http import HTTP_TIMEOUT_S, build_session, request_json
from .resilience import Deadline

logger = logging.getLogger(__name__)

DEFAULT_ITEMS_TTL_S = 10.0
SITE_REFRESH_TIMEOUT_S = 7.0


@dataclass
class SkinstableConfig:
    name: str = "SkinstableXYZ"
    url: str = ""
    currency: str = "USD"
    api_key: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    items_cache_ttl_s: float = DEFAULT_ITEMS_TTL_S
    app_id: int = 730
    sites: List[str] = field(default_factory=lambda: ["CS.MONEY"])
    timeout_s: float = HTTP_TIMEOUT_S


class SkinstableProvider:
    """Per-site payload cache over the SkinstableXYZ items endpoint."""

    def __init__(
        self,
        config: Optional[SkinstableConfig] = None,
        session: Optional[Any] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or SkinstableConfig()
        if not self.config.app_id:
            self.config.app_id = 730
        if not self.config.sites:
            self.config.sites = ["CS.MONEY"]
        self.session = session or build_session()
        ttl = self.config.items_cache_ttl_s
        self.cache: PayloadCache[Dict[str, Any]] = PayloadCache(
            ttl if ttl > 0 else DEFAULT_ITEMS_TTL_S, clock=clock
        )

    @property
    def provider_name(self) -> str:
        return self.config.name

    def fetch_site(self, site: str, deadline: Optional[Deadline] = None) -> Dict[str, Any]:
        """Download the full items payload for one site."""
        cfg = self.config
        params: Dict[str, Any] = {}
        if cfg.api_key:
            params["apikey"] = cfg.api_key
        if cfg.app_id > 0:
            params["app"] = str(cfg.app_id)
        if site:
            params["site"] = site
        headers = dict(cfg.headers)
        headers["Accept"] = "application/json"

        body = request_json(
            self.session,
            "GET",
            cfg.url,
            deadline=deadline,
            timeout_s=cfg.timeout_s,
            params=params,
            headers=headers,
        )
        if not isinstance(body, dict):
            raise DecodeError(f"Unexpected Skinstable response type: {type(body).__name__}")
        items = body.get("items")
        if items is None:
            return {}
        if not isinstance(items, dict):
            raise DecodeError(f"Unexpected Skinstable items type: {type(items).__name__}")
        return items

    def _site_payloads(self, deadline: Deadline) -> List[Tuple[str, Dict[str, Any]]]:
        payloads: List[Tuple[str, Dict[str, Any]]] = []
        last_err: Optional[ProviderError] = None
        for site in self.config.sites:
            site_deadline = deadline.with_timeout(SITE_REFRESH_TIMEOUT_S)
            try:
                items = self.cache.get(
                    site,
                    lambda site=site, d=site_deadline: self.fetch_site(site, d),
                    deadline,
                )
            except ProviderError as exc:
                logger.warning("%s: site %s refresh failed: %s", self.provider_name, site, exc)
                last_err = exc
                continue
            payloads.append((site, items))

        if not payloads:
            if last_err is not None:
                raise last_err
            raise NoDataError("skinstable: no data from any site")
        return payloads

    def fetch(
        self, symbols: Sequence[str], deadline: Optional[Deadline] = None
    ) -> List[Quote]:
        cfg = self.config
        if not cfg.url:
            raise ConfigurationError("skinstable: missing URL")
        deadline = deadline or Deadline.never()

        payloads = self._site_payloads(deadline)
        wanted = list(dict.fromkeys(symbols))
        now = now_utc()
        out: List[Quote] = []
        for site, items in payloads:
            for s in wanted:
                it = items.get(s)
                if not isinstance(it, dict):
                    continue
                price = format_price(it.get("p"))
                if price is None:
                    continue
                out.append(
                    Quote(
                        symbol=s,
                        price=price,
                        currency=cfg.currency,
                        source=f"{cfg.name}:{site}",
                        received_at=parse_epoch_maybe_millis(it.get("t"), now),
                    )
                )
        return out
