"""
Pricempire full-payload provider.

  GET {base}/v3/items/prices?api_key=...&appId=730&currency=USD&sources=buff

The endpoint has no per-item filter: every call returns the whole catalogue
for the requested sources, so the decoded payload is cached for
items_cache_ttl_s and filtered locally per fetch.
"""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..timeutils import now_utc, parse_iso8601
from .base import Quote, format_price
from .coalesce import PayloadCache
from .errors import DecodeError, UpstreamStatusError
from .http import HTTP_TIMEOUT_S, build_session, request_json
from .resilience import Deadline

logger = logging.getLogger(__name__)

PRICEMPIRE_BASE_URL = "https://api.pricempire.com"
_PAYLOAD_KEY = "items"


@dataclass
class PricempireConfig:
    name: str = "Pricempire"
    base_url: str = PRICEMPIRE_BASE_URL
    api_key: str = ""
    app_id: int = 730
    currency: str = "USD"
    sources: List[str] = field(default_factory=lambda: ["buff"])
    headers: Dict[str, str] = field(default_factory=dict)
    # 0 or negative: every fetch downloads the full payload
    items_cache_ttl_s: float = 0.0
    timeout_s: float = HTTP_TIMEOUT_S


@dataclass(frozen=True)
class SourcePrice:
    price: Optional[str]
    count: Optional[Any] = None
    avg30: Optional[Any] = None
    inflated: Optional[bool] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class PricempireItem:
    name: str
    liquidity: Optional[Any]
    prices: Dict[str, SourcePrice]


def _status_message(status_code: int, sources: Sequence[str]) -> str:
    if status_code == 400:
        return f"bad request with sources={json.dumps(list(sources))}"
    if status_code == 403:
        return "unauthorized"
    if status_code == 429:
        return "rate limited"
    return f"unexpected status code: {status_code}"


def parse_items(body: Any, sources: Sequence[str]) -> List[PricempireItem]:
    """Decode the name -> {liquidity, <source>: {...}} payload, keeping only `sources`."""
    if not isinstance(body, dict):
        raise DecodeError(f"Unexpected Pricempire response type: {type(body).__name__}")
    items: List[PricempireItem] = []
    for name, raw in body.items():
        if not isinstance(raw, dict):
            raise DecodeError(f"decoding item {name!r}: expected object")
        prices: Dict[str, SourcePrice] = {}
        for src in sources:
            data = raw.get(src)
            if data is None:
                continue
            if not isinstance(data, dict):
                raise DecodeError(f"decoding {src} for {name!r}: expected object")
            created = data.get("createdAt")
            created_at = parse_iso8601(created)
            if created is not None and created_at is None:
                raise DecodeError(f"decoding createdAt for {name!r}: {created!r}")
            prices[src] = SourcePrice(
                price=format_price(data.get("price")),
                count=data.get("count"),
                avg30=data.get("avg30"),
                inflated=data.get("isInflated"),
                created_at=created_at,
            )
        items.append(PricempireItem(name=name, liquidity=raw.get("liquidity"), prices=prices))
    return items


class PricempireProvider:
    """Quotes per configured source from the Pricempire v3 prices endpoint."""

    def __init__(
        self,
        config: Optional[PricempireConfig] = None,
        session: Optional[Any] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or PricempireConfig()
        if not self.config.app_id:
            self.config.app_id = 730
        if not self.config.currency:
            self.config.currency = "USD"
        if not self.config.sources:
            self.config.sources = ["buff"]
        self.session = session or build_session()
        ttl = self.config.items_cache_ttl_s
        self.cache: Optional[PayloadCache[Dict[str, PricempireItem]]] = (
            PayloadCache(ttl, clock=clock) if ttl > 0 else None
        )

    @property
    def provider_name(self) -> str:
        return self.config.name

    def get_all_items(self, deadline: Optional[Deadline] = None) -> List[PricempireItem]:
        cfg = self.config
        params: List[tuple[str, str]] = []
        if cfg.api_key:
            params.append(("api_key", cfg.api_key))
        params.append(("appId", str(cfg.app_id)))
        params.append(("currency", cfg.currency))
        params.extend(("sources", s) for s in cfg.sources)

        url = f"{cfg.base_url.rstrip('/')}/v3/items/prices"
        try:
            body = request_json(
                self.session,
                "GET",
                url,
                deadline=deadline,
                timeout_s=cfg.timeout_s,
                params=params,
                headers=dict(cfg.headers),
            )
        except UpstreamStatusError as exc:
            raise UpstreamStatusError(
                exc.status_code, exc.body, url, _status_message(exc.status_code, cfg.sources)
            ) from exc
        return parse_items(body, cfg.sources)

    def _items_by_name(self, deadline: Deadline) -> Dict[str, PricempireItem]:
        def load() -> Dict[str, PricempireItem]:
            return {it.name: it for it in self.get_all_items(deadline)}

        if self.cache is None:
            return load()
        return self.cache.get(_PAYLOAD_KEY, load, deadline)

    def fetch(
        self, symbols: Sequence[str], deadline: Optional[Deadline] = None
    ) -> List[Quote]:
        """Quotes for `symbols`; an empty symbol list returns the whole catalogue."""
        cfg = self.config
        deadline = deadline or Deadline.never()
        items = self._items_by_name(deadline)

        wanted = list(dict.fromkeys(symbols)) if symbols else list(items)
        now = now_utc()
        out: List[Quote] = []
        for name in wanted:
            item = items.get(name)
            if item is None:
                continue
            for src, p in item.prices.items():
                if p.price is None:
                    continue
                out.append(
                    Quote(
                        symbol=name,
                        price=p.price,
                        currency=cfg.currency,
                        source=f"{cfg.name}:{src}",
                        received_at=p.created_at or now,
                    )
                )
        return out
