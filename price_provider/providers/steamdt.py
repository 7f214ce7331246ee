"""
SteamDT batch price provider.

  POST https://open.steamdt.com/open/cs2/v1/price/batch
  body: {"marketHashNames": [...]}

Returns per-item lists of per-platform listings with sell and bid prices.
The endpoint enforces an undocumented batch size limit, so requests go
through the adaptive BatchEngine (split on 400/413, retry on 429/5xx).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ..timeutils import now_utc, parse_epoch_maybe_millis
from .base import Quote, format_price, is_zero_price
from .batching import BatchEngine
from .errors import DecodeError, UpstreamRejectedError
from .http import HTTP_TIMEOUT_S, build_session, request_json
from .resilience import Deadline, RetryConfig

logger = logging.getLogger(__name__)

STEAMDT_URL = "https://open.steamdt.com/open/cs2/v1/price/batch"


@dataclass
class SteamDTConfig:
    name: str = "SteamDT"
    url: str = STEAMDT_URL
    method: str = "POST"
    headers: Dict[str, str] = field(default_factory=dict)
    currency: str = "CNY"
    # requested symbol -> upstream marketHashName, when they differ
    symbol_map: Dict[str, str] = field(default_factory=dict)
    include_bids: bool = True
    # 0 or negative: one request for the whole symbol list
    max_items_per_request: int = 0
    max_concurrency: int = 1
    timeout_s: float = HTTP_TIMEOUT_S


@dataclass(frozen=True)
class _Candidate:
    platform: str
    sell: str
    bid: str
    ts: datetime


def _num_to_string(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    text = str(value).strip()
    if "e" in text.lower():
        return format_price(text) or ""
    return text


def collect_candidates(listings: Any, now: datetime) -> List[_Candidate]:
    """Listings with at least one non-zero price, ordered by platform then time."""
    out: List[_Candidate] = []
    if not isinstance(listings, list):
        return out
    for d in listings:
        if not isinstance(d, dict):
            continue
        sell = _num_to_string(d.get("sellPrice"))
        bid = _num_to_string(d.get("biddingPrice"))
        if is_zero_price(sell) and is_zero_price(bid):
            continue
        out.append(
            _Candidate(
                platform=str(d.get("platform") or "").strip(),
                sell=sell,
                bid=bid,
                ts=parse_epoch_maybe_millis(d.get("updateTime"), now),
            )
        )
    out.sort(key=lambda c: (c.platform, c.ts))
    return out


class SteamDTProvider:
    """Fetch sell (and optionally bid) quotes per platform from SteamDT."""

    def __init__(
        self,
        config: Optional[SteamDTConfig] = None,
        session: Optional[Any] = None,
        retry_config: Optional[RetryConfig] = None,
    ) -> None:
        self.config = config or SteamDTConfig()
        self.session = session or build_session()
        self.engine = BatchEngine(
            max_items_per_request=self.config.max_items_per_request,
            max_concurrency=self.config.max_concurrency,
            retry_config=retry_config,
        )

    @property
    def provider_name(self) -> str:
        return self.config.name

    def fetch_batch(self, names: List[str], deadline: Deadline) -> List[Dict[str, Any]]:
        """One upstream request for `names`; returns the raw per-item entries."""
        cfg = self.config
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        headers.update(cfg.headers)
        payload = request_json(
            self.session,
            cfg.method,
            cfg.url,
            deadline=deadline,
            timeout_s=cfg.timeout_s,
            json={"marketHashNames": names},
            headers=headers,
        )
        if not isinstance(payload, dict):
            raise DecodeError(f"Unexpected SteamDT response type: {type(payload).__name__}")

        data = payload.get("data")
        if data is None:
            data = []
        if not isinstance(data, list):
            raise DecodeError(f"Unexpected SteamDT data type: {type(data).__name__}")

        code = payload.get("errorCode") or 0
        try:
            code = int(code)
        except (TypeError, ValueError):
            pass
        msg = str(payload.get("errorMsg") or "").strip()
        if not payload.get("success") and (code != 0 or msg) and not data:
            raise UpstreamRejectedError(f"provider error: code={code} msg={msg!r}")
        return [e for e in data if isinstance(e, dict)]

    def fetch(
        self, symbols: Sequence[str], deadline: Optional[Deadline] = None
    ) -> List[Quote]:
        cfg = self.config
        deadline = deadline or Deadline.never()

        key_by_symbol: Dict[str, str] = {}
        unique_keys: List[str] = []
        seen: set[str] = set()
        for s in symbols:
            key = cfg.symbol_map.get(s) or s
            key_by_symbol[s] = key
            if key not in seen:
                seen.add(key)
                unique_keys.append(key)

        outcome = self.engine.run(unique_keys, self.fetch_batch, deadline)
        if outcome.skipped:
            logger.info("%s: skipped %d unsplittable names", cfg.name, len(outcome.skipped))

        by_name: Dict[str, Dict[str, Any]] = {}
        for entry in outcome.entries:
            name = entry.get("marketHashName")
            if isinstance(name, str):
                by_name[name] = entry

        now = now_utc()
        out: List[Quote] = []
        emitted: set[str] = set()
        for sym in symbols:
            if sym in emitted:
                continue
            emitted.add(sym)
            entry = by_name.get(key_by_symbol[sym])
            if entry is None:
                continue
            for c in collect_candidates(entry.get("dataList"), now):
                if not is_zero_price(c.sell):
                    out.append(
                        Quote(
                            symbol=sym,
                            price=c.sell,
                            currency=cfg.currency,
                            source=f"{cfg.name}:{c.platform}:sell",
                            received_at=c.ts,
                        )
                    )
                if cfg.include_bids and not is_zero_price(c.bid):
                    out.append(
                        Quote(
                            symbol=sym,
                            price=c.bid,
                            currency=cfg.currency,
                            source=f"{cfg.name}:{c.platform}:bid",
                            received_at=c.ts,
                        )
                    )

        if not out and outcome.first_error is not None:
            raise outcome.first_error
        return out
