"""
Cross-provider normalization and the "latest per market" view.

Source tags are `provider[:market[:side]]`. Market spellings differ between
upstreams (buff, BUFF.163, buff163 ...), so markets are mapped onto one
canonical name before quotes from different providers are compared.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Tuple

from .timeutils import now_utc

if TYPE_CHECKING:
    from .providers.base import Quote

MARKET_ALIASES: Dict[str, str] = {
    "buff": "BUFF",
    "buff.163": "BUFF",
    "buff163": "BUFF",
    "steam": "Steam",
    "c5": "C5GAME",
    "c5game": "C5GAME",
    "csmoney": "CS.MONEY",
    "cs.money": "CS.MONEY",
    "skinport": "Skinport",
}

# providers whose tags are provider:market only; a third segment is ignored
SIDELESS_PROVIDERS = frozenset({"pricempire", "skinstablexyz"})

SIDES = ("sell", "bid")


def canonical_market(raw: str) -> str:
    m = raw.strip()
    return MARKET_ALIASES.get(m.lower(), m)


def normalize_source(tag: str) -> Tuple[str, str, str]:
    """Split a source tag into (provider, canonical market, lower-case side)."""
    s = (tag or "").strip()
    if not s:
        return "", "", ""
    parts = s.split(":")
    provider = parts[0].strip()
    market_raw = parts[1] if len(parts) >= 2 else ""
    side_raw = ""
    if len(parts) >= 3 and provider.lower() not in SIDELESS_PROVIDERS:
        side_raw = parts[2]
    return provider, canonical_market(market_raw), side_raw.strip().lower()


@dataclass(frozen=True)
class LatestRow:
    symbol: str
    market: str
    side: str
    currency: str
    price: str
    provider: str
    received_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["received_at"] = self.received_at.isoformat()
        return d


def _provider_of(source: str) -> str:
    idx = source.find(":")
    return source[:idx] if idx > 0 else source


def latest_by_market(quotes: Iterable[Quote], include_sides: bool = True) -> List[LatestRow]:
    """
    Collapse quotes to the newest per (symbol, market, side, currency).

    With include_sides=False the side is blanked before grouping, so sell and
    bid observations of the same market compete for one row. Equal timestamps
    resolve to the later quote in input order. Quotes without a timestamp are
    stamped with a single "now" taken once per call.
    """
    now = now_utc()
    latest: Dict[Tuple[str, str, str, str], LatestRow] = {}
    for q in quotes:
        _, market, side = normalize_source(q.source)
        if not include_sides:
            side = ""
        ts = q.received_at or now
        key = (q.symbol, market, side, q.currency)
        cur = latest.get(key)
        if cur is None or ts >= cur.received_at:
            latest[key] = LatestRow(
                symbol=q.symbol,
                market=market,
                side=side,
                currency=q.currency,
                price=q.price,
                provider=_provider_of(q.source),
                received_at=ts,
            )
    return sorted(latest.values(), key=lambda r: (r.symbol, r.market, r.side, r.currency))


def filter_latest(
    quotes: Iterable[Quote],
    side: str = "all",
    market: Optional[str] = None,
) -> List[LatestRow]:
    """
    Latest view filtered by side and market.

    side="all" collapses sell/bid into one row per market; "sell" or "bid"
    keeps sides and returns only that side. `market` accepts any alias.
    """
    side = (side or "all").strip().lower()
    if side != "all" and side not in SIDES:
        raise ValueError(f"side must be one of all, sell, bid; got {side!r}")
    rows = latest_by_market(quotes, include_sides=side != "all")
    if side != "all":
        rows = [r for r in rows if r.side == side]
    if market and market.strip():
        want = canonical_market(market)
        rows = [r for r in rows if r.market == want]
    return rows
