"""
Provider interface and data contracts.

Every upstream, and every decorator wrapped around one, implements the same
QuoteProvider protocol: given item symbols, return normalized Quotes or raise
a ProviderError. Quotes are frozen dataclasses; prices are exact decimal
strings and never pass through float.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Protocol, Sequence, runtime_checkable

from .resilience import Deadline


def parse_price(value: Any) -> Optional[Decimal]:
    """Finite Decimal for a price-like value, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        # shortest round-trip text, not the binary expansion
        value = repr(value)
    try:
        d = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not d.is_finite():
        return None
    return d


def format_price(value: Any) -> Optional[str]:
    """Plain decimal text without exponent or trailing zeros ('32', '1.95')."""
    d = parse_price(value)
    if d is None:
        return None
    text = format(d.normalize(), "f")
    return "0" if text == "-0" else text


def is_zero_price(text: Optional[str]) -> bool:
    if text is None or not text.strip():
        return True
    d = parse_price(text)
    return d is None or d == 0


@dataclass(frozen=True)
class Quote:
    """One normalized price observation for a symbol from one upstream."""

    symbol: str
    price: str
    currency: str
    source: str
    received_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not isinstance(self.price, str) or parse_price(self.price) is None:
            raise ValueError(f"Quote price must be a finite decimal string, got {self.price!r}")
        if self.received_at is not None and self.received_at.tzinfo is None:
            object.__setattr__(self, "received_at", self.received_at.replace(tzinfo=timezone.utc))

    @property
    def provider(self) -> str:
        """Provider prefix of the composite source tag."""
        return self.source.split(":", 1)[0]


class ProviderStatus(enum.Enum):
    """Health status of a data provider."""

    OK = "OK"
    DEGRADED = "DEGRADED"
    DOWN = "DOWN"


@dataclass
class ProviderHealth:
    """Mutable health state for a single provider instance."""

    provider_name: str
    status: ProviderStatus = ProviderStatus.OK
    last_ok_at: Optional[str] = None
    fail_count: int = 0
    last_error: Optional[str] = None

    def record_success(self) -> None:
        self.status = ProviderStatus.OK
        self.fail_count = 0
        self.last_ok_at = datetime.now(timezone.utc).isoformat(timespec="seconds")
        self.last_error = None

    def record_failure(self, error: str) -> None:
        self.fail_count += 1
        self.last_error = error[:500]
        if self.fail_count >= 5:
            self.status = ProviderStatus.DOWN
        elif self.fail_count >= 2:
            self.status = ProviderStatus.DEGRADED


@runtime_checkable
class QuoteProvider(Protocol):
    """Protocol for quote providers and the decorators that wrap them."""

    @property
    def provider_name(self) -> str: ...

    def fetch(
        self, symbols: Sequence[str], deadline: Optional[Deadline] = None
    ) -> List[Quote]:
        """Return quotes for `symbols`; raise ProviderError or Cancelled."""
        ...
