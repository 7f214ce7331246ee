"""
Provider architecture for tradable-item price quotes.

Every upstream implements the QuoteProvider protocol and is wrapped in the
same order: concrete adapter -> rate limiter -> per-symbol TTL cache. The
fan-out queries all enabled chains concurrently under one deadline.
"""

from __future__ import annotations

from .base import (
    ProviderHealth,
    ProviderStatus,
    Quote,
    QuoteProvider,
    format_price,
    parse_price,
)
from .errors import (
    Cancelled,
    ConfigurationError,
    DecodeError,
    FanoutError,
    NoDataError,
    ProviderError,
    TransportError,
    UpstreamRejectedError,
    UpstreamStatusError,
)
from .resilience import Deadline, RetryConfig
from .ratelimit import MinIntervalProvider, TokenBucket, TokenBucketProvider, wrap_rate_limit
from .cache import TTLCacheProvider
from .batching import BatchEngine, BatchOutcome
from .coalesce import PayloadCache, SingleFlight
from .chain import FanoutResult, QuoteFanout
from .registry import ProviderRegistry

__all__ = [
    "Quote",
    "QuoteProvider",
    "ProviderHealth",
    "ProviderStatus",
    "parse_price",
    "format_price",
    "ProviderError",
    "ConfigurationError",
    "TransportError",
    "UpstreamStatusError",
    "UpstreamRejectedError",
    "DecodeError",
    "NoDataError",
    "FanoutError",
    "Cancelled",
    "Deadline",
    "RetryConfig",
    "TokenBucket",
    "TokenBucketProvider",
    "MinIntervalProvider",
    "wrap_rate_limit",
    "TTLCacheProvider",
    "BatchEngine",
    "BatchOutcome",
    "SingleFlight",
    "PayloadCache",
    "QuoteFanout",
    "FanoutResult",
    "ProviderRegistry",
]
