"""
Default provider registry configuration.

Registers the built-in upstreams and builds their chains from config.yaml
settings: concrete adapter -> rate limiter -> per-symbol TTL cache.
To add a new upstream, register its factory here and add it to the priority list.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .base import QuoteProvider
from .cache import TTLCacheProvider
from .chain import DEFAULT_FANOUT_TIMEOUT_S, QuoteFanout
from .http import HTTP_TIMEOUT_S, build_session
from .pricempire import PricempireConfig, PricempireProvider
from .ratelimit import wrap_rate_limit
from .registry import ProviderRegistry
from .resilience import RetryConfig
from .skinstable import SkinstableConfig, SkinstableProvider
from .steamdt import SteamDTConfig, SteamDTProvider

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = ["steamdt", "pricempire", "skinstable"]


def _http_timeout(config: Dict[str, Any]) -> float:
    server = config.get("server") or {}
    return float(server.get("request_timeout_sec") or HTTP_TIMEOUT_S)


def wrap_chain(inner: QuoteProvider, section: Dict[str, Any]) -> QuoteProvider:
    """Apply the rate limiter and TTL cache configured in an upstream section."""
    p = wrap_rate_limit(
        inner,
        max_requests_per_minute=int(section.get("max_requests_per_minute") or 0),
        burst=int(section.get("burst") or 1),
        min_interval_s=float(section.get("min_request_interval_sec") or 0),
    )
    ttl = float(section.get("cache_ttl_sec") or 0)
    if ttl > 0:
        p = TTLCacheProvider(p, ttl, int(section.get("cache_max_items") or 0))
    return p


def build_steamdt(config: Dict[str, Any], session: Any) -> Optional[QuoteProvider]:
    section = config.get("steamdt") or {}
    if not section.get("enabled"):
        return None
    api_key = section.get("api_key") or ""
    if not api_key:
        logger.warning("steamdt.enabled=true but STEAMDT_API_KEY not set")
    retry = section.get("retry") or {}
    provider = SteamDTProvider(
        SteamDTConfig(
            url=section.get("endpoint") or SteamDTConfig.url,
            headers={"Authorization": f"Bearer {api_key}"},
            currency=section.get("currency") or "CNY",
            include_bids=bool(section.get("include_bids", True)),
            max_items_per_request=int(section.get("max_items_per_request") or 0),
            max_concurrency=int(section.get("max_concurrency") or 1),
            timeout_s=_http_timeout(config),
        ),
        session=session,
        retry_config=RetryConfig(
            max_retries=int(retry.get("max_retries", 3)),
            base_delay_s=float(retry.get("base_delay_sec", 0.25)),
            max_delay_s=float(retry.get("max_delay_sec", 10.0)),
        ),
    )
    return wrap_chain(provider, section)


def build_pricempire(config: Dict[str, Any], session: Any) -> Optional[QuoteProvider]:
    section = config.get("pricempire") or {}
    if not section.get("enabled"):
        return None
    if not section.get("api_key"):
        logger.warning("pricempire.enabled=true but PRICEMPIRE_API_KEY not set; skipping")
        return None
    provider = PricempireProvider(
        PricempireConfig(
            base_url=section.get("endpoint") or PricempireConfig.base_url,
            api_key=section["api_key"],
            app_id=int(section.get("app_id") or 730),
            currency=section.get("currency") or "USD",
            sources=list(section.get("sources") or ["buff"]),
            items_cache_ttl_s=float(section.get("cache_ttl_sec") or 0),
            timeout_s=_http_timeout(config),
        ),
        session=session,
    )
    return wrap_chain(provider, section)


def build_skinstable(config: Dict[str, Any], session: Any) -> Optional[QuoteProvider]:
    section = config.get("skinstable") or {}
    if not section.get("enabled"):
        return None
    if not section.get("endpoint"):
        logger.warning("skinstable.enabled=true but endpoint not set; skipping")
        return None
    provider = SkinstableProvider(
        SkinstableConfig(
            url=section["endpoint"],
            currency=section.get("currency") or "USD",
            api_key=section.get("api_key") or "",
            items_cache_ttl_s=float(section.get("items_cache_ttl_sec") or 0),
            app_id=int(section.get("app_id") or 730),
            sites=list(section.get("sites") or ["CS.MONEY"]),
            timeout_s=_http_timeout(config),
        ),
        session=session,
    )
    return wrap_chain(provider, section)


def create_default_registry() -> ProviderRegistry:
    """Create a registry with all built-in upstreams."""
    registry = ProviderRegistry()
    registry.register("steamdt", build_steamdt)
    registry.register("pricempire", build_pricempire)
    registry.register("skinstable", build_skinstable)
    return registry


def create_providers(
    config: Optional[Dict[str, Any]] = None,
    session: Any = None,
    registry: Optional[ProviderRegistry] = None,
) -> List[QuoteProvider]:
    """Build every enabled upstream chain, sharing one HTTP session."""
    if config is None:
        from price_provider.config import get_config
        config = get_config()
    reg = registry or create_default_registry()
    priority = (config.get("providers") or {}).get("priority") or DEFAULT_PRIORITY
    return reg.build(config, session or build_session(), list(priority))


def create_fanout(
    config: Optional[Dict[str, Any]] = None,
    session: Any = None,
    registry: Optional[ProviderRegistry] = None,
) -> QuoteFanout:
    """Build a fan-out over the enabled upstream chains."""
    if config is None:
        from price_provider.config import get_config
        config = get_config()
    server = config.get("server") or {}
    timeout_s = float(server.get("fanout_timeout_sec") or DEFAULT_FANOUT_TIMEOUT_S)
    return QuoteFanout(create_providers(config, session, registry), timeout_s=timeout_s)
