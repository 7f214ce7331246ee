"""
Provider registry: central catalog of available upstreams.

Upstreams register a factory here. The registry is config-driven: a YAML
priority list determines which upstreams are built, and each factory reads
its own config section and returns a fully wrapped provider chain, or None
when the upstream is disabled or misconfigured.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from .base import QuoteProvider

logger = logging.getLogger(__name__)

# (merged config, shared HTTP session) -> provider chain or None
ProviderFactory = Callable[[Dict[str, Any], Any], Optional[QuoteProvider]]


class ProviderRegistry:
    """
    Registry mapping upstream names to provider factories.

    Usage:
        registry = ProviderRegistry()
        registry.register("steamdt", build_steamdt)
        registry.register("pricempire", build_pricempire)

        providers = registry.build(config, session, ["steamdt", "pricempire"])
    """

    def __init__(self) -> None:
        self._factories: Dict[str, ProviderFactory] = {}

    def register(self, name: str, factory: ProviderFactory) -> None:
        """Register an upstream factory by name."""
        self._factories[name] = factory
        logger.debug("Registered provider: %s", name)

    def get(self, name: str) -> ProviderFactory:
        factory = self._factories.get(name)
        if factory is None:
            raise KeyError(
                f"Unknown provider '{name}'. "
                f"Available: {list(self._factories)}"
            )
        return factory

    @property
    def names(self) -> List[str]:
        return list(self._factories)

    def build(
        self,
        config: Dict[str, Any],
        session: Any = None,
        priority: Optional[List[str]] = None,
    ) -> List[QuoteProvider]:
        """Build provider chains in priority order, skipping unknown or disabled names."""
        names = priority or list(self._factories)
        out: List[QuoteProvider] = []
        for name in names:
            if name not in self._factories:
                logger.warning("Ignoring unknown provider %r in priority list", name)
                continue
            provider = self._factories[name](config, session)
            if provider is not None:
                out.append(provider)
        return out
