"""
Top-level public API surface.
Canonical entrypoint: import price_provider; use price_provider.providers for
upstream adapters and decorators, price_provider.aggregate for the latest view.
Does not import cli.
"""

from __future__ import annotations

from . import aggregate, config, providers
from ._version import __version__

__all__ = [
    "__version__",
    "aggregate",
    "config",
    "providers",
]
