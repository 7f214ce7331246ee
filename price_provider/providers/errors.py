"""
Provider error taxonomy.

Every upstream failure is raised as a ProviderError subclass so callers can
tell transport problems, classified HTTP statuses and malformed bodies apart.
Cancellation is deliberately outside the hierarchy: it is never retried,
never swallowed by caches and always propagates as-is.
"""
from __future__ import annotations

from typing import Dict, Optional


class ProviderError(RuntimeError):
    """Base class for upstream failures."""


class ConfigurationError(ProviderError):
    """Provider is missing required settings (endpoint, credentials)."""


class TransportError(ProviderError):
    """Connection, DNS or timeout failure talking to an upstream."""


class UpstreamStatusError(ProviderError):
    """Upstream answered with a non-2xx HTTP status."""

    def __init__(
        self,
        status_code: int,
        body: str = "",
        url: str = "",
        message: Optional[str] = None,
    ) -> None:
        self.status_code = status_code
        self.body = body[:2048]
        self.url = url
        if message is None:
            target = f"{url} " if url else ""
            message = f"{target}-> HTTP {status_code}: {self.body}".strip()
        super().__init__(message)


class UpstreamRejectedError(ProviderError):
    """Upstream answered 2xx but the body reports a failure."""


class DecodeError(ProviderError):
    """Response body could not be decoded into the expected shape."""


class NoDataError(ProviderError):
    """Upstream returned nothing usable."""


class FanoutError(ProviderError):
    """Every provider in a fan-out failed and no quotes were obtained."""

    def __init__(self, causes: Dict[str, str]) -> None:
        self.causes = dict(causes)
        detail = "; ".join(f"{name}: {cause}" for name, cause in self.causes.items())
        super().__init__(f"All providers failed: {detail}")


class Cancelled(Exception):
    """The caller's deadline elapsed or the request was cancelled."""

    def __init__(self, reason: Optional[str] = None) -> None:
        super().__init__(reason or "cancelled")
