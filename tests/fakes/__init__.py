"""Fake providers and HTTP sessions for provider tests (no live network)."""

from .clock import FakeClock
from .http import FakeResponse, FakeSession
from .providers import (
    FAKE_RECEIVED_AT,
    FakeQuoteProvider,
    FakeQuoteProviderAlwaysFail,
    FakeQuoteProviderFailNThenSucceed,
    FakeSlowProvider,
    FakeTimedProvider,
    make_quote,
)

__all__ = [
    "FAKE_RECEIVED_AT",
    "FakeClock",
    "FakeQuoteProvider",
    "FakeQuoteProviderAlwaysFail",
    "FakeQuoteProviderFailNThenSucceed",
    "FakeResponse",
    "FakeSession",
    "FakeSlowProvider",
    "FakeTimedProvider",
    "make_quote",
]
