"""
Tests for the Pricempire full-payload adapter (fake HTTP session, no live network).
"""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from price_provider.providers.errors import DecodeError, UpstreamStatusError
from price_provider.providers.pricempire import PricempireConfig, PricempireProvider, parse_items
from tests.fakes import FakeClock, FakeResponse, FakeSession

AK = "AK-47 | Redline (Field-Tested)"

PAYLOAD = """
{
  "AK-47 | Redline (Field-Tested)": {
    "liquidity": 53.555,
    "buff": {"isInflated": false, "price": 32, "count": 43, "avg30": 28,
             "createdAt": "2023-02-02T12:13:07.393Z"},
    "steam": {"price": 35.10, "count": 10, "createdAt": null},
    "skinport": {"price": 31}
  },
  "AWP | Asiimov (Field-Tested)": {
    "liquidity": 80,
    "buff": {"price": null, "createdAt": "2023-02-02T12:13:07Z"}
  }
}
"""


def _provider(session, clock=None, **overrides) -> PricempireProvider:
    cfg = PricempireConfig(
        base_url="https://pricempire.test",
        api_key="test-key",
        sources=overrides.pop("sources", ["buff", "steam"]),
        **overrides,
    )
    if clock is None:
        return PricempireProvider(cfg, session=session)
    return PricempireProvider(cfg, session=session, clock=clock)


@pytest.fixture(autouse=True)
def _fixed_now(monkeypatch):
    monkeypatch.setenv("PRICE_PROVIDER_DETERMINISTIC_TIME", "2026-01-01T00:00:00Z")


# ---------------------------------------------------------------------------
# Request and decoding
# ---------------------------------------------------------------------------


class TestRequest:
    def test_query_parameters(self):
        session = FakeSession([FakeResponse(200, text=PAYLOAD)])
        _provider(session).fetch([AK])
        call = session.calls[0]
        assert call["method"] == "GET"
        assert call["url"] == "https://pricempire.test/v3/items/prices"
        assert call["params"] == [
            ("api_key", "test-key"),
            ("appId", "730"),
            ("currency", "USD"),
            ("sources", "buff"),
            ("sources", "steam"),
        ]

    def test_quotes_per_requested_source(self):
        session = FakeSession([FakeResponse(200, text=PAYLOAD)])
        quotes = _provider(session).fetch([AK])
        by_source = {q.source: q for q in quotes}
        assert set(by_source) == {"Pricempire:buff", "Pricempire:steam"}
        assert by_source["Pricempire:buff"].price == "32"
        assert by_source["Pricempire:steam"].price == "35.1"
        assert by_source["Pricempire:buff"].received_at == datetime(
            2023, 2, 2, 12, 13, 7, 393000, tzinfo=timezone.utc
        )

    def test_missing_created_at_uses_now(self):
        session = FakeSession([FakeResponse(200, text=PAYLOAD)])
        quotes = _provider(session).fetch([AK])
        steam = next(q for q in quotes if q.source == "Pricempire:steam")
        assert steam.received_at == datetime(2026, 1, 1, tzinfo=timezone.utc)

    def test_null_price_skipped(self):
        session = FakeSession([FakeResponse(200, text=PAYLOAD)])
        assert _provider(session).fetch(["AWP | Asiimov (Field-Tested)"]) == []

    def test_empty_symbols_returns_whole_catalogue(self):
        session = FakeSession([FakeResponse(200, text=PAYLOAD)])
        quotes = _provider(session).fetch([])
        assert {q.symbol for q in quotes} == {AK}

    def test_unknown_symbol_filtered_out(self):
        session = FakeSession([FakeResponse(200, text=PAYLOAD)])
        assert _provider(session).fetch(["nope"]) == []

    def test_parse_items_rejects_non_object_item(self):
        with pytest.raises(DecodeError):
            parse_items({"x": [1, 2]}, ["buff"])

    def test_parse_items_rejects_bad_created_at(self):
        with pytest.raises(DecodeError):
            parse_items({"x": {"buff": {"price": 1, "createdAt": "yesterday"}}}, ["buff"])


# ---------------------------------------------------------------------------
# Status mapping
# ---------------------------------------------------------------------------


class TestStatusMapping:
    @pytest.mark.parametrize(
        "status,message",
        [
            (400, 'bad request with sources=["buff", "steam"]'),
            (403, "unauthorized"),
            (429, "rate limited"),
            (500, "unexpected status code: 500"),
        ],
    )
    def test_status_messages(self, status, message):
        session = FakeSession([FakeResponse(status, text="")])
        with pytest.raises(UpstreamStatusError) as exc_info:
            _provider(session).fetch([AK])
        assert str(exc_info.value) == message
        assert exc_info.value.status_code == status


# ---------------------------------------------------------------------------
# Payload cache
# ---------------------------------------------------------------------------


class TestPayloadCache:
    def test_payload_reused_within_ttl(self):
        clock = FakeClock()
        session = FakeSession([FakeResponse(200, text=PAYLOAD)])
        provider = _provider(session, clock=clock, items_cache_ttl_s=30)
        provider.fetch([AK])
        clock.advance(29)
        provider.fetch([AK])
        assert session.call_count == 1
        clock.advance(2)
        provider.fetch([AK])
        assert session.call_count == 2

    def test_no_cache_when_ttl_zero(self):
        session = FakeSession([FakeResponse(200, text=PAYLOAD)])
        provider = _provider(session)
        provider.fetch([AK])
        provider.fetch([AK])
        assert session.call_count == 2
