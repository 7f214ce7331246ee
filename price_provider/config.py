"""
Load config from config.yaml with optional env overrides.
Single source of truth for upstream endpoints, credentials, rate limits,
cache sizes and request timeouts.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml

# Defaults if no YAML or env
_DEFAULTS: Dict[str, Any] = {
    "server": {
        "request_timeout_sec": 10,
        "fanout_timeout_sec": 15,
    },
    "providers": {
        "priority": ["steamdt", "pricempire", "skinstable"],
    },
    "steamdt": {
        "enabled": True,
        "api_key": "",
        "endpoint": "https://open.steamdt.com/open/cs2/v1/price/batch",
        "include_bids": True,
        "currency": "CNY",
        "max_requests_per_minute": 1,
        "min_request_interval_sec": 0,
        "burst": 1,
        "max_items_per_request": 200,
        "max_concurrency": 2,
        "cache_ttl_sec": 3,
        "cache_max_items": 10000,
        "retry": {"max_retries": 3, "base_delay_sec": 0.25, "max_delay_sec": 10.0},
    },
    "pricempire": {
        "enabled": False,
        "api_key": "",
        "endpoint": "https://api.pricempire.com",
        "app_id": 730,
        "currency": "USD",
        "sources": ["buff"],
        "max_requests_per_minute": 2,
        "min_request_interval_sec": 0,
        "burst": 2,
        "cache_ttl_sec": 15,
        "cache_max_items": 50000,
    },
    "skinstable": {
        "enabled": False,
        "api_key": "",
        "endpoint": "",
        "currency": "USD",
        "app_id": 730,
        "sites": ["CS.MONEY"],
        "items_cache_ttl_sec": 15,
        "max_requests_per_minute": 2,
        "min_request_interval_sec": 0,
        "burst": 2,
        "cache_ttl_sec": 15,
        "cache_max_items": 50000,
    },
}


def _config_yaml_path() -> Path:
    """PRICE_PROVIDER_CONFIG if set, else config.yaml at repo root (parent of package dir)."""
    override = os.environ.get("PRICE_PROVIDER_CONFIG", "").strip()
    if override:
        return Path(override)
    return Path(__file__).resolve().parent.parent / "config.yaml"


def _load_yaml(path: Optional[Path] = None) -> dict:
    config_path = path or _config_yaml_path()
    if not config_path.exists():
        return {}
    with open(config_path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


def _deep_merge(base: dict, override: dict) -> dict:
    out = dict(base)
    for k, v in override.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def split_csv(value: str) -> List[str]:
    return [p.strip() for p in value.split(",") if p.strip()]


def _parse_bool(value: str) -> Optional[bool]:
    v = value.strip().lower()
    if v in ("1", "true", "yes", "y"):
        return True
    if v in ("0", "false", "no", "n"):
        return False
    return None


def _int_at_least(minimum: int) -> Callable[[str], Optional[int]]:
    def parse(value: str) -> Optional[int]:
        try:
            x = int(value.strip())
        except ValueError:
            return None
        return x if x >= minimum else None
    return parse


_NON_NEGATIVE = _int_at_least(0)
_POSITIVE = _int_at_least(1)

# env var -> (section, key, parser); a parser returning None leaves the value alone
_ENV_MAP: List[Tuple[str, str, str, Callable[[str], Any]]] = [
    ("REQUEST_TIMEOUT_SEC", "server", "request_timeout_sec", _POSITIVE),
    ("FANOUT_TIMEOUT_SEC", "server", "fanout_timeout_sec", _POSITIVE),

    ("STEAMDT_ENABLED", "steamdt", "enabled", _parse_bool),
    ("STEAMDT_API_KEY", "steamdt", "api_key", str),
    ("STEAMDT_ENDPOINT", "steamdt", "endpoint", str),
    ("INCLUDE_BIDS", "steamdt", "include_bids", _parse_bool),
    ("CURRENCY", "steamdt", "currency", str),
    ("STEAMDT_MIN_INTERVAL_SEC", "steamdt", "min_request_interval_sec", _NON_NEGATIVE),
    ("STEAMDT_MAX_RPM", "steamdt", "max_requests_per_minute", _NON_NEGATIVE),
    ("STEAMDT_BURST", "steamdt", "burst", _POSITIVE),
    ("STEAMDT_MAX_ITEMS_PER_REQUEST", "steamdt", "max_items_per_request", _POSITIVE),
    ("STEAMDT_MAX_CONCURRENCY", "steamdt", "max_concurrency", _POSITIVE),
    ("STEAMDT_CACHE_TTL_SEC", "steamdt", "cache_ttl_sec", _NON_NEGATIVE),
    ("STEAMDT_CACHE_MAX_ITEMS", "steamdt", "cache_max_items", _POSITIVE),

    ("PRICEMPIRE_ENABLED", "pricempire", "enabled", _parse_bool),
    ("PRICEMPIRE_API_KEY", "pricempire", "api_key", str),
    ("PRICEMPIRE_ENDPOINT", "pricempire", "endpoint", str),
    ("PRICEMPIRE_APP_ID", "pricempire", "app_id", _POSITIVE),
    ("PRICEMPIRE_CURRENCY", "pricempire", "currency", str),
    ("PRICEMPIRE_SOURCES", "pricempire", "sources", split_csv),
    ("PRICEMPIRE_MIN_INTERVAL_SEC", "pricempire", "min_request_interval_sec", _NON_NEGATIVE),
    ("PRICEMPIRE_MAX_RPM", "pricempire", "max_requests_per_minute", _NON_NEGATIVE),
    ("PRICEMPIRE_BURST", "pricempire", "burst", _POSITIVE),
    ("PRICEMPIRE_CACHE_TTL_SEC", "pricempire", "cache_ttl_sec", _NON_NEGATIVE),
    ("PRICEMPIRE_CACHE_MAX_ITEMS", "pricempire", "cache_max_items", _POSITIVE),

    ("SKINSTABLE_ENABLED", "skinstable", "enabled", _parse_bool),
    ("SKINSTABLE_ENDPOINT", "skinstable", "endpoint", str),
    ("SKINSTABLE_API_KEY", "skinstable", "api_key", str),
    ("SKINSTABLE_CURRENCY", "skinstable", "currency", str),
    ("SKINSTABLE_ITEMS_CACHE_TTL_SEC", "skinstable", "items_cache_ttl_sec", _NON_NEGATIVE),
    ("SKINSTABLE_APP_ID", "skinstable", "app_id", _POSITIVE),
    ("SKINSTABLE_SITES", "skinstable", "sites", split_csv),
    ("SKINSTABLE_MIN_INTERVAL_SEC", "skinstable", "min_request_interval_sec", _NON_NEGATIVE),
    ("SKINSTABLE_MAX_RPM", "skinstable", "max_requests_per_minute", _NON_NEGATIVE),
    ("SKINSTABLE_BURST", "skinstable", "burst", _POSITIVE),
    ("SKINSTABLE_CACHE_TTL_SEC", "skinstable", "cache_ttl_sec", _NON_NEGATIVE),
    ("SKINSTABLE_CACHE_MAX_ITEMS", "skinstable", "cache_max_items", _POSITIVE),
]


def _env_overrides() -> dict:
    overrides: dict = {}
    for env_name, section, key, parse in _ENV_MAP:
        raw = os.environ.get(env_name)
        if not raw:
            continue
        value = parse(raw)
        if value is None or value == []:
            continue
        overrides.setdefault(section, {})[key] = value
    return overrides


def get_config(path: Optional[Path] = None) -> dict:
    """Return merged config: defaults <- config.yaml <- env."""
    merged = _deep_merge(_DEFAULTS, _load_yaml(path))
    merged = _deep_merge(merged, _env_overrides())
    return merged


# Convenience accessors
def request_timeout_sec() -> int:
    return int(get_config()["server"]["request_timeout_sec"])


def fanout_timeout_sec() -> int:
    return int(get_config()["server"]["fanout_timeout_sec"])


def provider_priority() -> list:
    return list(get_config()["providers"].get("priority", _DEFAULTS["providers"]["priority"]))


def upstream(name: str) -> dict:
    """Merged settings section for one upstream (steamdt, pricempire, skinstable)."""
    cfg = get_config()
    if name not in cfg or not isinstance(cfg[name], dict):
        raise KeyError(f"Unknown upstream '{name}'")
    return dict(cfg[name])
