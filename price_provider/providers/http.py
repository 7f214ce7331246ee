"""
Shared HTTP plumbing for upstream adapters: a pooled requests.Session with
default headers, and a JSON request helper that maps failures onto the
provider error taxonomy.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping, Optional

import requests
from requests.adapters import HTTPAdapter

from .errors import DecodeError, TransportError, UpstreamStatusError
from .resilience import Deadline

USER_AGENT = "price-provider/1.0"
HTTP_TIMEOUT_S = 15.0


def build_session(
    headers: Optional[Mapping[str, str]] = None,
    pool_size: int = 100,
) -> requests.Session:
    session = requests.Session()
    adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers["User-Agent"] = USER_AGENT
    for key, value in (headers or {}).items():
        session.headers[key] = value
    return session


def request_json(
    session: Any,
    method: str,
    url: str,
    *,
    deadline: Optional[Deadline] = None,
    timeout_s: float = HTTP_TIMEOUT_S,
    **kwargs: Any,
) -> Any:
    """
    Perform a request and decode its JSON body with exact decimals.

    Raises TransportError, UpstreamStatusError (non-2xx) or DecodeError.
    """
    deadline = deadline or Deadline.never()
    deadline.check()
    try:
        resp = session.request(method, url, timeout=deadline.timeout_for(timeout_s), **kwargs)
    except requests.RequestException as exc:
        raise TransportError(f"{method} {url}: {exc}") from exc

    if resp.status_code < 200 or resp.status_code >= 300:
        raise UpstreamStatusError(resp.status_code, resp.text or "", url)

    try:
        return resp.json(parse_float=Decimal)
    except ValueError as exc:
        raise DecodeError(f"decode {method} {url}: {exc}") from exc
