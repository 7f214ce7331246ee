"""
Fake requests.Session for adapter tests: scripted responses, recorded calls.
"""

from __future__ import annotations

import json
import threading
from typing import Any, Callable, Dict, List, Optional, Union


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, text: Optional[str] = None):
        self.status_code = status_code
        if text is None:
            text = "" if body is None else json.dumps(body)
        self.text = text

    def json(self, **kwargs: Any) -> Any:
        return json.loads(self.text, **kwargs)


Responder = Callable[[str, str, Dict[str, Any]], Union[FakeResponse, Exception]]


class FakeSession:
    """
    Returns scripted responses in order (the last one repeats), or delegates
    to a responder callable. Exceptions are raised instead of returned.
    """

    def __init__(
        self,
        responses: Optional[List[Union[FakeResponse, Exception]]] = None,
        responder: Optional[Responder] = None,
    ):
        self._responses = list(responses or [])
        self._responder = responder
        self._lock = threading.Lock()
        self.calls: List[Dict[str, Any]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        with self._lock:
            self.calls.append({"method": method, "url": url, **kwargs})
            idx = len(self.calls) - 1
        if self._responder is not None:
            result = self._responder(method, url, kwargs)
        else:
            result = self._responses[min(idx, len(self._responses) - 1)]
        if isinstance(result, Exception):
            raise result
        return result
