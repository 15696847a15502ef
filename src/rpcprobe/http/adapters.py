# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Programmable HttpClient used by tests and offline runs."""

from __future__ import annotations

import json
import threading
from collections.abc import Callable
from dataclasses import replace
from typing import Union

import httpx

from .client import HttpClient
from .models import HttpRequest, HttpResponse

Responder = Callable[[HttpRequest], HttpResponse]
StubEntry = Union[HttpResponse, list[HttpResponse], Responder]


def _rpc_method(request: HttpRequest) -> str | None:
    body = request.body
    if body is None:
        return None
    try:
        payload = json.loads(body)
    except (TypeError, ValueError):
        return None
    if isinstance(payload, dict):
        method = payload.get("method")
        return method if isinstance(method, str) else None
    return None


class StubHttpClient(HttpClient):
    """
    Deterministic, programmable HttpClient for tests.

    Entries are keyed by URL or by ``(url, rpc_method)``; the more specific key wins. An entry
    is a single response (returned every time), a list (consumed in order, the last one
    repeating) or a callable receiving the request.
    """

    def __init__(self, responses: dict[object, StubEntry] | None = None):
        self._responses: dict[object, StubEntry] = {}
        self._cursors: dict[object, int] = {}
        self._lock = threading.Lock()
        self.requests: list[HttpRequest] = []
        self.closed = False
        for key, entry in (responses or {}).items():
            self.add(key, entry)

    def add(self, key: object, entry: StubEntry) -> None:
        with self._lock:
            self._responses[key] = entry
            self._cursors.pop(key, None)

    def calls_for(self, url: str, rpc_method: str | None = None) -> int:
        with self._lock:
            return sum(
                1
                for req in self.requests
                if req.url == url and (rpc_method is None or _rpc_method(req) == rpc_method)
            )

    def request(self, request: HttpRequest) -> HttpResponse:
        rpc_method = _rpc_method(request)
        with self._lock:
            self.requests.append(request)
            key: object | None = None
            for candidate in ((request.url, rpc_method), request.url):
                if candidate in self._responses:
                    key = candidate
                    break
            if key is None:
                return HttpResponse(ok=False, url=request.url, error_message="No stubbed response configured")
            entry = self._responses[key]
            if isinstance(entry, list):
                index = self._cursors.get(key, 0)
                self._cursors[key] = index + 1
                entry = entry[min(index, len(entry) - 1)]

        if callable(entry) and not isinstance(entry, HttpResponse):
            return entry(request)
        # Copy so retry metadata never leaks between calls sharing one canned response.
        return replace(entry, headers=httpx.Headers(entry.headers), meta=dict(entry.meta))

    def close(self) -> None:
        self.closed = True
