# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Endpoint URL helpers used when accepting user input."""

from __future__ import annotations

import re
from urllib.parse import urlparse

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_HOST_PORT_RE = re.compile(r"^(https?://)?(localhost|\d{1,3}(\.\d{1,3}){3}):\d+/?$", re.IGNORECASE)


def normalize_endpoint_url(url: str) -> str:
    """
    Trim whitespace and default the scheme to ``http://``.

    Example:
      127.0.0.1:8545 -> http://127.0.0.1:8545
    """
    raw = str(url or "").strip()
    if raw and not _SCHEME_RE.match(raw):
        raw = f"http://{raw}"
    return raw


def is_valid_endpoint_url(url: str) -> bool:
    """Return True for http(s) URLs with a host, including bare ``host:port`` literals."""
    raw = str(url or "").strip()
    if not raw or any(ch.isspace() for ch in raw):
        return False
    if _HOST_PORT_RE.match(raw):
        return True
    try:
        parsed = urlparse(raw)
        # Accessing .port validates the port component.
        _ = parsed.port
    except ValueError:
        return False
    return parsed.scheme.lower() in {"http", "https"} and bool(parsed.hostname)


def dedupe_urls(urls: list[str]) -> list[str]:
    """Drop duplicates while keeping first-seen order."""
    seen: set[str] = set()
    out: list[str] = []
    for url in urls:
        if url in seen:
            continue
        seen.add(url)
        out.append(url)
    return out


__all__ = ["dedupe_urls", "is_valid_endpoint_url", "normalize_endpoint_url"]
