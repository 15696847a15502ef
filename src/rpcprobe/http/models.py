# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""HTTP request/response data models used by the prober."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx

from ..config import ProbeSettings
from ..errors import ErrorCategory

Headers = dict[str, str]


@dataclass
class HttpRequest:
    """Normalized request representation consumed by HttpClient implementations."""

    url: str
    method: str = "POST"
    headers: Headers | None = None
    body: bytes | str | None = None
    timeout: float | None = None


@dataclass
class HttpResponse:
    """
    Normalized HTTP response.

    ``ok`` means a response was received at all; ``status_code`` is None only for transport
    failures, in which case ``error_message`` and ``error_category`` describe what went wrong.
    """

    ok: bool
    status_code: int | None = None
    reason_phrase: str = ""
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    text: str = ""
    content: bytes = b""
    url: str | None = None
    error_message: str | None = None
    error_type: str | None = None
    error_category: ErrorCategory = ErrorCategory.NONE
    meta: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Header names are case-insensitive; plain dicts from stubs are wrapped on the way in.
        if not isinstance(self.headers, httpx.Headers):
            self.headers = httpx.Headers(self.headers or {})

    @property
    def is_success(self) -> bool:
        return self.ok and self.status_code is not None and 200 <= self.status_code < 300

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429


@dataclass
class RetryConfig:
    """Rate-limit retry policy derived from ProbeSettings."""

    max_retries: int = 5
    delay: float = 2.0
    policy: str = "fixed"
    backoff_factor: float = 2.0
    max_delay: float = 60.0

    @classmethod
    def from_settings(cls, settings: ProbeSettings) -> RetryConfig:
        """Build a retry config from the shared ProbeSettings."""
        return cls(
            max_retries=max(0, settings.max_retries),
            delay=max(0.0, settings.retry_delay),
            policy=settings.backoff_policy,
            backoff_factor=settings.backoff_factor,
            max_delay=settings.max_retry_delay,
        )
