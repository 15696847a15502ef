# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""HTTP client exports."""

from .adapters import StubHttpClient
from .client import HttpClient, create_default_http_client
from .httpx_client import HttpxClient
from .models import Headers, HttpRequest, HttpResponse, RetryConfig
from .retry import build_default_retry_config, compute_delay, parse_retry_after, send_with_retries
from .url import dedupe_urls, is_valid_endpoint_url, normalize_endpoint_url

__all__ = [
    "Headers",
    "HttpClient",
    "HttpxClient",
    "HttpRequest",
    "HttpResponse",
    "RetryConfig",
    "StubHttpClient",
    "build_default_retry_config",
    "compute_delay",
    "create_default_http_client",
    "dedupe_urls",
    "is_valid_endpoint_url",
    "normalize_endpoint_url",
    "parse_retry_after",
    "send_with_retries",
]
