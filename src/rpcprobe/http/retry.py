# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Rate-limit retry helper for HttpClient implementations."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

from ..config import load_probe_settings
from ..errors import categorize_exception, describe_exception
from .client import HttpClient
from .models import HttpRequest, HttpResponse, RetryConfig

logger = logging.getLogger(__name__)


def build_default_retry_config() -> RetryConfig:
    """Create a RetryConfig from environment-backed ProbeSettings."""
    return RetryConfig.from_settings(load_probe_settings())


def parse_retry_after(value: str | None, *, now: datetime | None = None) -> float | None:
    """
    Parse a ``Retry-After`` header into seconds.

    Both delta-seconds (``"3"``) and HTTP-dates are accepted. Returns None when the value is
    missing or unparseable; dates in the past yield 0.
    """
    raw = str(value or "").strip()
    if not raw:
        return None
    try:
        seconds = float(raw)
    except ValueError:
        try:
            when = parsedate_to_datetime(raw)
        except (TypeError, ValueError, IndexError):
            return None
        if when is None:
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        current = now or datetime.now(timezone.utc)
        return max(0.0, (when - current).total_seconds())
    if seconds != seconds or seconds < 0:  # NaN or negative
        return None
    return seconds


def compute_delay(cfg: RetryConfig, attempt: int, retry_after: float | None = None) -> float:
    """Delay before retry number ``attempt`` (1-based). A server-provided value wins."""
    if retry_after is not None:
        delay = retry_after
    elif cfg.policy == "exponential":
        delay = cfg.delay * (cfg.backoff_factor ** max(0, attempt - 1))
    else:
        delay = cfg.delay
    if cfg.max_delay and cfg.max_delay > 0:
        delay = min(delay, cfg.max_delay)
    return max(0.0, delay)


def send_with_retries(
    client: HttpClient,
    request: HttpRequest,
    *,
    retry_config: RetryConfig | None = None,
    sleep: Callable[[float], None] | None = None,
) -> HttpResponse:
    """
    Execute a request, retrying only HTTP 429 responses.

    Attempt ``n`` (1-based) is retried when it is rate limited and ``n <= max_retries``; the
    final response is returned as-is with ``retry_count``/``retry_delays`` recorded in ``meta``
    and ``retry_exhausted`` set when the last response was still a 429.
    """
    cfg = retry_config or build_default_retry_config()
    sleep = sleep or time.sleep

    attempt = 1
    delays: list[float] = []
    while True:
        try:
            response = client.request(request)
        except Exception as exc:  # noqa: BLE001
            response = HttpResponse(
                ok=False,
                url=request.url,
                error_message=describe_exception(exc),
                error_type=type(exc).__name__,
                error_category=categorize_exception(exc),
            )

        if not response.is_rate_limited:
            break
        if attempt > cfg.max_retries:
            response.meta["retry_exhausted"] = True
            logger.info("Giving up on %s after %d rate-limited attempts", request.url, attempt)
            break

        retry_after = parse_retry_after(response.headers.get("retry-after"))
        delay = compute_delay(cfg, attempt, retry_after)
        delays.append(delay)
        logger.info("Rate limited by %s (attempt %d), retrying in %.2fs", request.url, attempt, delay)
        sleep(delay)
        attempt += 1

    response.meta["retry_count"] = attempt - 1
    response.meta["retry_delays"] = delays
    return response


__all__ = [
    "build_default_retry_config",
    "compute_delay",
    "parse_retry_after",
    "send_with_retries",
]
