# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Timed JSON-RPC probe for a single (endpoint, method) pair."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from http import HTTPStatus
from typing import Any

from ..config import ProbeSettings, load_probe_settings
from ..errors import ErrorCategory, describe_exception
from ..http.client import HttpClient
from ..http.models import HttpRequest, HttpResponse, RetryConfig
from ..http.retry import send_with_retries
from ..models.probe import UNKNOWN_LABEL, ProbeOutcome, ProbeResult
from ..rpc.catalog import IDENTITY_METHOD
from ..rpc.envelope import JSON_HEADERS, InvalidRpcResponse, encode_request, parse_response

logger = logging.getLogger(__name__)


def _status_text(response: HttpResponse) -> str:
    reason = (response.reason_phrase or "").strip()
    if not reason and response.status_code is not None:
        try:
            reason = HTTPStatus(response.status_code).phrase
        except ValueError:
            reason = ""
    return f"HTTP {response.status_code} {reason}".strip()


class Prober:
    """
    Issues one JSON-RPC call and turns whatever happens into a ProbeResult.

    HTTP 429 responses are retried transparently (see ``send_with_retries``); ``elapsed_ms`` is
    measured from before the first attempt until the final outcome is known. ``probe`` never
    raises.
    """

    def __init__(
        self,
        http_client: HttpClient,
        settings: ProbeSettings | None = None,
        *,
        retry_config: RetryConfig | None = None,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], None] | None = None,
    ):
        self.http_client = http_client
        self.settings = settings or load_probe_settings()
        self.retry_config = retry_config or RetryConfig.from_settings(self.settings)
        self._clock = clock or time.perf_counter
        self._sleep = sleep

    def probe(self, url: str, method: str, params: list[Any] | None = None) -> ProbeResult:
        start = self._clock()
        try:
            request = HttpRequest(
                url=url,
                method="POST",
                headers=dict(JSON_HEADERS),
                body=encode_request(method, params),
                timeout=self.settings.timeout,
            )
            response = send_with_retries(
                self.http_client,
                request,
                retry_config=self.retry_config,
                sleep=self._sleep,
            )
            result = self._classify(method, response)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Probe %s on %s failed before completion", method, url, exc_info=True)
            result = ProbeResult(
                method=method,
                outcome=ProbeOutcome.TRANSPORT_ERROR,
                message=describe_exception(exc),
                error_category=ErrorCategory.UNKNOWN_ERROR,
                attempts=1,
            )
        result.elapsed_ms = (self._clock() - start) * 1000.0
        logger.debug("Probe %s on %s -> %s in %.2f ms", method, url, result.outcome.value, result.elapsed_ms)
        return result

    def identify(self, url: str) -> str:
        """Run the identity probe and return the client label, or ``"unknown"``."""
        result = self.probe(url, IDENTITY_METHOD, [])
        if result.outcome is ProbeOutcome.SUCCESS and result.raw_result not in (None, ""):
            return str(result.raw_result)
        return UNKNOWN_LABEL

    def _classify(self, method: str, response: HttpResponse) -> ProbeResult:
        attempts = int(response.meta.get("retry_count", 0)) + 1

        if not response.ok or response.status_code is None:
            return ProbeResult(
                method=method,
                outcome=ProbeOutcome.TRANSPORT_ERROR,
                message=response.error_message or "Network error",
                error_category=response.error_category
                if response.error_category is not ErrorCategory.NONE
                else ErrorCategory.UNKNOWN_ERROR,
                attempts=attempts,
            )

        if not response.is_success:
            category = ErrorCategory.RATE_LIMITED if response.is_rate_limited else ErrorCategory.HTTP_ERROR
            return ProbeResult(
                method=method,
                outcome=ProbeOutcome.TRANSPORT_ERROR,
                message=_status_text(response),
                error_category=category,
                attempts=attempts,
            )

        try:
            envelope = parse_response(response.content or response.text)
        except InvalidRpcResponse:
            return ProbeResult(
                method=method,
                outcome=ProbeOutcome.TRANSPORT_ERROR,
                message="Invalid JSON Response",
                error_category=ErrorCategory.INVALID_RESPONSE,
                attempts=attempts,
            )

        if envelope.error is not None:
            return ProbeResult(
                method=method,
                outcome=ProbeOutcome.PROTOCOL_ERROR,
                message=envelope.error.message,
                attempts=attempts,
            )

        return ProbeResult(
            method=method,
            outcome=ProbeOutcome.SUCCESS,
            raw_result=envelope.result,
            attempts=attempts,
        )
