# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Dataclass exports for rpcprobe."""

from ..http.models import Headers, HttpRequest, HttpResponse, RetryConfig
from .probe import PENDING_LABEL, UNKNOWN_LABEL, Endpoint, ProbeOutcome, ProbeResult
from .session import (
    EMPTY_SENTINEL,
    AggregateStats,
    ReconcileDelta,
    SnapshotEvent,
    SnapshotEventKind,
    format_ms,
)

__all__ = [
    "EMPTY_SENTINEL",
    "PENDING_LABEL",
    "UNKNOWN_LABEL",
    "AggregateStats",
    "Endpoint",
    "Headers",
    "HttpRequest",
    "HttpResponse",
    "ProbeOutcome",
    "ProbeResult",
    "ReconcileDelta",
    "RetryConfig",
    "SnapshotEvent",
    "SnapshotEventKind",
    "format_ms",
]
