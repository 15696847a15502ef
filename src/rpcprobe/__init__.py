# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
rpcprobe package entrypoint.

Concurrent JSON-RPC latency prober: one timed call per (endpoint, method) pair, rate-limit
retries with backoff, and a live snapshot that consumers can subscribe to while results stream
in. HTTP behavior is abstracted behind an injectable client interface, and domain objects are
modeled with typed dataclasses.
"""

from .config import ProbeSettings, load_probe_settings
from .errors import ErrorCategory, RpcProbeError
from .http import (
    HttpClient,
    HttpRequest,
    HttpResponse,
    HttpxClient,
    RetryConfig,
    StubHttpClient,
    create_default_http_client,
)
from .log import setup_logging
from .models import (
    AggregateStats,
    Endpoint,
    ProbeOutcome,
    ProbeResult,
    ReconcileDelta,
    SnapshotEvent,
    SnapshotEventKind,
)
from .probe import Prober
from .rpc import DEFAULT_CATALOG, IDENTITY_METHOD, MethodCatalog, load_catalog
from .runtime import RpcProbe
from .session import ProbeSession
from .version import __version__

__all__ = [
    "AggregateStats",
    "DEFAULT_CATALOG",
    "Endpoint",
    "ErrorCategory",
    "HttpClient",
    "HttpRequest",
    "HttpResponse",
    "HttpxClient",
    "IDENTITY_METHOD",
    "MethodCatalog",
    "ProbeOutcome",
    "ProbeResult",
    "ProbeSession",
    "ProbeSettings",
    "Prober",
    "ReconcileDelta",
    "RetryConfig",
    "RpcProbe",
    "RpcProbeError",
    "SnapshotEvent",
    "SnapshotEventKind",
    "StubHttpClient",
    "create_default_http_client",
    "load_catalog",
    "load_probe_settings",
    "setup_logging",
    "__version__",
]
