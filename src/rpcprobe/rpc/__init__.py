# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""JSON-RPC wire helpers and the probed method catalog."""

from .catalog import (
    DEFAULT_CATALOG,
    DEFAULT_ENDPOINTS,
    IDENTITY_METHOD,
    STATEFUL_METHODS,
    MethodCatalog,
    load_catalog,
)
from .envelope import (
    JSON_HEADERS,
    InvalidRpcResponse,
    RpcEnvelope,
    RpcError,
    build_request_payload,
    encode_request,
    parse_response,
)

__all__ = [
    "DEFAULT_CATALOG",
    "DEFAULT_ENDPOINTS",
    "IDENTITY_METHOD",
    "JSON_HEADERS",
    "STATEFUL_METHODS",
    "InvalidRpcResponse",
    "MethodCatalog",
    "RpcEnvelope",
    "RpcError",
    "build_request_payload",
    "encode_request",
    "load_catalog",
    "parse_response",
]
