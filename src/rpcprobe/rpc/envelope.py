# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""JSON-RPC 2.0 request encoding and top-level response envelope parsing."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

JSONRPC_VERSION = "2.0"
JSON_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}


class InvalidRpcResponse(ValueError):
    """Response body is not a JSON object."""


@dataclass(frozen=True)
class RpcError:
    code: int | None
    message: str
    data: Any = None


@dataclass(frozen=True)
class RpcEnvelope:
    """Top-level view of a JSON-RPC response. ``result`` is passed through uninterpreted."""

    result: Any = None
    error: RpcError | None = None
    raw: dict[str, Any] | None = None

    @property
    def has_error(self) -> bool:
        return self.error is not None


def build_request_payload(method: str, params: list[Any] | None = None, request_id: int = 1) -> dict[str, Any]:
    return {
        "jsonrpc": JSONRPC_VERSION,
        "method": method,
        "params": list(params or []),
        "id": request_id,
    }


def encode_request(method: str, params: list[Any] | None = None, request_id: int = 1) -> bytes:
    return json.dumps(build_request_payload(method, params, request_id), separators=(",", ":")).encode("utf-8")


def error_message(error: Any) -> str:
    """Extract a readable message from a JSON-RPC ``error`` member of any shape."""
    if isinstance(error, dict):
        message = error.get("message")
        if message:
            return str(message)
        code = error.get("code")
        return f"JSON-RPC error {code}" if code is not None else "JSON-RPC error"
    if error is None or error == "":
        return "JSON-RPC error"
    return str(error)


def _to_rpc_error(error: Any) -> RpcError:
    code = error.get("code") if isinstance(error, dict) else None
    data = error.get("data") if isinstance(error, dict) else None
    return RpcError(code=code if isinstance(code, int) else None, message=error_message(error), data=data)


def _is_error_member(error: Any) -> bool:
    if isinstance(error, dict):
        return True
    return isinstance(error, str) and bool(error.strip())


def parse_response(text: str | bytes) -> RpcEnvelope:
    """
    Parse a JSON-RPC response body.

    An ``error`` member that is an object or a non-empty string marks the envelope as a protocol
    error. Null, false, 0 and other placeholder values are ignored. Batch (list) responses and
    other non-object bodies are rejected.
    """
    try:
        payload = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise InvalidRpcResponse("Invalid JSON Response") from exc
    if not isinstance(payload, dict):
        raise InvalidRpcResponse("Invalid JSON Response")

    error = payload.get("error")
    if _is_error_member(error):
        return RpcEnvelope(result=None, error=_to_rpc_error(error), raw=payload)
    return RpcEnvelope(result=payload.get("result"), error=None, raw=payload)


__all__ = [
    "InvalidRpcResponse",
    "JSON_HEADERS",
    "JSONRPC_VERSION",
    "RpcEnvelope",
    "RpcError",
    "build_request_payload",
    "encode_request",
    "error_message",
    "parse_response",
]
