# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Static catalog of probed RPC methods and their call parameters."""

from __future__ import annotations

import copy
import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..errors import RpcProbeError

IDENTITY_METHOD = "web3_clientVersion"

# Methods that only make sense as part of a multi-call flow; never probed.
STATEFUL_METHODS = frozenset(
    {
        "eth_newFilter",
        "eth_newBlockFilter",
        "eth_newPendingTransactionFilter",
        "eth_getFilterChanges",
        "eth_getFilterLogs",
        "eth_uninstallFilter",
        "eth_subscribe",
        "eth_unsubscribe",
        "eth_sendRawTransaction",
    }
)

_ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
_SAMPLE_BLOCK_HASH = "0x" + "0" * 64
_SAMPLE_TX_HASH = "0x" + "0" * 64

DEFAULT_METHODS: tuple[str, ...] = (
    "eth_accounts",
    "eth_blockNumber",
    "eth_getBlockByNumber",
    "eth_getBlockByHash",
    "eth_getBlockTransactionCountByNumber",
    "eth_getBlockTransactionCountByHash",
    "eth_getTransactionByHash",
    "eth_getTransactionCount",
    "eth_getTransactionReceipt",
    "eth_getBlockReceipts",
    "eth_getTransactionByBlockHashAndIndex",
    "eth_getTransactionByBlockNumberAndIndex",
    "eth_getCode",
    "eth_getStorageAt",
    "eth_chainId",
    "eth_syncing",
    "eth_feeHistory",
    "eth_protocolVersion",
    "eth_maxPriorityFeePerGas",
    "eth_estimateGas",
    "eth_call",
    "eth_getLogs",
    "eth_getBalance",
    "eth_gasPrice",
    "trace_block",
    "trace_replayBlockTransactions",
    "trace_transaction",
    "trace_filter",
    "net_version",
    "net_listening",
)

DEFAULT_PARAMS: dict[str, list[Any]] = {
    "eth_getBlockByNumber": ["latest", False],
    "eth_getBlockByHash": [_SAMPLE_BLOCK_HASH, False],
    "eth_getBlockTransactionCountByNumber": ["latest"],
    "eth_getBlockTransactionCountByHash": [_SAMPLE_BLOCK_HASH],
    "eth_getTransactionByHash": [_SAMPLE_TX_HASH],
    "eth_getTransactionCount": [_ZERO_ADDRESS, "latest"],
    "eth_getTransactionReceipt": [_SAMPLE_TX_HASH],
    "eth_getBlockReceipts": ["latest"],
    "eth_getTransactionByBlockHashAndIndex": [_SAMPLE_BLOCK_HASH, "0x0"],
    "eth_getTransactionByBlockNumberAndIndex": ["latest", "0x0"],
    "eth_getCode": [_ZERO_ADDRESS, "latest"],
    "eth_getStorageAt": [_ZERO_ADDRESS, "0x0", "latest"],
    "eth_feeHistory": ["0x5", "latest", [25, 75]],
    "eth_estimateGas": [{"from": _ZERO_ADDRESS, "to": _ZERO_ADDRESS, "value": "0x0"}],
    "eth_call": [{"to": _ZERO_ADDRESS, "data": "0x"}, "latest"],
    "eth_getLogs": [{"fromBlock": "latest", "toBlock": "latest"}],
    "eth_getBalance": [_ZERO_ADDRESS, "latest"],
    "trace_block": ["latest"],
    "trace_replayBlockTransactions": ["latest", ["trace"]],
    "trace_transaction": [_SAMPLE_TX_HASH],
    "trace_filter": [{"fromBlock": "latest", "toBlock": "latest", "count": 1}],
}

DEFAULT_ENDPOINTS: tuple[tuple[str, str], ...] = (
    ("Ankr", "https://rpc.ankr.com/filecoin"),
    ("ChainUp", "https://filecoin.chainup.net/rpc/v1"),
    ("Glif", "https://api.node.glif.io"),
    ("Filfox", "https://filfox.info/rpc/v1"),
    ("DRPC", "https://filecoin.drpc.org"),
    ("ChainSafe", "https://rpcnode-mainnet.chainsafe-fil.io/rpc/v0"),
)


@dataclass(frozen=True)
class MethodCatalog:
    """
    Ordered, duplicate-free method names plus a per-method parameter table.

    Methods missing from the parameter table are called with an empty parameter list.
    """

    methods: tuple[str, ...]
    params: Mapping[str, list[Any]]

    def __init__(self, methods: Iterable[str], params: Mapping[str, list[Any]] | None = None):
        ordered: list[str] = []
        for method in methods:
            name = str(method or "").strip()
            if not name:
                raise RpcProbeError("Method names must be non-empty strings")
            if name in STATEFUL_METHODS:
                raise RpcProbeError(f"{name} requires a stateful call flow and cannot be probed")
            if name not in ordered:
                ordered.append(name)
        table = {str(k): list(v) for k, v in dict(params or {}).items()}
        object.__setattr__(self, "methods", tuple(ordered))
        object.__setattr__(self, "params", table)

    def __iter__(self):
        return iter(self.methods)

    def __len__(self) -> int:
        return len(self.methods)

    def __contains__(self, method: object) -> bool:
        return method in self.methods

    def params_for(self, method: str) -> list[Any]:
        """Return a copy of the configured params so callers can never mutate the table."""
        return copy.deepcopy(self.params.get(method, []))

    def without(self, *methods: str) -> MethodCatalog:
        excluded = set(methods)
        return MethodCatalog((m for m in self.methods if m not in excluded), self.params)

    @classmethod
    def from_mapping(cls, data: Any) -> MethodCatalog:
        """
        Build a catalog from decoded JSON.

        Accepted shapes: ``{"methods": [...], "params": {...}}`` or a list whose items are
        method names or ``{"method": ..., "params": [...]}`` objects.
        """
        methods: list[str] = []
        params: dict[str, list[Any]] = {}
        if isinstance(data, Mapping):
            raw_methods = data.get("methods")
            raw_params = data.get("params") or {}
            if not isinstance(raw_methods, list) or not isinstance(raw_params, Mapping):
                raise RpcProbeError("Catalog object needs a 'methods' list and an optional 'params' object")
            methods = [str(m) for m in raw_methods]
            for name, value in raw_params.items():
                if not isinstance(value, list):
                    raise RpcProbeError(f"Params for {name} must be a list")
                params[str(name)] = value
        elif isinstance(data, list):
            for item in data:
                if isinstance(item, str):
                    methods.append(item)
                elif isinstance(item, Mapping) and isinstance(item.get("method"), str):
                    methods.append(item["method"])
                    value = item.get("params", [])
                    if not isinstance(value, list):
                        raise RpcProbeError(f"Params for {item['method']} must be a list")
                    params[item["method"]] = value
                else:
                    raise RpcProbeError(f"Unsupported catalog entry: {item!r}")
        else:
            raise RpcProbeError("Catalog must be a JSON object or list")
        return cls(methods, params)


def load_catalog(path: str | Path) -> MethodCatalog:
    """Load a method catalog from a JSON file."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise RpcProbeError(f"Cannot read catalog {path}: {exc}") from exc
    except ValueError as exc:
        raise RpcProbeError(f"Catalog {path} is not valid JSON: {exc}") from exc
    return MethodCatalog.from_mapping(data)


DEFAULT_CATALOG = MethodCatalog(DEFAULT_METHODS, DEFAULT_PARAMS)


__all__ = [
    "DEFAULT_CATALOG",
    "DEFAULT_ENDPOINTS",
    "DEFAULT_METHODS",
    "DEFAULT_PARAMS",
    "IDENTITY_METHOD",
    "MethodCatalog",
    "STATEFUL_METHODS",
    "load_catalog",
]
