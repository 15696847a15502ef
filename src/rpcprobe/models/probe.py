# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Probe result and endpoint row models."""

from __future__ import annotations

import copy
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..errors import ErrorCategory

PENDING_LABEL = "pending"
UNKNOWN_LABEL = "unknown"


class ProbeOutcome(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    PROTOCOL_ERROR = "PROTOCOL_ERROR"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"


@dataclass
class ProbeResult:
    method: str
    outcome: ProbeOutcome = ProbeOutcome.PENDING
    elapsed_ms: float | None = None
    message: str | None = None
    raw_result: Any = None
    error_category: ErrorCategory = ErrorCategory.NONE
    attempts: int = 0

    @classmethod
    def pending(cls, method: str) -> ProbeResult:
        return cls(method=method)

    @property
    def is_terminal(self) -> bool:
        return self.outcome is not ProbeOutcome.PENDING

    @property
    def is_error(self) -> bool:
        return self.outcome in (ProbeOutcome.PROTOCOL_ERROR, ProbeOutcome.TRANSPORT_ERROR)

    def to_dict(self) -> dict[str, Any]:
        return {
            "method": self.method,
            "outcome": self.outcome.value,
            "elapsed_ms": self.elapsed_ms,
            "message": self.message,
            "raw_result": self.raw_result,
            "error_category": self.error_category.value,
            "attempts": self.attempts,
        }


@dataclass
class Endpoint:
    """One snapshot row: an endpoint URL with one result slot per catalog method."""

    url: str
    identity_label: str = PENDING_LABEL
    results: dict[str, ProbeResult] = field(default_factory=dict)

    @classmethod
    def pending(cls, url: str, methods: Iterable[str]) -> Endpoint:
        return cls(url=url, results={method: ProbeResult.pending(method) for method in methods})

    @property
    def settled(self) -> bool:
        return self.identity_label != PENDING_LABEL and all(r.is_terminal for r in self.results.values())

    def ordered_results(self, methods: Iterable[str]) -> list[ProbeResult]:
        """Results in catalog order, regardless of completion order."""
        return [self.results[m] for m in methods if m in self.results]

    def copy(self) -> Endpoint:
        return copy.deepcopy(self)

    def to_dict(self, methods: Iterable[str] | None = None) -> dict[str, Any]:
        ordered = self.ordered_results(methods) if methods is not None else list(self.results.values())
        return {
            "url": self.url,
            "identity_label": self.identity_label,
            "results": [r.to_dict() for r in ordered],
        }
