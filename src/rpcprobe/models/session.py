# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Session-level models: aggregates, reconcile deltas and snapshot events."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .probe import Endpoint

EMPTY_SENTINEL = "—"


def format_ms(value: float | None) -> str:
    if value is None:
        return EMPTY_SENTINEL
    return f"{value:.2f} ms"


@dataclass(frozen=True)
class AggregateStats:
    """Cross-endpoint latency statistics for one method. ``None`` means no contributing slots."""

    method: str
    mean: float | None = None
    median: float | None = None
    count: int = 0

    @property
    def mean_display(self) -> str:
        return format_ms(self.mean)

    @property
    def median_display(self) -> str:
        return format_ms(self.median)

    def to_dict(self) -> dict[str, Any]:
        return {
            "method": self.method,
            "mean_ms": self.mean,
            "median_ms": self.median,
            "count": self.count,
            "mean": self.mean_display,
            "median": self.median_display,
        }


@dataclass(frozen=True)
class ReconcileDelta:
    added: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


class SnapshotEventKind(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    RESULT = "result"
    IDENTITY = "identity"
    RESET = "reset"


@dataclass(frozen=True)
class SnapshotEvent:
    """Published after every snapshot mutation; ``snapshot`` is a private copy for the listener."""

    kind: SnapshotEventKind
    version: int
    url: str | None = None
    method: str | None = None
    snapshot: list[Endpoint] = field(default_factory=list)
