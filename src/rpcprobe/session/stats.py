# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Cross-endpoint latency aggregates."""

from __future__ import annotations

import statistics
from collections.abc import Iterable

from ..models.probe import Endpoint, ProbeOutcome
from ..models.session import AggregateStats


def contributing_timings(rows: Iterable[Endpoint], method: str, *, include_errors: bool = False) -> list[float]:
    """Elapsed times that count towards ``method``'s aggregate; pending slots never do."""
    values: list[float] = []
    for row in rows:
        slot = row.results.get(method)
        if slot is None or slot.elapsed_ms is None:
            continue
        if slot.outcome is ProbeOutcome.SUCCESS or (include_errors and slot.is_error):
            values.append(slot.elapsed_ms)
    return values


def summarize(method: str, values: list[float]) -> AggregateStats:
    if not values:
        return AggregateStats(method=method)
    return AggregateStats(
        method=method,
        mean=statistics.fmean(values),
        median=statistics.median(values),
        count=len(values),
    )
