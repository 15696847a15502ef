# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Session coordination across endpoints."""

from .coordinator import ProbeSession
from .stats import contributing_timings, summarize

__all__ = ["ProbeSession", "contributing_timings", "summarize"]
