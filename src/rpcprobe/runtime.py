# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""High-level rpcprobe facade wiring settings, HTTP client, prober and session."""

from __future__ import annotations

from collections.abc import Iterable
from contextlib import suppress

from .config import ProbeSettings, load_probe_settings
from .http.client import HttpClient, create_default_http_client
from .models import AggregateStats, Endpoint
from .probe.prober import Prober
from .rpc.catalog import DEFAULT_CATALOG, MethodCatalog
from .session.coordinator import ProbeSession


class RpcProbe:
    """
    Convenience wrapper that shares one HTTP client across every probe of a session.

    Consumers that render live progress subscribe to ``session``; batch consumers call ``run``.
    """

    def __init__(
        self,
        http_client: HttpClient | None = None,
        *,
        settings: ProbeSettings | None = None,
        catalog: MethodCatalog | None = None,
    ):
        self.settings = settings or load_probe_settings()
        self.http_client = http_client or create_default_http_client(self.settings)
        self.catalog = catalog or DEFAULT_CATALOG
        self.prober = Prober(self.http_client, self.settings)
        self.session = ProbeSession(self.prober, self.catalog, self.settings)

    def run(self, urls: Iterable[str], *, timeout: float | None = None) -> list[Endpoint]:
        """Reconcile to ``urls``, wait for the probes to settle and return the snapshot."""
        self.session.reconcile(urls)
        self.session.wait(timeout)
        return self.session.snapshot()

    def aggregates(self, *, include_errors: bool | None = None) -> list[AggregateStats]:
        return self.session.aggregates(include_errors=include_errors)

    def close(self) -> None:
        self.session.close()
        with suppress(Exception):
            if hasattr(self.http_client, "close"):
                self.http_client.close()

    def __enter__(self) -> RpcProbe:
        return self

    def __exit__(self, _exc_type, _exc, _tb) -> None:  # noqa: ANN001
        self.close()
