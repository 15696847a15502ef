# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Probe session: fans out probes for newly tracked endpoints and folds results into a snapshot.

Each endpoint gets its own worker pool capped at ``max_workers``, so an endpoint that is slow
or sitting in rate-limit backoff only ties up its own workers.

The session is the only writer of its snapshot. Worker threads run ``Prober`` calls and hand
the returned values back through ``_merge_*``, which take the session lock, check the row's
generation token and write exactly one slot. Rows carry a fresh token per lifetime, so a result
for a removed (or removed and re-added) URL is dropped instead of resurrecting the row.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from collections.abc import Callable, Iterable
from concurrent.futures import Executor, Future, ThreadPoolExecutor

from ..config import ProbeSettings, load_probe_settings
from ..errors import ErrorCategory, RpcProbeError, describe_exception
from ..http.url import dedupe_urls
from ..models.probe import PENDING_LABEL, UNKNOWN_LABEL, Endpoint, ProbeOutcome, ProbeResult
from ..models.session import AggregateStats, ReconcileDelta, SnapshotEvent, SnapshotEventKind
from ..probe.prober import Prober
from ..rpc.catalog import DEFAULT_CATALOG, MethodCatalog
from .stats import contributing_timings, summarize

logger = logging.getLogger(__name__)

Listener = Callable[[SnapshotEvent], None]


class ProbeSession:
    """
    Tracks a set of endpoints and their probe results.

    Events are queued under the session lock and handed to listeners after it is released, one
    at a time and in ``version`` order. Listeners run on whichever thread drains the queue and
    may call back into the session, but must not call ``wait()``.

    By default every endpoint runs on a private pool of ``max_workers`` threads. Passing
    ``executor`` runs all probes on that shared executor instead.
    """

    def __init__(
        self,
        prober: Prober,
        catalog: MethodCatalog | None = None,
        settings: ProbeSettings | None = None,
        *,
        executor: Executor | None = None,
    ):
        self.prober = prober
        self.catalog = catalog or DEFAULT_CATALOG
        self.settings = settings or getattr(prober, "settings", None) or load_probe_settings()
        self._executor = executor
        self._lock = threading.RLock()
        self._idle = threading.Condition(self._lock)
        self._tracked: list[str] = []
        self._rows: dict[str, Endpoint] = {}
        self._tokens: dict[str, int] = {}
        self._futures: dict[str, list[Future]] = {}
        self._token_counter = itertools.count(1)
        self._listeners: list[Listener] = []
        self._outbox: deque[SnapshotEvent] = deque()
        self._delivering = False
        self._inflight = 0
        self._version = 0
        self._closed = False

    # -- read side -----------------------------------------------------------------------

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    @property
    def tracked(self) -> list[str]:
        with self._lock:
            return list(self._tracked)

    @property
    def settled(self) -> bool:
        with self._lock:
            return all(row.settled for row in self._rows.values())

    def snapshot(self) -> list[Endpoint]:
        """Private copies of all rows, in tracked order."""
        with self._lock:
            return self._snapshot_locked()

    def aggregate(self, method: str, *, include_errors: bool | None = None) -> AggregateStats:
        if include_errors is None:
            include_errors = self.settings.aggregate_errors
        with self._lock:
            values = contributing_timings(self._rows.values(), method, include_errors=include_errors)
        return summarize(method, values)

    def aggregates(self, *, include_errors: bool | None = None) -> list[AggregateStats]:
        return [self.aggregate(method, include_errors=include_errors) for method in self.catalog]

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def wait(self, timeout: float | None = None) -> bool:
        """
        Block until every dispatched probe has settled and its events have been delivered.

        Returns False on timeout.
        """
        with self._idle:
            return self._idle.wait_for(
                lambda: self._inflight == 0 and not self._outbox and not self._delivering,
                timeout,
            )

    # -- write side ----------------------------------------------------------------------

    def reconcile(self, urls: Iterable[str]) -> ReconcileDelta:
        """
        Make the tracked set equal ``urls``.

        Removed URLs lose their row immediately; added URLs get an all-pending row and their
        probes are queued. URLs that were already tracked are left untouched and not re-probed.
        Returns without waiting for any probe.
        """
        desired = dedupe_urls([str(url) for url in urls])
        with self._lock:
            if self._closed:
                raise RpcProbeError("Session is closed")
            tracked = set(self._tracked)
            wanted = set(desired)
            added = [url for url in desired if url not in tracked]
            removed = [url for url in self._tracked if url not in wanted]
            self._tracked = desired

            for url in removed:
                self._drop_row_locked(url)
                self._queue_event_locked(SnapshotEventKind.REMOVED, url=url)

            dispatch: list[tuple[str, int]] = []
            for url in added:
                token = next(self._token_counter)
                self._rows[url] = Endpoint.pending(url, self.catalog)
                self._tokens[url] = token
                dispatch.append((url, token))
                self._queue_event_locked(SnapshotEventKind.ADDED, url=url)

            for url, token in dispatch:
                self._dispatch_locked(url, token)

        self._deliver_events()
        if added or removed:
            logger.debug("Reconciled session: +%d -%d endpoints", len(added), len(removed))
        return ReconcileDelta(added=tuple(added), removed=tuple(removed))

    def add(self, url: str) -> ReconcileDelta:
        return self.reconcile([*self.tracked, url])

    def remove(self, url: str) -> ReconcileDelta:
        return self.reconcile([u for u in self.tracked if u != url])

    def reset(self) -> None:
        """Forget every endpoint so the next reconcile probes from scratch."""
        with self._lock:
            for url in list(self._rows):
                self._drop_row_locked(url)
            self._tracked = []
            self._queue_event_locked(SnapshotEventKind.RESET)
        self._deliver_events()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            for futures in self._futures.values():
                for future in futures:
                    future.cancel()

    def __enter__(self) -> ProbeSession:
        return self

    def __exit__(self, _exc_type, _exc, _tb) -> None:  # noqa: ANN001
        self.close()

    # -- internals -----------------------------------------------------------------------

    def _snapshot_locked(self) -> list[Endpoint]:
        return [self._rows[url].copy() for url in self._tracked if url in self._rows]

    def _queue_event_locked(self, kind: SnapshotEventKind, *, url: str | None = None, method: str | None = None) -> None:
        self._version += 1
        if not self._listeners:
            return
        self._outbox.append(
            SnapshotEvent(
                kind=kind,
                version=self._version,
                url=url,
                method=method,
                snapshot=self._snapshot_locked(),
            )
        )

    def _deliver_events(self) -> None:
        """Drain queued events to listeners; must be called without the session lock held."""
        with self._lock:
            # Only one thread drains at a time; it picks up anything queued while it runs.
            if self._delivering:
                return
            self._delivering = True
        while True:
            with self._lock:
                if not self._outbox:
                    self._delivering = False
                    self._idle.notify_all()
                    return
                event = self._outbox.popleft()
                listeners = list(self._listeners)
            for listener in listeners:
                try:
                    listener(event)
                except Exception:  # noqa: BLE001
                    logger.exception("Snapshot listener %r failed", listener)

    def _drop_row_locked(self, url: str) -> None:
        self._rows.pop(url, None)
        self._tokens.pop(url, None)
        # Best effort: queued probes are cancelled, running ones finish and get discarded.
        for future in self._futures.pop(url, []):
            future.cancel()

    def _dispatch_locked(self, url: str, token: int) -> None:
        executor = self._executor
        lane: ThreadPoolExecutor | None = None
        if executor is None:
            lane = ThreadPoolExecutor(
                max_workers=max(1, self.settings.max_workers),
                thread_name_prefix=f"rpcprobe-{token}",
            )
            executor = lane

        futures: list[Future] = []
        try:
            identity = self._submit_locked(executor, self._run_identity, url, token)
            if identity is not None:
                futures.append(identity)
            for method in self.catalog:
                future = self._submit_locked(executor, self._run_method, url, token, method)
                if future is not None:
                    futures.append(future)
        finally:
            if lane is not None:
                # Queued work still runs; the lane's threads exit once it is drained.
                lane.shutdown(wait=False)
        self._futures[url] = futures

    def _submit_locked(self, executor: Executor, fn, *args) -> Future | None:  # noqa: ANN001
        try:
            future = executor.submit(fn, *args)
        except RuntimeError:
            logger.warning("Executor rejected probe for %s; it has been shut down", args[0])
            return None
        self._inflight += 1
        future.add_done_callback(self._on_done)
        return future

    def _on_done(self, _future: Future) -> None:
        with self._idle:
            self._inflight -= 1
            if self._inflight == 0:
                self._idle.notify_all()

    def _run_method(self, url: str, token: int, method: str) -> None:
        try:
            result = self.prober.probe(url, method, self.catalog.params_for(method))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Prober raised for %s on %s", method, url)
            result = ProbeResult(
                method=method,
                outcome=ProbeOutcome.TRANSPORT_ERROR,
                elapsed_ms=0.0,
                message=describe_exception(exc),
                error_category=ErrorCategory.UNKNOWN_ERROR,
            )
        self._merge_result(url, token, result)
        self._deliver_events()

    def _run_identity(self, url: str, token: int) -> None:
        try:
            label = self.prober.identify(url)
        except Exception:  # noqa: BLE001
            logger.exception("Identity probe raised for %s", url)
            label = UNKNOWN_LABEL
        self._merge_identity(url, token, label or UNKNOWN_LABEL)
        self._deliver_events()

    def _merge_result(self, url: str, token: int, result: ProbeResult) -> None:
        with self._lock:
            if self._tokens.get(url) != token:
                logger.debug("Discarding late %s result for untracked %s", result.method, url)
                return
            row = self._rows[url]
            slot = row.results.get(result.method)
            if slot is None or slot.is_terminal:
                return
            if result.elapsed_ms is None:
                result.elapsed_ms = 0.0
            row.results[result.method] = result
            self._queue_event_locked(SnapshotEventKind.RESULT, url=url, method=result.method)

    def _merge_identity(self, url: str, token: int, label: str) -> None:
        with self._lock:
            if self._tokens.get(url) != token:
                logger.debug("Discarding late identity for untracked %s", url)
                return
            row = self._rows[url]
            if row.identity_label != PENDING_LABEL:
                return
            row.identity_label = label
            self._queue_event_locked(SnapshotEventKind.IDENTITY, url=url)
