# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

import json
import threading
import time

import pytest

from rpcprobe.config import ProbeSettings
from rpcprobe.errors import RpcProbeError
from rpcprobe.http.adapters import StubHttpClient
from rpcprobe.http.models import HttpRequest, HttpResponse
from rpcprobe.models import Endpoint, ProbeOutcome, ProbeResult, SnapshotEventKind
from rpcprobe.probe.prober import Prober
from rpcprobe.rpc.catalog import MethodCatalog
from rpcprobe.session.coordinator import ProbeSession
from rpcprobe.session.stats import contributing_timings, summarize

METHODS = MethodCatalog(["eth_blockNumber", "eth_chainId", "net_version"])
WAIT = 5.0


class FakeProber:
    """Duck-typed prober returning canned results, recording every call."""

    def __init__(self, results=None, labels=None, gate=None):
        self.settings = ProbeSettings(max_workers=8)
        self.results = results or {}
        self.labels = labels or {}
        self.gate = gate or {}
        self.calls = []
        self._lock = threading.Lock()

    def probe(self, url, method, params=None):
        with self._lock:
            self.calls.append((url, method))
        event = self.gate.get((url, method))
        if event is not None:
            event.wait(WAIT)
        canned = self.results.get((url, method))
        if canned is not None:
            return ProbeResult(**{**canned.__dict__})
        return ProbeResult(method=method, outcome=ProbeOutcome.SUCCESS, elapsed_ms=10.0, raw_result="0x1")

    def identify(self, url):
        with self._lock:
            self.calls.append((url, "web3_clientVersion"))
        return self.labels.get(url, "client/1.0")

    def calls_for(self, url):
        with self._lock:
            return [c for c in self.calls if c[0] == url]


def rpc_response(result):
    body = json.dumps({"jsonrpc": "2.0", "id": 1, "result": result}).encode("utf-8")
    return HttpResponse(ok=True, status_code=200, content=body)


def test_reconcile_creates_pending_rows_immediately():
    gate = {("http://a", "eth_blockNumber"): threading.Event()}
    prober = FakeProber(gate=gate)
    with ProbeSession(prober, METHODS) as session:
        delta = session.reconcile(["http://a"])
        row = session.snapshot()[0]
        assert delta.added == ("http://a",)
        assert row.url == "http://a"
        assert set(row.results) == set(METHODS.methods)
        gate[("http://a", "eth_blockNumber")].set()
        assert session.wait(WAIT)


def test_every_slot_settles_exactly_once():
    prober = FakeProber(labels={"http://b": "geth/1.14"})
    urls = ["http://a", "http://b", "http://c"]
    with ProbeSession(prober, METHODS) as session:
        session.reconcile(urls)
        assert session.wait(WAIT)
        rows = session.snapshot()

        assert [row.url for row in rows] == urls
        for row in rows:
            assert [r.method for r in row.ordered_results(METHODS)] == list(METHODS.methods)
            assert all(r.outcome is ProbeOutcome.SUCCESS and r.elapsed_ms is not None for r in row.results.values())
        assert rows[1].identity_label == "geth/1.14"
        assert session.settled is True
        # one identity probe plus one call per method, per endpoint
        assert len(prober.calls) == len(urls) * (len(METHODS) + 1)


def test_probes_run_concurrently_across_endpoints():
    barrier = threading.Barrier(2, timeout=WAIT)

    def rendezvous(request: HttpRequest) -> HttpResponse:
        barrier.wait()
        return rpc_response("0x1")

    stub = StubHttpClient(
        {
            ("http://a", "eth_blockNumber"): rendezvous,
            ("http://b", "eth_blockNumber"): rendezvous,
            "http://a": rpc_response("lotus"),
            "http://b": rpc_response("forest"),
        }
    )
    settings = ProbeSettings(max_workers=4)
    with ProbeSession(Prober(stub, settings), MethodCatalog(["eth_blockNumber"]), settings) as session:
        session.reconcile(["http://a", "http://b"])
        assert session.wait(WAIT)
        outcomes = [row.results["eth_blockNumber"].outcome for row in session.snapshot()]
    assert outcomes == [ProbeOutcome.SUCCESS, ProbeOutcome.SUCCESS]


def test_rate_limited_endpoint_does_not_hold_up_others():
    release = threading.Event()
    stub = StubHttpClient(
        {
            "http://a": HttpResponse(ok=True, status_code=429, headers={"Retry-After": "1"}),
            "http://b": rpc_response("0x1"),
        }
    )
    settings = ProbeSettings(max_workers=2)
    # every backoff on http://a parks its worker until released
    prober = Prober(stub, settings, sleep=lambda delay: release.wait(WAIT))
    with ProbeSession(prober, METHODS, settings) as session:
        session.reconcile(["http://a", "http://b"])

        deadline = time.monotonic() + WAIT
        while not session.snapshot()[1].settled:
            assert time.monotonic() < deadline
            time.sleep(0.01)
        a, b = session.snapshot()
        assert not a.settled
        assert all(r.outcome is ProbeOutcome.SUCCESS for r in b.results.values())
        assert stub.calls_for("http://b") == len(METHODS) + 1

        release.set()
        assert session.wait(WAIT)
        a = session.snapshot()[0]
    assert all(r.message == "HTTP 429 Too Many Requests" for r in a.results.values())
    assert a.identity_label == "unknown"


def test_listeners_run_outside_the_session_lock():
    blocked = []

    def listener(event):
        if event.kind is not SnapshotEventKind.RESULT:
            return
        helper = threading.Thread(target=session.snapshot)
        helper.start()
        helper.join(1.0)
        blocked.append(helper.is_alive())

    with ProbeSession(FakeProber(), METHODS) as session:
        session.subscribe(listener)
        session.reconcile(["http://a"])
        assert session.wait(WAIT)

    assert blocked == [False] * len(METHODS)


def test_slow_listener_does_not_delay_merges():
    gate = threading.Event()
    seen = []

    def listener(event):
        seen.append(event.version)
        gate.wait(WAIT)

    with ProbeSession(FakeProber(), METHODS) as session:
        session.subscribe(listener)
        # reconcile delivers the ADDED event on the calling thread, which the listener parks
        caller = threading.Thread(target=session.reconcile, args=(["http://a"],))
        caller.start()

        deadline = time.monotonic() + WAIT
        while not seen or not session.snapshot() or not session.settled:
            assert time.monotonic() < deadline
            time.sleep(0.01)
        assert seen == [1]
        gate.set()
        caller.join(WAIT)
        assert session.wait(WAIT)

    # ADDED, one RESULT per method and IDENTITY, delivered in order
    assert seen == sorted(seen)
    assert len(seen) == len(METHODS) + 2


def test_one_failing_endpoint_does_not_affect_others():
    results = {
        ("http://bad", m): ProbeResult(method=m, outcome=ProbeOutcome.TRANSPORT_ERROR, elapsed_ms=1.0, message="refused")
        for m in METHODS
    }
    with ProbeSession(FakeProber(results=results), METHODS) as session:
        session.reconcile(["http://good", "http://bad"])
        assert session.wait(WAIT)
        good, bad = session.snapshot()
    assert all(r.outcome is ProbeOutcome.SUCCESS for r in good.results.values())
    assert all(r.message == "refused" for r in bad.results.values())


def test_raising_prober_still_settles_slot():
    class Exploding(FakeProber):
        def probe(self, url, method, params=None):
            if method == "eth_chainId":
                raise RuntimeError("bug")
            return super().probe(url, method, params)

    with ProbeSession(Exploding(), METHODS) as session:
        session.reconcile(["http://a"])
        assert session.wait(WAIT)
        slot = session.snapshot()[0].results["eth_chainId"]
    assert slot.outcome is ProbeOutcome.TRANSPORT_ERROR
    assert slot.message == "bug"
    assert slot.elapsed_ms is not None


def test_reconcile_is_idempotent_for_tracked_urls():
    prober = FakeProber()
    with ProbeSession(prober, METHODS) as session:
        session.reconcile(["http://a"])
        assert session.wait(WAIT)
        calls_before = len(prober.calls)

        delta = session.reconcile(["http://a"])
        assert session.wait(WAIT)
        assert delta.changed is False
        assert len(prober.calls) == calls_before

        session.reconcile(["http://a", "http://b"])
        assert session.wait(WAIT)
        assert len(prober.calls_for("http://a")) == len(METHODS) + 1


def test_removed_endpoint_is_dropped_and_late_results_discarded():
    gate = {("http://a", "eth_blockNumber"): threading.Event()}
    prober = FakeProber(gate=gate)
    events = []
    with ProbeSession(prober, METHODS) as session:
        session.subscribe(events.append)
        session.reconcile(["http://a", "http://b"])

        deadline = time.monotonic() + WAIT
        while ("http://a", "eth_blockNumber") not in prober.calls and time.monotonic() < deadline:
            time.sleep(0.01)

        delta = session.reconcile(["http://b"])
        assert delta.removed == ("http://a",)
        assert [row.url for row in session.snapshot()] == ["http://b"]

        gate[("http://a", "eth_blockNumber")].set()
        assert session.wait(WAIT)
        assert [row.url for row in session.snapshot()] == ["http://b"]

    removed_at = next(e.version for e in events if e.kind is SnapshotEventKind.REMOVED)
    assert not [e for e in events if e.url == "http://a" and e.version > removed_at]


def test_readded_endpoint_ignores_results_from_previous_lifetime():
    first_call = threading.Event()
    release = threading.Event()
    calls = {"n": 0}
    lock = threading.Lock()

    def respond(request: HttpRequest) -> HttpResponse:
        with lock:
            calls["n"] += 1
            n = calls["n"]
        if n == 1:
            first_call.set()
            release.wait(WAIT)
            return rpc_response("stale")
        return rpc_response("fresh")

    stub = StubHttpClient({("http://a", "eth_blockNumber"): respond, "http://a": rpc_response("lotus")})
    settings = ProbeSettings(max_workers=4)
    with ProbeSession(Prober(stub, settings), MethodCatalog(["eth_blockNumber"]), settings) as session:
        session.reconcile(["http://a"])
        assert first_call.wait(WAIT)
        session.reconcile([])
        session.reconcile(["http://a"])

        deadline = time.monotonic() + WAIT
        while session.snapshot()[0].results["eth_blockNumber"].outcome is ProbeOutcome.PENDING:
            assert time.monotonic() < deadline
            time.sleep(0.01)
        release.set()
        assert session.wait(WAIT)
        slot = session.snapshot()[0].results["eth_blockNumber"]
    assert slot.raw_result == "fresh"


def test_subscribers_see_every_merge_in_version_order():
    events = []
    with ProbeSession(FakeProber(), METHODS) as session:
        unsubscribe = session.subscribe(events.append)
        session.reconcile(["http://a"])
        assert session.wait(WAIT)
        unsubscribe()
        session.reconcile(["http://a", "http://b"])
        assert session.wait(WAIT)

    kinds = [e.kind for e in events]
    assert kinds[0] is SnapshotEventKind.ADDED
    assert kinds.count(SnapshotEventKind.RESULT) == len(METHODS)
    assert kinds.count(SnapshotEventKind.IDENTITY) == 1
    versions = [e.version for e in events]
    assert versions == sorted(versions)
    assert all(e.url == "http://a" for e in events)
    final = events[-1].snapshot[0]
    assert final.settled


def test_listener_errors_do_not_break_the_session():
    def broken(event):
        raise ValueError("listener bug")

    with ProbeSession(FakeProber(), METHODS) as session:
        session.subscribe(broken)
        session.reconcile(["http://a"])
        assert session.wait(WAIT)
        assert session.settled


def test_snapshot_is_a_private_copy():
    with ProbeSession(FakeProber(), METHODS) as session:
        session.reconcile(["http://a"])
        assert session.wait(WAIT)
        rows = session.snapshot()
        rows[0].results.clear()
        rows[0].identity_label = "tampered"
        assert len(session.snapshot()[0].results) == len(METHODS)
        assert session.snapshot()[0].identity_label == "client/1.0"


def test_add_remove_and_reset():
    prober = FakeProber()
    with ProbeSession(prober, METHODS) as session:
        session.add("http://a")
        session.add("http://b")
        session.remove("http://a")
        assert session.tracked == ["http://b"]
        assert session.wait(WAIT)

        calls_before = len(prober.calls_for("http://b"))
        session.reset()
        assert session.snapshot() == []
        session.reconcile(["http://b"])
        assert session.wait(WAIT)
        assert len(prober.calls_for("http://b")) == calls_before * 2


def test_closed_session_rejects_reconcile():
    session = ProbeSession(FakeProber(), METHODS)
    session.close()
    with pytest.raises(RpcProbeError):
        session.reconcile(["http://a"])


def test_aggregate_excludes_errors_and_pending():
    results = {
        ("http://a", "eth_blockNumber"): ProbeResult("eth_blockNumber", ProbeOutcome.SUCCESS, elapsed_ms=120.0),
        ("http://b", "eth_blockNumber"): ProbeResult("eth_blockNumber", ProbeOutcome.SUCCESS, elapsed_ms=80.0),
        ("http://c", "eth_blockNumber"): ProbeResult(
            "eth_blockNumber", ProbeOutcome.PROTOCOL_ERROR, elapsed_ms=5.0, message="nope"
        ),
    }
    for m in ("eth_chainId", "net_version"):
        for url in ("http://a", "http://b", "http://c"):
            results[(url, m)] = ProbeResult(m, ProbeOutcome.TRANSPORT_ERROR, elapsed_ms=1.0, message="down")

    with ProbeSession(FakeProber(results=results), METHODS) as session:
        session.reconcile(["http://a", "http://b", "http://c"])
        assert session.wait(WAIT)

        stats = session.aggregate("eth_blockNumber")
        assert stats.mean == pytest.approx(100.0)
        assert stats.median == pytest.approx(100.0)
        assert stats.count == 2
        assert stats.mean_display == "100.00 ms"
        assert stats.median_display == "100.00 ms"

        empty = session.aggregate("eth_chainId")
        assert empty.count == 0
        assert empty.mean_display == "—"
        assert empty.median_display == "—"

        inclusive = session.aggregate("eth_blockNumber", include_errors=True)
        assert inclusive.count == 3
        assert inclusive.median == pytest.approx(80.0)

        assert [a.method for a in session.aggregates()] == list(METHODS.methods)


def test_summarize_median_of_odd_and_even_sets():
    assert summarize("m", [30.0, 10.0, 20.0]).median == 20.0
    assert summarize("m", [40.0, 10.0, 20.0, 30.0]).median == 25.0
    assert summarize("m", []).mean is None


def test_contributing_timings_skip_pending_slots():
    row = Endpoint.pending("http://a", ["eth_blockNumber"])
    assert contributing_timings([row], "eth_blockNumber") == []
    assert contributing_timings([row], "eth_blockNumber", include_errors=True) == []


def test_end_to_end_rate_limited_endpoint():
    counter = {"n": 0}
    lock = threading.Lock()

    def endpoint_a(request: HttpRequest) -> HttpResponse:
        time.sleep(0.05)
        return rpc_response("0x10")

    def endpoint_b(request: HttpRequest) -> HttpResponse:
        with lock:
            counter["n"] += 1
            first = counter["n"] == 1
        if first:
            return HttpResponse(ok=True, status_code=429)
        time.sleep(0.04)
        return rpc_response("0x11")

    stub = StubHttpClient(
        {
            ("http://a", "eth_blockNumber"): endpoint_a,
            ("http://b", "eth_blockNumber"): endpoint_b,
            "http://a": rpc_response("lotus"),
            "http://b": rpc_response("forest"),
        }
    )
    settings = ProbeSettings(max_workers=4, retry_delay=0.2)
    with ProbeSession(Prober(stub, settings), MethodCatalog(["eth_blockNumber"]), settings) as session:
        session.reconcile(["http://a", "http://b"])
        assert session.wait(WAIT)
        a, b = session.snapshot()

    assert a.results["eth_blockNumber"].outcome is ProbeOutcome.SUCCESS
    assert a.results["eth_blockNumber"].elapsed_ms >= 45.0
    assert a.identity_label == "lotus"
    assert b.results["eth_blockNumber"].outcome is ProbeOutcome.SUCCESS
    assert b.results["eth_blockNumber"].raw_result == "0x11"
    assert b.results["eth_blockNumber"].elapsed_ms >= 200.0 + 40.0
    assert b.results["eth_blockNumber"].attempts == 2
