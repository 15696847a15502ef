# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""rpcprobe CLI."""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any
from urllib.parse import urlparse

from ..config import ProbeSettings, load_probe_settings
from ..errors import RpcProbeError
from ..http import create_default_http_client, dedupe_urls, is_valid_endpoint_url, normalize_endpoint_url
from ..log import setup_logging
from ..models import AggregateStats, Endpoint, ProbeOutcome, ProbeResult, SnapshotEvent, SnapshotEventKind
from ..rpc.catalog import DEFAULT_CATALOG, DEFAULT_ENDPOINTS, MethodCatalog, load_catalog
from ..runtime import RpcProbe

CLI_TEXT_TRUNCATION_BYTES = 4096


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Concurrent JSON-RPC latency prober")
    parser.add_argument(
        "urls",
        nargs="*",
        help="Endpoint URLs to probe (defaults to the built-in public endpoints)",
    )
    parser.add_argument(
        "-m",
        "--method",
        dest="methods",
        action="append",
        default=None,
        help="Probe only this method (repeatable)",
    )
    parser.add_argument("--catalog", help="JSON file with methods and their params")
    parser.add_argument("--json", action="store_true", help="Output JSON instead of a table")
    parser.add_argument("--timeout", type=float, default=None, help="Per-request timeout in seconds")
    parser.add_argument("--workers", type=int, default=None, help="Maximum concurrent requests per endpoint")
    parser.add_argument(
        "--include-errors",
        action="store_true",
        help="Count failed calls in the mean/median columns",
    )
    parser.add_argument(
        "--ignore-ssl-errors",
        action="store_true",
        help="Skip TLS verification (useful for lab/self-signed endpoints)",
    )
    parser.add_argument("--progress", action="store_true", help="Report each completed probe on stderr")
    return parser


def _truncate_text_bytes(text: str, max_bytes: int) -> str:
    raw = text.encode("utf-8")
    if len(raw) <= max_bytes:
        return text
    suffix = "...[truncated]"
    suffix_bytes = suffix.encode("utf-8")
    keep = max_bytes - len(suffix_bytes)
    if keep <= 0:
        return suffix_bytes[:max_bytes].decode("utf-8", errors="ignore")
    prefix = raw[:keep].decode("utf-8", errors="ignore")
    return prefix + suffix


def _truncate_for_cli(value: Any, *, max_bytes: int) -> Any:
    """Truncate large strings (raw RPC results can be whole blocks) in JSON output."""
    if isinstance(value, str):
        return _truncate_text_bytes(value, max_bytes)
    if isinstance(value, dict):
        return {k: _truncate_for_cli(v, max_bytes=max_bytes) for k, v in value.items()}
    if isinstance(value, list):
        return [_truncate_for_cli(v, max_bytes=max_bytes) for v in value]
    return value


def _resolve_urls(raw_urls: list[str]) -> list[str]:
    if not raw_urls:
        return [url for _, url in DEFAULT_ENDPOINTS]
    urls: list[str] = []
    for raw in raw_urls:
        url = normalize_endpoint_url(raw)
        if not is_valid_endpoint_url(url):
            print(f"Skipping invalid endpoint URL: {raw}", file=sys.stderr)
            continue
        urls.append(url)
    return dedupe_urls(urls)


def _resolve_catalog(args: argparse.Namespace) -> MethodCatalog:
    catalog = load_catalog(args.catalog) if args.catalog else DEFAULT_CATALOG
    if args.methods:
        catalog = MethodCatalog(args.methods, catalog.params)
    return catalog


def format_cell(result: ProbeResult | None) -> str:
    if result is None or result.elapsed_ms is None:
        return "pending"
    if result.outcome is ProbeOutcome.SUCCESS:
        return f"{result.elapsed_ms:.2f} ms"
    return f"ERR {result.message} ({result.elapsed_ms:.2f} ms)"


def _column_labels(rows: list[Endpoint]) -> list[str]:
    """Hostnames, widened to host+path and then the full URL where they would collide."""
    hosts = [urlparse(row.url).hostname or row.url for row in rows]
    labels = []
    for row, host in zip(rows, hosts):
        if hosts.count(host) > 1:
            parsed = urlparse(row.url)
            host = f"{parsed.netloc}{parsed.path}".rstrip("/") or row.url
        labels.append(host)
    return [row.url if labels.count(label) > 1 else label for row, label in zip(rows, labels)]


def render_table(rows: list[Endpoint], catalog: MethodCatalog, aggregates: list[AggregateStats]) -> str:
    by_method = {agg.method: agg for agg in aggregates}
    header = ["Method", *_column_labels(rows), "Mean", "Median"]
    body: list[list[str]] = []
    for method in catalog:
        agg = by_method.get(method) or AggregateStats(method=method)
        body.append(
            [
                method,
                *(format_cell(row.results.get(method)) for row in rows),
                agg.mean_display,
                agg.median_display,
            ]
        )
    widths = [max(len(line[i]) for line in [header, *body]) for i in range(len(header))]
    lines = ["  ".join(cell.ljust(widths[i]) for i, cell in enumerate(line)).rstrip() for line in [header, *body]]
    lines.insert(1, "  ".join("-" * w for w in widths))
    lines.append("")
    for row in rows:
        lines.append(f"{row.url}: {row.identity_label}")
    return "\n".join(lines)


def _print_json(rows: list[Endpoint], catalog: MethodCatalog, aggregates: list[AggregateStats]) -> None:
    payload = {
        "methods": list(catalog.methods),
        "endpoints": [row.to_dict(catalog.methods) for row in rows],
        "aggregates": [agg.to_dict() for agg in aggregates],
    }
    json.dump(_truncate_for_cli(payload, max_bytes=CLI_TEXT_TRUNCATION_BYTES), sys.stdout, indent=2, sort_keys=True)
    sys.stdout.write("\n")


def _progress_printer(total: int):
    done = 0

    def _listener(event: SnapshotEvent) -> None:
        nonlocal done
        if event.kind is not SnapshotEventKind.RESULT:
            return
        done += 1
        row = next((r for r in event.snapshot if r.url == event.url), None)
        result = row.results.get(event.method or "") if row else None
        print(f"[{done}/{total}] {event.url} {event.method}: {format_cell(result)}", file=sys.stderr)

    return _listener


def main(argv: list[str] | None = None) -> int:
    setup_logging()
    parser = build_parser()
    args = parser.parse_args(argv)

    settings: ProbeSettings = load_probe_settings()
    if args.ignore_ssl_errors:
        settings.verify_ssl = False
    if args.timeout is not None and args.timeout > 0:
        settings.timeout = args.timeout
    if args.workers is not None and args.workers > 0:
        settings.max_workers = args.workers

    try:
        catalog = _resolve_catalog(args)
    except RpcProbeError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    urls = _resolve_urls(args.urls)
    if not urls:
        print("error: no valid endpoint URLs", file=sys.stderr)
        return 2

    http_client = create_default_http_client(settings)
    with RpcProbe(http_client=http_client, settings=settings, catalog=catalog) as probe:
        if args.progress:
            probe.session.subscribe(_progress_printer(len(urls) * len(catalog)))
        rows = probe.run(urls)
        aggregates = probe.aggregates(include_errors=True if args.include_errors else None)

    if args.json:
        _print_json(rows, catalog, aggregates)
    else:
        print(render_table(rows, catalog, aggregates))

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
