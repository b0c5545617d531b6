# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""harlive CLI: load URLs one by one and dump their statistics as JSON.

Usage:
    harlive URL [URL ...] [--timeout MS] [--content] [--screenshot] [-o FILE]
    python -m harlive.cli URL [URL ...] [--config options.yaml] [--json-logs]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import replace
from pathlib import Path

from . import LoadResult
from .config import LoadOptions


def _require_cli_deps() -> None:
    """Check that CLI optional dependencies are installed."""
    try:
        import yaml  # noqa: F401
        from tabulate import tabulate  # noqa: F401
    except ImportError as e:
        print(
            f"Missing CLI dependency: {e.name}\nInstall with: pip install harlive[cli]",
            file=sys.stderr,
        )
        sys.exit(1)


def _validate_output_path(path_str: str | None) -> Path | None:
    """Return the output file path, creating its parent directory."""
    if not path_str:
        return None
    p = Path(path_str)
    if not p.parent.exists():
        p.parent.mkdir(parents=True, exist_ok=True)
    return p


def build_options(args: argparse.Namespace) -> LoadOptions:
    """Config file + env, then explicit flags on top."""
    from .config import load_options

    opts = load_options(args.config)
    if args.timeout is not None:
        opts = replace(opts, timeout=args.timeout)
    if args.content:
        opts = replace(opts, content=True)
    if args.screenshot:
        opts = replace(opts, screenshot=True)
    if args.screenshot_dir:
        opts = replace(opts, output_dir=Path(args.screenshot_dir))
    if args.headed:
        opts = replace(opts, browser=replace(opts.browser, headless=False))
    return opts


def result_to_dict(result: LoadResult) -> dict:
    data: dict = {"url": result.url, "index": result.index, "elapsed_ms": result.elapsed_ms}
    if result.timings:
        data["timings"] = result.timings
    if result.ok:
        stats = result.stats
        data["stats"] = stats.to_dict() if hasattr(stats, "to_dict") else stats
    else:
        data["error"] = {"kind": result.error_kind, "message": str(result.error)}
        report = getattr(result.error, "report", None)
        if report:
            data["error"]["report"] = report
    return data


def format_summary(results: list[LoadResult]) -> str:
    from tabulate import tabulate

    rows = []
    for r in results:
        entries = len(getattr(r.stats, "entries", ()) or ()) if r.ok else "-"
        status = "ok" if r.ok else r.error_kind
        rows.append([r.index, r.url, status, entries, f"{r.elapsed_ms:.0f}"])
    return tabulate(rows, headers=["#", "url", "status", "entries", "ms"])


def cmd_run(args: argparse.Namespace) -> int:
    """Load every URL and write results; returns the process exit code."""
    from .batch import run_batch

    output_path = _validate_output_path(args.output)
    try:
        options = build_options(args)
    except (OSError, ValueError) as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 2

    def _on_load(url: str, index: int, urls) -> None:
        print(f"[{index + 1}/{len(urls)}] {url}", file=sys.stderr)

    results = asyncio.run(run_batch(args.urls, options, on_load=_on_load))

    payload = json.dumps([result_to_dict(r) for r in results], ensure_ascii=False, indent=2, default=str)
    if output_path:
        output_path.write_text(payload)
        print(f"Saved to {output_path}", file=sys.stderr)
    else:
        print(payload)

    print("\n" + format_summary(results), file=sys.stderr)
    return 0 if all(r.ok for r in results) else 1


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    _require_cli_deps()
    parser = argparse.ArgumentParser(
        description="Load pages in isolated Chromium sessions and record CDP statistics",
        prog="harlive",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
examples:
  %(prog)s https://example.com                        JSON to stdout
  %(prog)s https://a.example https://b.example -o out.json
  %(prog)s https://example.com --timeout 10000 --content --screenshot""",
    )
    parser.add_argument("urls", nargs="+", metavar="URL", help="URLs to load, in order")
    parser.add_argument("-t", "--timeout", type=float, metavar="MS", help="Per-page timeout in milliseconds")
    parser.add_argument("-c", "--content", action="store_true", help="Capture response bodies")
    parser.add_argument("-s", "--screenshot", action="store_true", help="Save a PNG of each loaded page")
    parser.add_argument("--screenshot-dir", type=str, metavar="DIR", help="Screenshot directory (default: cwd)")
    parser.add_argument("-o", "--output", type=str, metavar="FILE", help="Write JSON results to FILE")
    parser.add_argument("--config", type=str, metavar="FILE", help="YAML options file")
    parser.add_argument("--headed", action="store_true", help="Show the browser window")
    parser.add_argument("--log-level", default="WARNING", help="Root log level (default: WARNING)")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines on stderr")
    args = parser.parse_args(argv)

    from .logging_config import configure

    configure(json_output=args.json_logs, level=args.log_level)

    try:
        code = cmd_run(args)
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
