# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""SpendGuard CLI: analyze a saved page, or watch a live one.

Usage:
    python -m spendguard.cli analyze FILE --url URL [--at ISO] [--threshold P] [--format json|text]
    python -m spendguard.cli watch --url URL [--duration S] [--headed]
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import sys
from datetime import datetime
from pathlib import Path


def _require_cli_deps() -> None:
    """Check that CLI optional dependencies are installed."""
    try:
        from tabulate import tabulate  # noqa: F401
    except ImportError as e:
        print(
            f"Missing CLI dependency: {e.name}\nInstall with: pip install retio-spendguard[cli]",
            file=sys.stderr,
        )
        sys.exit(1)


def _parse_at(value: str | None) -> int | None:
    """ISO-8601 timestamp → ms epoch. Naive values are local time."""
    if not value:
        return None
    try:
        return int(datetime.fromisoformat(value).timestamp() * 1000)
    except ValueError:
        print(f"Error: --at expects an ISO-8601 timestamp, got {value!r}", file=sys.stderr)
        sys.exit(2)


@contextlib.contextmanager
def _spinner(msg: str):
    # Interactive stderr only; rich is optional
    if not sys.stderr.isatty():
        yield
        return
    try:
        from rich.console import Console
    except ImportError:
        print(msg, file=sys.stderr)
        yield
        return
    with Console(stderr=True).status(msg):
        yield


def _load_settings(args: argparse.Namespace):
    from .errors import SettingsError
    from .settings import load_settings

    try:
        settings = load_settings(args.config)
    except SettingsError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    if getattr(args, "threshold", None):
        settings = settings.model_copy(update={"intervention_threshold": args.threshold})
    return settings


def cmd_analyze(args: argparse.Namespace) -> None:
    """Analyze a saved HTML page as if it had been served from --url."""
    from .document import StaticDocument
    from .intervention_policy import should_intervene
    from .risk_scorer import explain_risk
    from .serializer import to_json, to_text
    from .signal_extractor import analyze_page

    path = Path(args.file)
    try:
        html = path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        print(f"Error: cannot read {path}: {e}", file=sys.stderr)
        sys.exit(1)

    settings = _load_settings(args)
    analysis = analyze_page(StaticDocument(html, args.url), now_ms=_parse_at(args.at))
    intervene = settings.enabled and should_intervene(analysis, settings.threshold)

    if args.format == "json":
        print(to_json(analysis, intervene=intervene))
        return

    _require_cli_deps()
    from tabulate import tabulate

    assessment = explain_risk(analysis)
    print(to_text(analysis, intervene=intervene, assessment=assessment))
    if assessment.factors:
        print()
        print(tabulate(list(assessment.factors), headers=["Factor", "Points"], tablefmt="simple"))


def cmd_watch(args: argparse.Namespace) -> None:
    """Open a live page in Chromium and guard it for --duration seconds."""
    from .browser_host import BrowserConfig, watch_page

    settings = _load_settings(args)
    config = BrowserConfig(headless=not args.headed)

    with _spinner(f"Watching {args.url}..."):
        result = asyncio.run(watch_page(args.url, settings=settings, duration_s=args.duration, config=config))

    if sys.stderr.isatty():
        print("Watch finished.", file=sys.stderr)
    daily = result.stats.get("dailyStats", {})
    rows = [
        ("Risk level", result.analysis.risk_level.value if result.analysis else "-"),
        ("Risk score", result.analysis.risk_score if result.analysis else "-"),
        ("Interventions shown", result.interventions),
        ("Significant changes", result.significant_changes),
        ("Ignored changes", result.ignored_changes),
        ("Cart interactions", daily.get("cartInteractions", 0)),
        ("Checkout attempts", daily.get("checkoutAttempts", 0)),
        ("Purchases prevented", daily.get("purchasesPrevented", 0)),
        ("Potential spend", f"${daily.get('totalPotentialSpend', 0):,.2f}"),
    ]
    _require_cli_deps()
    from tabulate import tabulate

    print(tabulate(rows, tablefmt="simple"))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="SpendGuard CLI",
        prog="python -m spendguard.cli",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines on stderr")
    parser.add_argument("--config", type=str, metavar="PATH", help="YAML settings file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_analyze = subparsers.add_parser(
        "analyze",
        help="Analyze a saved HTML page",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
examples:
  %(prog)s page.html --url https://www.amazon.com/dp/B0EXAMPLE
  %(prog)s cart.html --url https://shop.example/checkout --at 2025-06-07T23:30 --format json""",
    )
    p_analyze.add_argument("file", type=str, metavar="FILE", help="Saved HTML file")
    p_analyze.add_argument("--url", type=str, required=True, metavar="URL", help="URL the page was served from")
    p_analyze.add_argument("--at", type=str, metavar="ISO", help="Pretend the page was analyzed at this local time")
    p_analyze.add_argument("--threshold", choices=["low", "medium", "high"], help="Intervention threshold preset")
    p_analyze.add_argument("--format", choices=["json", "text"], default="text")

    p_watch = subparsers.add_parser("watch", help="Guard a live page in Chromium")
    p_watch.add_argument("--url", type=str, required=True, metavar="URL")
    p_watch.add_argument("--duration", type=float, default=60.0, metavar="S", help="Seconds to watch (default: 60)")
    p_watch.add_argument("--headed", action="store_true", help="Show the browser window")
    p_watch.add_argument("--threshold", choices=["low", "medium", "high"], help="Intervention threshold preset")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    from .errors import SpendGuardError
    from .logging_config import configure

    parser = _build_parser()
    args = parser.parse_args(argv)

    configure(json_output=args.json_logs, level="DEBUG" if args.verbose else "WARNING")

    commands = {"analyze": cmd_analyze, "watch": cmd_watch}
    try:
        commands[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)
    except SystemExit:
        raise
    except SpendGuardError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {type(e).__name__}: {e}", file=sys.stderr)
        if args.verbose:
            import traceback

            traceback.print_exc(file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
