"""Command-line entrypoint for refreshing and inspecting case data."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Sequence

from httpx import HTTPError

from jobs.config import APP_NAME, APP_VERSION, Settings, load_settings, parse_duration
from jobs.messages import Messages, MsgId
from jobs.refresh import current_data
from pipelines.errors import CacheUnavailableError, CaseDataError
from pipelines.model import FinalizedDataPoint
from storage.cache import DataCache

logger = logging.getLogger(__name__)

COMMANDS = ("run", "cache")


def verbosity_to_level(verbosity: int) -> int:
    if verbosity <= -2:
        return logging.CRITICAL
    if verbosity == -1:
        return logging.ERROR
    if verbosity == 0:
        return logging.WARNING
    if verbosity == 1:
        return logging.INFO
    return logging.DEBUG


def configure_logging(verbosity: int) -> None:
    level = (os.getenv("LOG_LEVEL") or "").strip().upper() or verbosity_to_level(verbosity)
    logging.basicConfig(
        level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )


def format_summary(points: Sequence[FinalizedDataPoint], messages: Messages) -> list[str]:
    """Render the latest point with its change against the previous one."""

    if not points:
        return []
    latest = points[-1]
    previous = points[-2] if len(points) > 1 else None
    active_change = latest.active_cases - previous.active_cases if previous else None
    incidence_change = latest.incidence - previous.incidence if previous else None
    return [
        latest.date.isoformat(),
        messages.get(MsgId.CASES, latest.cases.total, latest.cases.increase),
        messages.get(MsgId.ACTIVE, latest.active_cases, active_change),
        messages.get(MsgId.DEATHS, latest.deaths.total, latest.deaths.increase),
        messages.get(MsgId.RECOVERED, latest.recoveries.total, latest.recoveries.increase),
        messages.get(
            MsgId.HOSPITALISED,
            latest.hospitalisations.total,
            latest.hospitalisations.increase,
        ),
        messages.get(MsgId.INCIDENCE, latest.incidence, incidence_change),
    ]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m jobs",
        description="Download, reconcile and summarize case counts with a 7-day incidence",
    )
    parser.add_argument("--version", action="version", version=f"{APP_NAME} {APP_VERSION}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser(
        "run", help="Print the latest figures (default when no command is given)"
    )
    noise = run_parser.add_mutually_exclusive_group()
    noise.add_argument(
        "-v", "--verbose", action="count", default=0, help="Print more logs, repeatable"
    )
    noise.add_argument(
        "-q", "--quiet", action="count", default=0, help="Print less logs, repeatable"
    )
    source = run_parser.add_mutually_exclusive_group()
    source.add_argument(
        "-f",
        "--force",
        "--download",
        action="store_true",
        help="Force download of new data before running",
    )
    source.add_argument(
        "-c",
        "--cache",
        "--offline",
        action="store_true",
        help="Force the use of cached data, never download",
    )
    run_parser.add_argument(
        "-s",
        "--stale-after",
        type=parse_duration,
        help="Consider cached data stale after this duration (e.g. '1 hour')",
    )
    run_parser.add_argument(
        "-t",
        "--timeout",
        type=parse_duration,
        help="Timeout for each source request (e.g. '10 seconds')",
    )
    run_parser.add_argument(
        "--incremental",
        action="store_true",
        help="Extend stale cached data from the feed instead of re-reading all sources",
    )
    run_parser.add_argument(
        "--no-summary", action="store_true", help="Refresh data without printing it"
    )

    cache_parser = subparsers.add_parser("cache", help="Operate on the cached data")
    cache_parser.add_argument(
        "action",
        choices=("list", "flush", "refresh"),
        help="list the cache, flush (delete) it, or refresh it regardless of age",
    )
    return parser


def _normalize_argv(argv: Sequence[str]) -> list[str]:
    args = list(argv)
    if not args or (args[0] not in COMMANDS and args[0] not in ("-h", "--help", "--version")):
        return ["run", *args]
    return args


def _run(args: argparse.Namespace, settings: Settings) -> int:
    settings = settings.with_overrides(stale_after=args.stale_after, timeout=args.timeout)
    points = current_data(
        settings, force=args.force, offline=args.cache, incremental=args.incremental
    )
    if not args.no_summary:
        for line in format_summary(points, Messages(settings.locale)):
            print(line)
    return 0


def _cache(args: argparse.Namespace, settings: Settings) -> int:
    cache = DataCache(settings.db_path)
    if args.action == "list":
        described = cache.describe()
        if described is not None:
            path, created_at, count = described
            print(f"{path}\t{created_at.isoformat()}\t{count}")
        return 0
    if args.action == "flush":
        return 0 if cache.remove() else 1
    current_data(settings, force=True, cache=cache)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(_normalize_argv(sys.argv[1:] if argv is None else argv))

    verbosity = (args.verbose - args.quiet) if args.command == "run" else 1
    configure_logging(verbosity)
    settings = load_settings()

    try:
        if args.command == "run":
            return _run(args, settings)
        return _cache(args, settings)
    except CacheUnavailableError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except (CaseDataError, HTTPError) as exc:
        logger.error("Could not produce case data: %s", exc)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
