"""Run drivers and command-line entrypoint.

Each driver builds an explicit :class:`RunContext`, runs one acquisition
strategy, persists whatever records came back (an aborted run still writes its
partial results) and finalizes run telemetry. Only :func:`_cli_entrypoint`
turns the typed result into a process exit code.
"""
from __future__ import annotations

import argparse
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional

from . import config
from .config_validation import validate_settings, validate_timeouts
from .logging_utils import _scraper_event
from .pagination import ListingPageFetcher, PaginationController, PaginationSettings
from .results import RunResult, RunStatus
from .sampler import SamplerSettings, VirtualListSampler
from .schemas import SCHEMAS, get_schema
from .session import SessionManager
from .storage import JsonStorage
from .telemetry import RunTelemetry
from .trending_client import TrendingFetchError, fetch_trending
from .utils import ensure_dirs, log_line, setup_run_logger, utc_timestamp

TRENDING_FILE_NAME = "coingecko-trending.json"


@dataclass
class RunContext:
    """Acquisition time shared by every record of a run, plus the output sink."""

    timestamp: str
    sink: JsonStorage

    @classmethod
    def create(cls, data_dir: Optional[Path] = None) -> "RunContext":
        return cls(timestamp=utc_timestamp(), sink=JsonStorage(data_dir))


def _persist(
    context: RunContext,
    result: RunResult,
    prefix: str,
    *,
    fixed_name: Optional[str] = None,
) -> Optional[Path]:
    if not result.records and result.is_fatal:
        log_line(f"[RUN] Nothing to persist for {prefix} (status={result.status.value})")
        return None
    return context.sink.write(
        result.records, prefix, timestamp=context.timestamp, fixed_name=fixed_name
    )


def _finish(
    telemetry: RunTelemetry, result: RunResult, output: Optional[Path], **extra: Any
) -> RunResult:
    summary = result.summary()
    telemetry.finalize({**summary, "output": str(output) if output else None, **extra})
    _scraper_event("run", phase="finish", **summary)
    log_line(
        f"[RUN] status={result.status.value} records={len(result.records)} "
        f"output={output or '-'}"
    )
    return result


def run_listing_scrape(
    schema_name: str = "coingecko",
    *,
    settings: Optional[PaginationSettings] = None,
    context: Optional[RunContext] = None,
    sessions: Optional[SessionManager] = None,
    cancel_event: Optional[threading.Event] = None,
    prefix: Optional[str] = None,
) -> RunResult:
    """Scrape a numbered listing page by page and persist the rows."""

    setup_run_logger()
    schema = get_schema(schema_name)
    settings = validate_settings(settings or PaginationSettings.from_config(), "cli")
    context = context or RunContext.create()
    telemetry = RunTelemetry("pagination")
    _scraper_event(
        "run",
        phase="start",
        strategy="pagination",
        schema=schema.name,
        start_page=settings.start_page,
        max_page=settings.max_page,
        timestamp=context.timestamp,
    )

    with sessions or SessionManager() as manager:
        controller = PaginationController(
            manager,
            ListingPageFetcher(schema, nav_timeout_seconds=manager.nav_timeout_seconds),
            settings,
            telemetry=telemetry,
            cancel_event=cancel_event,
        )
        result = controller.run(context.timestamp)

    output = _persist(context, result, prefix or schema.name)
    return _finish(telemetry, result, output, schema=schema.name)


def run_virtual_list_scrape(
    schema_name: str = "defillama-prediction-markets",
    *,
    settings: Optional[SamplerSettings] = None,
    context: Optional[RunContext] = None,
    sessions: Optional[SessionManager] = None,
    cancel_event: Optional[threading.Event] = None,
    fixed_name: Optional[str] = "defillama-prediction-markets.json",
) -> RunResult:
    """Sample a virtualized list and persist the rank-sorted rows."""

    setup_run_logger()
    schema = get_schema(schema_name)
    settings = validate_settings(settings or SamplerSettings.from_config(), "cli")
    context = context or RunContext.create()
    telemetry = RunTelemetry("virtual_list")
    _scraper_event(
        "run",
        phase="start",
        strategy="virtual_list",
        schema=schema.name,
        scroll_steps=settings.scroll_steps,
        snapshot_stride=settings.snapshot_stride,
        timestamp=context.timestamp,
    )

    with sessions or SessionManager() as manager:
        sampler = VirtualListSampler(
            manager,
            schema,
            settings,
            telemetry=telemetry,
            cancel_event=cancel_event,
            nav_timeout_seconds=manager.nav_timeout_seconds,
        )
        result = sampler.run(context.timestamp)

    output = _persist(context, result, schema.name, fixed_name=fixed_name)
    return _finish(telemetry, result, output, schema=schema.name)


def run_trending(
    *,
    url: Optional[str] = None,
    retries: Optional[int] = None,
    context: Optional[RunContext] = None,
    **fetch_kwargs: Any,
) -> RunResult:
    """Fetch the trending document and persist it under a fixed name."""

    setup_run_logger()
    validate_timeouts("cli")
    context = context or RunContext.create()
    telemetry = RunTelemetry("trending")
    try:
        payload = fetch_trending(url or config.TRENDING_API_URL, retries=retries, **fetch_kwargs)
    except TrendingFetchError as exc:
        telemetry.add("api_failed", exc.error_code, {"http_status": exc.http_status})
        result = RunResult(status=RunStatus.FATAL, error=str(exc), error_code=exc.error_code)
        return _finish(telemetry, result, None)

    output = context.sink.write(payload, "coingecko-trending", fixed_name=TRENDING_FILE_NAME)
    telemetry.add("api_ok", "", {"coins": len(payload.get("coins") or [])})
    result = RunResult(status=RunStatus.DONE, records=[payload])
    return _finish(telemetry, result, output)


def _exit_code(result: RunResult) -> int:
    return 1 if result.is_fatal else 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="harvest", description="Harvest market listings")
    parser.add_argument("--data-dir", type=Path, default=None)
    sub = parser.add_subparsers(dest="command", required=True)

    listing = sub.add_parser("listing", help="Paginated listing scrape")
    listing.add_argument("--schema", choices=sorted(SCHEMAS), default="coingecko")
    listing.add_argument("--start-page", type=int, default=None)
    listing.add_argument("--max-page", type=int, default=None)
    listing.add_argument("--recycle-every", type=int, default=None)
    listing.add_argument("--page-retries", type=int, default=None)
    listing.add_argument("--failure-threshold", type=int, default=None)
    listing.add_argument("--delay-min", type=float, default=None)
    listing.add_argument("--delay-max", type=float, default=None)
    listing.add_argument("--page-retry-cooldown", type=float, default=None)
    listing.add_argument("--failure-cooldown", type=float, default=None)

    virtual = sub.add_parser("virtual", help="Virtualized list sampling")
    virtual.add_argument("--schema", choices=sorted(SCHEMAS), default="defillama-prediction-markets")
    virtual.add_argument("--scroll-steps", type=int, default=None)
    virtual.add_argument("--snapshot-stride", type=int, default=None)
    virtual.add_argument("--step-delay", type=float, default=None)
    virtual.add_argument("--stable-snapshots", type=int, default=None)
    virtual.add_argument("--retries", type=int, default=None)
    virtual.add_argument("--retry-cooldown", type=float, default=None)

    trending = sub.add_parser("trending", help="Fetch the trending JSON document")
    trending.add_argument("--url", default=None)
    trending.add_argument("--retries", type=int, default=None)

    for browser_parser in (listing, virtual):
        browser_parser.add_argument("--timeout", type=int, default=None, help="Navigation timeout (s)")
        browser_parser.add_argument("--headed", action="store_true", help="Show the browser window")
    return parser


def _sessions(args: argparse.Namespace) -> SessionManager:
    return SessionManager(
        headless=False if args.headed else None,
        timeout_seconds=args.timeout,
    )


def _cli_entrypoint(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.data_dir is not None:
        config.DATA_DIR = args.data_dir
        config.LOG_DIR = args.data_dir / "logs"
        config.RUNS_DIR = args.data_dir / "runs"
    ensure_dirs()

    try:
        settings = _settings_from_args(args)
    except ValueError as exc:
        log_line(f"[RUN] Invalid configuration: {exc}")
        return 2

    if args.command == "trending":
        result = run_trending(url=args.url, retries=args.retries)
    elif args.command == "listing":
        result = run_listing_scrape(args.schema, settings=settings, sessions=_sessions(args))
    else:
        result = run_virtual_list_scrape(args.schema, settings=settings, sessions=_sessions(args))
    return _exit_code(result)


def _settings_from_args(args: argparse.Namespace) -> Any:
    """Build and validate the settings for ``args.command``; ``ValueError`` if blocking."""

    if args.command == "trending":
        validate_timeouts("cli")
        return None
    if args.command == "listing":
        settings: Any = PaginationSettings.from_config(
            start_page=args.start_page,
            max_page=args.max_page,
            recycle_every=args.recycle_every,
            page_retries=args.page_retries,
            failure_threshold=args.failure_threshold,
            delay_min=args.delay_min,
            delay_max=args.delay_max,
            page_retry_cooldown=args.page_retry_cooldown,
            failure_cooldown=args.failure_cooldown,
        )
    else:
        settings = SamplerSettings.from_config(
            scroll_steps=args.scroll_steps,
            snapshot_stride=args.snapshot_stride,
            step_delay=args.step_delay,
            stable_snapshots=args.stable_snapshots,
            retries=args.retries,
            retry_cooldown=args.retry_cooldown,
        )
    return validate_settings(settings, "cli")


def main() -> None:  # pragma: no cover
    raise SystemExit(_cli_entrypoint())


if __name__ == "__main__":  # pragma: no cover
    main()

__all__ = [
    "RunContext",
    "run_listing_scrape",
    "run_virtual_list_scrape",
    "run_trending",
    "_cli_entrypoint",
    "main",
]
