"""Page-by-page acquisition over a numbered listing.

The controller walks a cursor from ``start_page`` to ``max_page``. Each page
is fetched with a small local retry budget; a page that still fails counts
towards a consecutive-failure threshold that aborts the run. A page with no
rows ends the run normally. Whatever was collected is always returned.
"""
from __future__ import annotations

import random
import threading
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Callable, List, Optional

from playwright.sync_api import TimeoutError as PWTimeout

from . import config
from .assembler import Record, assemble_rows
from .error_codes import ErrorCode, HarvestError
from .logging_utils import _scraper_event
from .results import RunResult, RunStatus
from .retry_policy import decide_retry
from .schemas import ListingSchema
from .session import (
    RunCancelled,
    SessionError,
    SessionHandle,
    SessionManager,
    check_cancelled,
    classify_error,
    wait_seconds,
)
from .telemetry import RunTelemetry
from .utils import log_line

PageFetcher = Callable[[Any, int, Optional[str]], List[Record]]


class PageState(str, Enum):
    READY = "ready"
    FETCHING = "fetching"
    SUCCESS = "success"
    RETRYING = "retrying"
    ABORTED = "aborted"
    DONE = "done"
    CANCELLED = "cancelled"


class PageFetchError(HarvestError):
    """A page kept failing after its local retry budget was spent."""

    def __init__(self, error_code: str, message: str, *, page_number: int, attempts: int) -> None:
        super().__init__(error_code, message)
        self.page_number = page_number
        self.attempts = attempts


@dataclass(frozen=True)
class PaginationSettings:
    start_page: int = 1
    max_page: int = 100
    recycle_every: int = 10
    page_retries: int = 2
    failure_threshold: int = 3
    delay_min: float = 2.0
    delay_max: float = 4.0
    page_retry_cooldown: float = 2.0
    failure_cooldown: float = 5.0

    @classmethod
    def from_config(cls, **overrides: Any) -> "PaginationSettings":
        """Build settings from ``config`` with non-``None`` overrides applied."""

        base = cls(
            start_page=config.START_PAGE,
            max_page=config.MAX_PAGE,
            recycle_every=config.RECYCLE_EVERY_PAGES,
            page_retries=config.PAGE_RETRIES,
            failure_threshold=config.FAILURE_THRESHOLD,
            delay_min=config.PAGE_DELAY_MIN_SECONDS,
            delay_max=config.PAGE_DELAY_MAX_SECONDS,
            page_retry_cooldown=config.PAGE_RETRY_COOLDOWN_SECONDS,
            failure_cooldown=config.FAILURE_COOLDOWN_SECONDS,
        )
        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"Unknown pagination settings: {sorted(unknown)}")
        return replace(base, **{k: v for k, v in overrides.items() if v is not None})


class ListingPageFetcher:
    """Load one numbered page into a view and assemble its rows."""

    def __init__(
        self,
        schema: ListingSchema,
        *,
        settle_seconds: Optional[float] = None,
        nav_timeout_seconds: Optional[int] = None,
        selector_timeout_seconds: Optional[int] = None,
    ) -> None:
        self.schema = schema
        self.settle_seconds = (
            config.PAGE_SETTLE_SECONDS if settle_seconds is None else settle_seconds
        )
        self.nav_timeout_ms = int((nav_timeout_seconds or config.NAV_TIMEOUT_SECONDS) * 1000)
        self.selector_timeout_ms = int(
            (selector_timeout_seconds or config.SELECTOR_TIMEOUT_SECONDS) * 1000
        )

    def __call__(self, view: Any, page_number: int, timestamp: Optional[str]) -> List[Record]:
        url = self.schema.page_url(page_number)
        _scraper_event("nav", step="goto", page=page_number, url=url)
        view.goto(url, wait_until="domcontentloaded", timeout=self.nav_timeout_ms)
        wait_seconds(view, self.settle_seconds)

        if view.query_selector(self.schema.container_selector) is None:
            log_line(f"[PAGE] Table not found on page {page_number}; treating as empty.")
            return []

        try:
            view.wait_for_selector(self.schema.row_selector, timeout=self.selector_timeout_ms)
        except PWTimeout as exc:
            raise HarvestError(
                ErrorCode.ELEMENT_MISSING,
                f"Rows did not appear on page {page_number}: {exc}",
            ) from exc

        rows = assemble_rows(view.content(), self.schema, timestamp)
        log_line(f"[PAGE] Page {page_number}: extracted {len(rows)} rows")
        return rows


class PaginationController:
    """Drive a ``SessionManager`` across a bounded range of logical pages."""

    def __init__(
        self,
        sessions: SessionManager,
        fetch_page: PageFetcher,
        settings: Optional[PaginationSettings] = None,
        *,
        telemetry: Optional[RunTelemetry] = None,
        cancel_event: Optional[threading.Event] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.sessions = sessions
        self.fetch_page = fetch_page
        self.settings = settings or PaginationSettings.from_config()
        self.telemetry = telemetry
        self.cancel_event = cancel_event
        self.rng = rng or random.Random()
        self.state = PageState.READY
        self.history: List[PageState] = []

    def _transition(self, state: PageState, **fields_: Any) -> None:
        self.state = state
        self.history.append(state)
        _scraper_event("state", phase="pagination", state=state.value, **fields_)

    def _record(self, status: str, reason: str, **meta: Any) -> None:
        if self.telemetry is not None:
            self.telemetry.add(status, reason, meta)

    def _fetch_with_retries(self, view: Any, cursor: int, timestamp: Optional[str]) -> List[Record]:
        max_attempts = max(0, self.settings.page_retries) + 1
        attempt = 0
        while True:
            attempt += 1
            self._transition(PageState.FETCHING, cursor=cursor, attempt=attempt)
            try:
                return self.fetch_page(view, cursor, timestamp)
            except Exception as exc:  # noqa: BLE001
                code = classify_error(exc)
                log_line(f"[PAGE] Error on page {cursor} (attempt {attempt}/{max_attempts}): {exc}")
                if not decide_retry(attempt, max_attempts, exc, error_code=code):
                    raise PageFetchError(
                        code,
                        f"Page {cursor} failed after {attempt} attempt(s): {exc}",
                        page_number=cursor,
                        attempts=attempt,
                    ) from exc
                self._transition(PageState.RETRYING, cursor=cursor, attempt=attempt, error_code=code)
                wait_seconds(view, self.settings.page_retry_cooldown, self.cancel_event)

    def _open_view(self, handle: Optional[SessionHandle]) -> tuple[SessionHandle, Any]:
        fresh: Optional[SessionHandle] = None
        try:
            fresh = self.sessions.recycle(handle) if handle is not None else self.sessions.open()
            return fresh, self.sessions.new_view(fresh)
        except Exception as exc:  # noqa: BLE001
            self.sessions.close(fresh)
            if isinstance(exc, SessionError):
                raise
            raise SessionError(f"Unable to open a view: {exc}") from exc

    def run(self, timestamp: Optional[str]) -> RunResult:
        """Fetch pages until the range ends, a page is empty, or failures pile up."""

        settings = self.settings
        records: List[Record] = []
        cursor = settings.start_page
        consecutive_failures = 0
        pages_fetched = 0
        pages_on_session = 0
        handle: Optional[SessionHandle] = None

        def _result(status: RunStatus, **extra: Any) -> RunResult:
            return RunResult(
                status=status,
                records=records,
                pages_fetched=pages_fetched,
                last_cursor=cursor,
                sessions_opened=self.sessions.sessions_opened,
                **extra,
            )

        try:
            handle, view = self._open_view(None)
            while True:
                check_cancelled(self.cancel_event)
                if cursor > settings.max_page:
                    self._transition(PageState.DONE, reason="max_page", cursor=cursor)
                    return _result(RunStatus.DONE)

                self._transition(PageState.READY, cursor=cursor)
                try:
                    rows = self._fetch_with_retries(view, cursor, timestamp)
                except PageFetchError as exc:
                    consecutive_failures += 1
                    self._record("page_failed", exc.error_code, page=cursor, attempts=exc.attempts)
                    log_line(
                        f"[PAGE] Page {cursor} failed ({consecutive_failures}/"
                        f"{settings.failure_threshold} consecutive): {exc}"
                    )
                    if consecutive_failures >= settings.failure_threshold:
                        self._transition(
                            PageState.ABORTED,
                            cursor=cursor,
                            consecutive_failures=consecutive_failures,
                        )
                        return _result(RunStatus.ABORTED, error=str(exc), error_code=exc.error_code)
                    wait_seconds(view, settings.failure_cooldown, self.cancel_event)
                    handle, view = self._open_view(handle)
                    pages_on_session = 0
                    continue

                consecutive_failures = 0
                self._transition(PageState.SUCCESS, cursor=cursor, rows=len(rows))
                if not rows:
                    self._record("page_empty", "end_of_data", page=cursor)
                    self._transition(PageState.DONE, reason="end_of_data", cursor=cursor)
                    return _result(RunStatus.DONE)

                records.extend(rows)
                pages_fetched += 1
                pages_on_session += 1
                self._record("page_ok", "", page=cursor, rows=len(rows))
                log_line(f"[PAGE] Progress: {len(records)} total rows")
                cursor += 1

                delay = self.rng.uniform(settings.delay_min, settings.delay_max)
                wait_seconds(view, delay, self.cancel_event)

                if (
                    settings.recycle_every > 0
                    and pages_on_session >= settings.recycle_every
                    and cursor <= settings.max_page
                ):
                    handle, view = self._open_view(handle)
                    pages_on_session = 0
        except SessionError as exc:
            log_line(f"[PAGE] Session failure, stopping at page {cursor}: {exc}")
            self._record("run_fatal", exc.error_code, page=cursor)
            return _result(RunStatus.FATAL, error=str(exc), error_code=exc.error_code)
        except RunCancelled:
            self._transition(PageState.CANCELLED, cursor=cursor)
            return _result(RunStatus.CANCELLED, error_code=ErrorCode.CANCELLED)
        finally:
            self.sessions.close(handle)


__all__ = [
    "PageState",
    "PageFetchError",
    "PaginationSettings",
    "ListingPageFetcher",
    "PaginationController",
]
