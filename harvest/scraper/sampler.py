"""Incremental sampling of virtualized lists.

Virtualized tables only render the rows inside the viewport and reposition
them with a ``translateY`` transform, so there is no page to request. The
sampler focuses the list, presses ``ArrowDown`` a fixed number of times and
every ``snapshot_stride`` steps parses whatever rows are visible. Rows are
merged by identity key (last sighting wins); a post-pass sorts them by rank
and converts display text such as ``$1.2m`` into numbers.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Iterable, List, Optional

from . import config
from .assembler import Record, assemble_rows
from .cell_parser import parse_magnitude
from .error_codes import ErrorCode
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
    is_target_closed_error,
    view_is_closed,
    wait_seconds,
)
from .telemetry import RunTelemetry
from .utils import log_line

ADVANCE_KEY = "ArrowDown"


@dataclass(frozen=True)
class SamplerSettings:
    scroll_steps: int = 150
    snapshot_stride: int = 5
    step_delay: float = 0.1
    focus_settle: float = 0.5
    settle_seconds: float = 3.0
    stable_snapshots: int = 0
    retries: int = 2
    retry_cooldown: float = 5.0

    @classmethod
    def from_config(cls, **overrides: Any) -> "SamplerSettings":
        base = cls(
            scroll_steps=config.SCROLL_STEPS,
            snapshot_stride=config.SNAPSHOT_STRIDE,
            step_delay=config.SCROLL_STEP_DELAY_SECONDS,
            focus_settle=config.FOCUS_SETTLE_SECONDS,
            settle_seconds=config.PAGE_SETTLE_SECONDS,
            stable_snapshots=config.STABLE_SNAPSHOTS,
            retries=config.SAMPLER_RETRIES,
            retry_cooldown=config.SAMPLER_RETRY_COOLDOWN_SECONDS,
        )
        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"Unknown sampler settings: {sorted(unknown)}")
        return replace(base, **{k: v for k, v in overrides.items() if v is not None})


def _rank_sort_key(rank: Any) -> tuple:
    if isinstance(rank, bool) or rank is None:
        return (2, 0.0, "")
    if isinstance(rank, (int, float)):
        return (0, float(rank), "")
    return (1, 0.0, str(rank))


def sort_by_rank(records: Iterable[Record], rank_field: str) -> List[Record]:
    """Sort ascending by rank; non-numeric ranks follow, ``None`` ranks go last."""

    return sorted(records, key=lambda record: _rank_sort_key(record.get(rank_field)))


def finalize_records(records: Iterable[Record], schema: ListingSchema) -> List[Record]:
    """Rank-sort the accumulated rows and convert magnitude display text."""

    ordered = sort_by_rank(records, schema.rank_field)
    converted: List[Record] = []
    for record in ordered:
        parsed = dict(record)
        for name in schema.magnitude_fields:
            parsed[name] = parse_magnitude(record.get(name))
        converted.append(parsed)
    return converted


def merge_snapshot(
    accumulator: Dict[str, Record], records: Iterable[Record], identity_field: str
) -> int:
    """Merge ``records`` into ``accumulator``; return how many keys are new."""

    added = 0
    for record in records:
        key = record.get(identity_field)
        if key is None or key == "":
            continue
        key = str(key)
        if key not in accumulator:
            added += 1
        accumulator[key] = record
    return added


class VirtualListSampler:
    """Collect every row of a virtualized list by scrolling through it."""

    def __init__(
        self,
        sessions: SessionManager,
        schema: ListingSchema,
        settings: Optional[SamplerSettings] = None,
        *,
        telemetry: Optional[RunTelemetry] = None,
        cancel_event: Optional[threading.Event] = None,
        nav_timeout_seconds: Optional[int] = None,
        selector_timeout_seconds: Optional[int] = None,
    ) -> None:
        self.sessions = sessions
        self.schema = schema
        self.settings = settings or SamplerSettings.from_config()
        self.telemetry = telemetry
        self.cancel_event = cancel_event
        self.nav_timeout_ms = int((nav_timeout_seconds or config.NAV_TIMEOUT_SECONDS) * 1000)
        self.selector_timeout_ms = int(
            (selector_timeout_seconds or config.SELECTOR_TIMEOUT_SECONDS) * 1000
        )
        self.accumulator: Dict[str, Record] = {}
        self.snapshots = 0

    def snapshot(self, view: Any, timestamp: Optional[str]) -> int:
        """Parse the visible window and merge it; safe to call redundantly."""

        records = assemble_rows(view.content(), self.schema, timestamp)
        added = merge_snapshot(self.accumulator, records, self.schema.identity_field)
        self.snapshots += 1
        _scraper_event(
            "snapshot",
            index=self.snapshots,
            visible=len(records),
            added=added,
            total=len(self.accumulator),
        )
        if self.telemetry is not None:
            self.telemetry.add(
                "snapshot", "", {"visible": len(records), "added": added}
            )
        return added

    def _prepare(self, view: Any) -> None:
        container = self.schema.container_selector
        _scraper_event("nav", step="goto", url=self.schema.url)
        view.goto(self.schema.url, wait_until="networkidle", timeout=self.nav_timeout_ms)
        wait_seconds(view, self.settings.settle_seconds, self.cancel_event)
        view.wait_for_selector(container, timeout=self.selector_timeout_ms)
        view.click(container)
        wait_seconds(view, self.settings.focus_settle, self.cancel_event)

    def _sample(self, view: Any, timestamp: Optional[str]) -> None:
        settings = self.settings
        stride = max(1, settings.snapshot_stride)
        unchanged = 0

        self._prepare(view)
        for step in range(settings.scroll_steps):
            check_cancelled(self.cancel_event)
            view.keyboard.press(ADVANCE_KEY)
            wait_seconds(view, settings.step_delay, self.cancel_event)
            if step % stride != 0:
                continue

            added = self.snapshot(view, timestamp)
            if settings.stable_snapshots <= 0:
                continue
            unchanged = 0 if added else unchanged + 1
            if unchanged >= settings.stable_snapshots:
                _scraper_event(
                    "state",
                    phase="sampler",
                    kind="stable",
                    step=step,
                    unchanged_snapshots=unchanged,
                )
                break

    def _result(self, status: RunStatus, **extra: Any) -> RunResult:
        return RunResult(
            status=status,
            records=finalize_records(self.accumulator.values(), self.schema),
            sessions_opened=self.sessions.sessions_opened,
            snapshots=self.snapshots,
            **extra,
        )

    def _session_step(self, action, *args: Any) -> Any:  # noqa: ANN001
        try:
            return action(*args)
        except SessionError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise SessionError(f"Unable to open a view: {exc}") from exc

    def run(self, timestamp: Optional[str]) -> RunResult:
        """Sample the list, retrying the whole pass on failure."""

        max_attempts = max(0, self.settings.retries) + 1
        handle: Optional[SessionHandle] = None
        attempt = 0
        try:
            handle = self._session_step(self.sessions.open)
            while True:
                attempt += 1
                view = self._session_step(self.sessions.new_view, handle)
                try:
                    self._sample(view, timestamp)
                except RunCancelled:
                    raise
                except Exception as exc:  # noqa: BLE001
                    code = classify_error(exc)
                    log_line(f"[SAMPLER] Attempt {attempt}/{max_attempts} failed: {exc}")
                    if not decide_retry(attempt, max_attempts, exc, error_code=code, scope="sampler"):
                        return self._result(RunStatus.FATAL, error=str(exc), error_code=code)
                    wait_seconds(view, self.settings.retry_cooldown, self.cancel_event)
                    if view_is_closed(view) or is_target_closed_error(exc):
                        handle = self._session_step(self.sessions.recycle, handle)
                        continue
                    try:
                        view.close()
                    except Exception as close_exc:  # noqa: BLE001
                        log_line(f"[SAMPLER][WARN] Error closing failed view: {close_exc}")
                    continue

                log_line(
                    f"[SAMPLER] Collected {len(self.accumulator)} unique rows "
                    f"from {self.snapshots} snapshots"
                )
                return self._result(RunStatus.DONE)
        except SessionError as exc:
            return self._result(RunStatus.FATAL, error=str(exc), error_code=exc.error_code)
        except RunCancelled:
            return self._result(RunStatus.CANCELLED, error_code=ErrorCode.CANCELLED)
        finally:
            self.sessions.close(handle)


__all__ = [
    "ADVANCE_KEY",
    "SamplerSettings",
    "VirtualListSampler",
    "finalize_records",
    "merge_snapshot",
    "sort_by_rank",
]
