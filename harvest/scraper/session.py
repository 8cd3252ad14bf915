"""Lifecycle of the Playwright rendering session used by the engines."""
from __future__ import annotations

import itertools
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from playwright.sync_api import (
    Browser,
    BrowserContext,
    Error as PWError,
    Page,
    TimeoutError as PWTimeout,
    sync_playwright,
)

from . import config
from .error_codes import ErrorCode, HarvestError
from .logging_utils import _scraper_event
from .utils import log_line

MASK_WEBDRIVER_SCRIPT = (
    "Object.defineProperty(navigator, 'webdriver', {get: () => undefined});"
)

_SESSION_IDS = itertools.count(1)


class SessionError(HarvestError):
    """Raised when a rendering session cannot be created."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.SESSION_START, message)


class RunCancelled(Exception):
    """Raised at a suspension point once the run's cancel event is set."""


def check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise RunCancelled()


def view_is_closed(view: Any) -> bool:
    if view is None:
        return True
    try:
        return bool(view.is_closed())
    except Exception:  # noqa: BLE001
        return True


def wait_seconds(
    view: Any, seconds: Optional[float], cancel_event: Optional[threading.Event] = None
) -> None:
    """Suspend for ``seconds`` on the view's timer.

    A closed view cannot host the timer, so the wait falls back to a plain
    sleep. The cancel event is honoured before and after the wait.
    """

    check_cancelled(cancel_event)
    if seconds is None or seconds <= 0:
        return
    if view_is_closed(view):
        time.sleep(seconds)
    else:
        view.wait_for_timeout(int(seconds * 1000))
    check_cancelled(cancel_event)


def is_target_closed_error(exc: BaseException) -> bool:
    text = str(exc).lower()
    return "target page, context or browser has been closed" in text or "target closed" in text


def classify_error(exc: BaseException) -> str:
    """Map an exception raised while driving a view to an ``ErrorCode``."""

    if isinstance(exc, HarvestError):
        return exc.error_code
    if isinstance(exc, PWTimeout):
        return ErrorCode.NAVIGATION_TIMEOUT
    if isinstance(exc, PWError):
        return ErrorCode.PAGE_ERROR
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return ErrorCode.NETWORK
    return ErrorCode.INTERNAL


@dataclass
class SessionHandle:
    """One live browser plus its context and the views opened on it."""

    session_id: int
    browser: Browser
    context: BrowserContext
    opened_at: float = field(default_factory=time.time)
    views: List[Page] = field(default_factory=list)
    closed: bool = False


class SessionManager:
    """Open, recycle and tear down exactly one rendering session at a time.

    Usable as a context manager; leaving the block always releases the
    browser and stops the Playwright driver, whatever the exit path.
    """

    def __init__(
        self,
        *,
        headless: Optional[bool] = None,
        timeout_seconds: Optional[int] = None,
        user_agent: Optional[str] = None,
        viewport: Optional[dict[str, int]] = None,
        playwright_factory: Callable[[], Any] = sync_playwright,
    ) -> None:
        self.headless = config.HEADLESS if headless is None else headless
        self.timeout_ms = int((timeout_seconds or config.NAV_TIMEOUT_SECONDS) * 1000)
        self.user_agent = user_agent or config.USER_AGENT
        self.viewport = dict(viewport or config.VIEWPORT)
        self._playwright_factory = playwright_factory
        self._playwright: Any = None
        self._active: Optional[SessionHandle] = None
        self.sessions_opened = 0

    @property
    def active(self) -> Optional[SessionHandle]:
        return self._active

    @property
    def nav_timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    def _ensure_driver(self) -> Any:
        if self._playwright is None:
            self._playwright = self._playwright_factory().start()
        return self._playwright

    def open(self) -> SessionHandle:
        """Launch a browser and a configured context.

        Any live session is closed first so a run never holds two.
        """

        if self._active is not None:
            self.close(self._active)

        browser = None
        try:
            driver = self._ensure_driver()
            browser = driver.chromium.launch(
                headless=self.headless,
                args=list(config.BROWSER_ARGS),
            )
            context = browser.new_context(
                user_agent=self.user_agent,
                locale="en-US",
                viewport=self.viewport,
            )
            context.add_init_script(MASK_WEBDRIVER_SCRIPT)
            context.set_default_navigation_timeout(self.timeout_ms)
            context.set_default_timeout(self.timeout_ms)
        except Exception as exc:  # noqa: BLE001
            if browser is not None:
                try:
                    browser.close()
                except Exception:  # noqa: BLE001
                    pass
            _scraper_event("error", phase="session", step="open", error=str(exc))
            raise SessionError(f"Unable to start rendering session: {exc}") from exc

        handle = SessionHandle(session_id=next(_SESSION_IDS), browser=browser, context=context)
        self._active = handle
        self.sessions_opened += 1
        _scraper_event(
            "session",
            step="open",
            session_id=handle.session_id,
            sessions_opened=self.sessions_opened,
        )
        return handle

    def new_view(self, handle: SessionHandle) -> Page:
        """Open a page on ``handle`` with the session's default timeouts."""

        if handle.closed:
            raise SessionError(f"Session {handle.session_id} is already closed")
        try:
            page = handle.context.new_page()
            if page is None:
                raise SessionError("Failed to create Playwright page")
            page.set_default_navigation_timeout(self.timeout_ms)
            page.set_default_timeout(self.timeout_ms)
        except SessionError:
            raise
        except Exception as exc:  # noqa: BLE001
            _scraper_event(
                "error", phase="session", step="new_view", session_id=handle.session_id, error=str(exc)
            )
            raise SessionError(f"Unable to open a view on session {handle.session_id}: {exc}") from exc
        handle.views.append(page)
        return page

    def close(self, handle: Optional[SessionHandle]) -> None:
        """Close ``handle``; closing twice is a no-op."""

        if handle is None or handle.closed:
            return
        handle.closed = True
        for label, resource in (("context", handle.context), ("browser", handle.browser)):
            try:
                resource.close()
            except Exception as exc:  # noqa: BLE001
                log_line(f"[SESSION][WARN] Error closing {label} of session {handle.session_id}: {exc}")
        handle.views.clear()
        if self._active is handle:
            self._active = None
        _scraper_event(
            "session",
            step="close",
            session_id=handle.session_id,
            lifetime_seconds=time.time() - handle.opened_at,
        )

    def recycle(self, handle: Optional[SessionHandle]) -> SessionHandle:
        """Destroy ``handle`` and return a freshly opened session."""

        _scraper_event(
            "session",
            step="recycle",
            session_id=handle.session_id if handle is not None else None,
        )
        self.close(handle)
        return self.open()

    def shutdown(self) -> None:
        """Release the active session and stop the Playwright driver."""

        self.close(self._active)
        if self._playwright is not None:
            try:
                self._playwright.stop()
            except Exception as exc:  # noqa: BLE001
                log_line(f"[SESSION][WARN] Error stopping Playwright driver: {exc}")
            self._playwright = None

    def __enter__(self) -> "SessionManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.shutdown()


__all__ = [
    "SessionManager",
    "SessionHandle",
    "SessionError",
    "RunCancelled",
    "MASK_WEBDRIVER_SCRIPT",
    "check_cancelled",
    "classify_error",
    "is_target_closed_error",
    "view_is_closed",
    "wait_seconds",
]
