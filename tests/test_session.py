from __future__ import annotations

import threading

import pytest

from harvest.scraper import config, session
from harvest.scraper.error_codes import ErrorCode, HarvestError


class FakePage:
    def __init__(self) -> None:
        self.timeouts: list[tuple[str, int]] = []
        self.waits: list[int] = []
        self.closed = False

    def set_default_navigation_timeout(self, ms: int) -> None:
        self.timeouts.append(("nav", ms))

    def set_default_timeout(self, ms: int) -> None:
        self.timeouts.append(("default", ms))

    def wait_for_timeout(self, ms: int) -> None:
        self.waits.append(ms)

    def is_closed(self) -> bool:
        return self.closed


class FakeContext:
    def __init__(self) -> None:
        self.init_scripts: list[str] = []
        self.timeouts: list[tuple[str, int]] = []
        self.closed = False
        self.pages: list[FakePage] = []

    def add_init_script(self, script: str) -> None:
        self.init_scripts.append(script)

    def set_default_navigation_timeout(self, ms: int) -> None:
        self.timeouts.append(("nav", ms))

    def set_default_timeout(self, ms: int) -> None:
        self.timeouts.append(("default", ms))

    def new_page(self) -> FakePage:
        page = FakePage()
        self.pages.append(page)
        return page

    def close(self) -> None:
        self.closed = True


class FakeBrowser:
    def __init__(self) -> None:
        self.contexts: list[tuple[dict, FakeContext]] = []
        self.closed = False

    def new_context(self, **kwargs) -> FakeContext:
        context = FakeContext()
        self.contexts.append((kwargs, context))
        return context

    def close(self) -> None:
        self.closed = True


class FakeChromium:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.launches: list[dict] = []
        self.browsers: list[FakeBrowser] = []

    def launch(self, **kwargs) -> FakeBrowser:
        if self.fail:
            raise RuntimeError("chromium missing")
        self.launches.append(kwargs)
        browser = FakeBrowser()
        self.browsers.append(browser)
        return browser


class FakeDriver:
    def __init__(self, chromium: FakeChromium) -> None:
        self.chromium = chromium
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True


class FakePlaywright:
    def __init__(self, fail: bool = False) -> None:
        self.driver = FakeDriver(FakeChromium(fail=fail))
        self.starts = 0

    def __call__(self) -> "FakePlaywright":
        return self

    def start(self) -> FakeDriver:
        self.starts += 1
        return self.driver


@pytest.fixture(autouse=True)
def _quiet_events(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(session, "_scraper_event", lambda *a, **k: None)
    monkeypatch.setattr(session, "log_line", lambda msg: None)


def test_open_configures_masked_browser() -> None:
    factory = FakePlaywright()
    manager = session.SessionManager(timeout_seconds=60, playwright_factory=factory)

    handle = manager.open()

    launch = factory.driver.chromium.launches[0]
    assert launch["headless"] is config.HEADLESS
    assert "--disable-blink-features=AutomationControlled" in launch["args"]
    kwargs, context = handle.browser.contexts[0]
    assert kwargs["viewport"] == {"width": 1400, "height": 900}
    assert "Chrome/122" in kwargs["user_agent"]
    assert context.init_scripts == [session.MASK_WEBDRIVER_SCRIPT]
    assert ("nav", 60_000) in context.timeouts
    assert manager.sessions_opened == 1
    assert manager.active is handle


def test_new_view_applies_timeouts_and_tracks_page() -> None:
    manager = session.SessionManager(timeout_seconds=5, playwright_factory=FakePlaywright())
    handle = manager.open()

    page = manager.new_view(handle)

    assert page.timeouts == [("nav", 5000), ("default", 5000)]
    assert handle.views == [page]


def test_close_is_idempotent() -> None:
    manager = session.SessionManager(playwright_factory=FakePlaywright())
    handle = manager.open()

    manager.close(handle)
    manager.close(handle)
    manager.close(None)

    assert handle.closed
    assert handle.browser.closed
    assert handle.context.closed
    assert manager.active is None
    with pytest.raises(session.SessionError):
        manager.new_view(handle)


def test_recycle_replaces_session_and_keeps_one_live() -> None:
    factory = FakePlaywright()
    manager = session.SessionManager(playwright_factory=factory)
    first = manager.open()

    second = manager.recycle(first)

    assert first.closed and first.browser.closed
    assert not second.closed
    assert manager.active is second
    assert manager.sessions_opened == 2
    assert factory.starts == 1


def test_open_closes_previous_session() -> None:
    manager = session.SessionManager(playwright_factory=FakePlaywright())
    first = manager.open()
    manager.open()
    assert first.closed


def test_open_failure_raises_session_error() -> None:
    manager = session.SessionManager(playwright_factory=FakePlaywright(fail=True))

    with pytest.raises(session.SessionError) as excinfo:
        manager.open()

    assert excinfo.value.error_code == ErrorCode.SESSION_START
    assert manager.sessions_opened == 0


def test_new_view_wraps_driver_errors() -> None:
    manager = session.SessionManager(playwright_factory=FakePlaywright())
    handle = manager.open()

    def _closed_target():
        raise session.PWError("Target page, context or browser has been closed")

    handle.context.new_page = _closed_target

    with pytest.raises(session.SessionError) as excinfo:
        manager.new_view(handle)

    assert excinfo.value.error_code == ErrorCode.SESSION_START
    assert "has been closed" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, session.PWError)
    assert handle.views == []


def test_nav_timeout_seconds_follows_constructor() -> None:
    assert session.SessionManager(timeout_seconds=5).nav_timeout_seconds == 5
    assert (
        session.SessionManager().nav_timeout_seconds == config.NAV_TIMEOUT_SECONDS
    )


def test_context_manager_shuts_down_driver() -> None:
    factory = FakePlaywright()
    with session.SessionManager(playwright_factory=factory) as manager:
        handle = manager.open()

    assert handle.closed
    assert factory.driver.stopped


def test_wait_seconds_uses_view_timer_and_honours_cancel() -> None:
    page = FakePage()
    session.wait_seconds(page, 1.5)
    assert page.waits == [1500]

    cancel = threading.Event()
    cancel.set()
    with pytest.raises(session.RunCancelled):
        session.wait_seconds(page, 1.0, cancel)
    assert page.waits == [1500]


def test_wait_seconds_sleeps_when_view_closed(monkeypatch: pytest.MonkeyPatch) -> None:
    slept: list[float] = []
    monkeypatch.setattr(session.time, "sleep", slept.append)
    page = FakePage()
    page.closed = True

    session.wait_seconds(page, 0.25)

    assert slept == [0.25]
    assert page.waits == []


def test_classify_error() -> None:
    assert session.classify_error(HarvestError(ErrorCode.ELEMENT_MISSING, "x")) == ErrorCode.ELEMENT_MISSING
    assert session.classify_error(session.PWTimeout("slow")) == ErrorCode.NAVIGATION_TIMEOUT
    assert session.classify_error(ConnectionError("reset")) == ErrorCode.NETWORK
    assert session.classify_error(KeyError("x")) == ErrorCode.INTERNAL
