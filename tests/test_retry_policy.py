from __future__ import annotations

import pytest

from harvest.scraper import retry_policy
from harvest.scraper.error_codes import ErrorCode


@pytest.fixture
def event_recorder(monkeypatch: pytest.MonkeyPatch) -> list[tuple[str, dict]]:
    events: list[tuple[str, dict]] = []

    def _record(event_phase: str, **fields: object) -> None:
        events.append((event_phase, fields))

    monkeypatch.setattr(retry_policy, "_scraper_event", _record)
    return events


@pytest.mark.parametrize(
    "attempt, expected, kind",
    [
        (1, True, "retryable"),
        (2, True, "retryable"),
        (3, False, "capped"),
        (5, False, "capped"),
    ],
)
def test_navigation_timeout_retry_limits(
    attempt: int, expected: bool, kind: str, event_recorder: list[tuple[str, dict]]
) -> None:
    result = retry_policy.decide_retry(attempt, 3, error_code=ErrorCode.NAVIGATION_TIMEOUT)
    assert result is expected
    assert len(event_recorder) == 1
    phase, fields = event_recorder[0]
    assert phase == "state"
    assert fields["phase"] == "retry_decision"
    assert fields["scope"] == "page"
    assert fields["error_code"] == ErrorCode.NAVIGATION_TIMEOUT
    assert fields["attempt"] == attempt
    assert fields["max_attempts"] == 3
    assert fields["will_retry"] is expected
    assert fields["kind"] == kind


@pytest.mark.parametrize("error_code", [ErrorCode.SESSION_START, ErrorCode.CANCELLED])
def test_non_retryable_error_codes(error_code: str, event_recorder: list[tuple[str, dict]]) -> None:
    assert error_code in retry_policy.NON_RETRYABLE_ERROR_CODES
    assert retry_policy.decide_retry(1, 3, RuntimeError("x"), error_code=error_code) is False
    _, fields = event_recorder[0]
    assert fields["kind"] == "non_retryable"
    assert fields["error_repr"] == "RuntimeError('x')"


@pytest.mark.parametrize(
    "error_code, expected_kind",
    [
        ("", "missing_error_code"),
        (None, "missing_error_code"),
        (ErrorCode.INTERNAL, "unknown"),
        (ErrorCode.MALFORMED_PAYLOAD, "unknown"),
    ],
)
def test_unclassified_errors_are_retried(
    error_code: str | None, expected_kind: str, event_recorder: list[tuple[str, dict]]
) -> None:
    assert retry_policy.decide_retry(1, 2, error_code=error_code) is True
    _, fields = event_recorder[0]
    assert fields["kind"] == expected_kind


def test_client_error_status(event_recorder: list[tuple[str, dict]]) -> None:
    assert retry_policy.decide_retry(1, 3, error_code=ErrorCode.HTTP_4XX, http_status=404, scope="trending")
    _, fields = event_recorder[0]
    assert fields["kind"] == "client_error"
    assert fields["scope"] == "trending"
    assert fields["http_status"] == 404


def test_linear_backoff() -> None:
    assert retry_policy.compute_linear_backoff_seconds(1, 2) == 2.0
    assert retry_policy.compute_linear_backoff_seconds(3, 2) == 6.0
    assert retry_policy.compute_linear_backoff_seconds(0, 2) == 2.0
