from __future__ import annotations

from typing import Optional

from .error_codes import ErrorCode
from .logging_utils import _scraper_event

RETRYABLE_ERROR_CODES = {
    ErrorCode.NAVIGATION_TIMEOUT,
    ErrorCode.ELEMENT_MISSING,
    ErrorCode.PAGE_ERROR,
    ErrorCode.NETWORK,
    ErrorCode.HTTP_5XX,
}

NON_RETRYABLE_ERROR_CODES = {
    # Run-scoped failures, retrying cannot help.
    ErrorCode.SESSION_START,
    ErrorCode.CANCELLED,
}


def compute_linear_backoff_seconds(attempt_index: int, step_seconds: float) -> float:
    """Return ``step_seconds * attempt`` for a 1-based attempt index."""

    return float(max(1, attempt_index) * max(0.0, step_seconds))


def decide_retry(
    attempt_index: int,
    max_attempts: int,
    error: BaseException | None = None,
    *,
    error_code: Optional[str] = None,
    http_status: Optional[int] = None,
    scope: str = "page",
) -> bool:
    """Decide whether a failed attempt should be retried.

    Unknown codes are retried: navigation and extraction failures are
    transient unless explicitly classified otherwise.
    """

    code = (error_code or "").strip()

    if attempt_index >= max_attempts:
        kind, will_retry = "capped", False
    elif code in NON_RETRYABLE_ERROR_CODES:
        kind, will_retry = "non_retryable", False
    elif code in RETRYABLE_ERROR_CODES:
        kind, will_retry = "retryable", True
    elif http_status is not None and 400 <= http_status < 500 and http_status != 429:
        kind, will_retry = "client_error", True
    else:
        kind, will_retry = ("unknown" if code else "missing_error_code"), True

    _scraper_event(
        "state",
        phase="retry_decision",
        scope=scope,
        kind=kind,
        attempt=attempt_index,
        max_attempts=max_attempts,
        error_code=code or None,
        http_status=http_status,
        will_retry=will_retry,
        error_repr=repr(error) if error is not None and kind != "retryable" else None,
    )
    return will_retry


__all__ = [
    "decide_retry",
    "compute_linear_backoff_seconds",
    "RETRYABLE_ERROR_CODES",
    "NON_RETRYABLE_ERROR_CODES",
]
