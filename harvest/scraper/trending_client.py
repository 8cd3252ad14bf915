from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional

import requests

from . import config
from .error_codes import ErrorCode, HarvestError
from .logging_utils import _scraper_event
from .retry_policy import compute_linear_backoff_seconds, decide_retry
from .utils import log_line

STRIPPED_KEYS = ("nfts",)


class TrendingFetchError(HarvestError):
    def __init__(self, error_code: str, message: str, *, http_status: int | None = None) -> None:
        super().__init__(error_code, message)
        self.http_status = http_status


def _classify_http_status(status: Optional[int]) -> str:
    if status is None:
        return ErrorCode.INTERNAL
    if 400 <= status < 500:
        return ErrorCode.HTTP_4XX
    if status >= 500:
        return ErrorCode.HTTP_5XX
    return ErrorCode.INTERNAL


def build_http_session() -> requests.Session:
    """Return a requests session configured for JSON API calls."""

    session = requests.Session()
    session.headers.update(config.COMMON_HEADERS)
    return session


def _clean_payload(payload: Any) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise TrendingFetchError(
            ErrorCode.MALFORMED_PAYLOAD,
            f"Expected a JSON object, got {type(payload).__name__}",
        )
    return {key: value for key, value in payload.items() if key not in STRIPPED_KEYS}


def fetch_trending(
    url: str = config.TRENDING_API_URL,
    *,
    retries: Optional[int] = None,
    session: Optional[requests.Session] = None,
    backoff_step: Optional[float] = None,
    timeout: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Dict[str, Any]:
    """Fetch the trending document, dropping the ``nfts`` section.

    ``retries`` is the total number of attempts. The wait before attempt
    ``n + 1`` is ``backoff_step * n`` seconds. Raises ``TrendingFetchError``
    with ``ErrorCode.API_EXHAUSTED`` once every attempt has failed.
    """

    max_attempts = max(1, retries if retries is not None else config.TRENDING_RETRIES)
    step = config.TRENDING_BACKOFF_STEP_SECONDS if backoff_step is None else backoff_step
    timeout = timeout or config.TRENDING_TIMEOUT_SECONDS
    http = session or build_http_session()

    last_error: Optional[BaseException] = None
    last_status: Optional[int] = None

    for attempt in range(1, max_attempts + 1):
        status: Optional[int] = None
        log_line(f"[TRENDING] Attempt {attempt}/{max_attempts} url={url}")
        try:
            response = http.get(url, timeout=timeout)
            status = response.status_code
            response.raise_for_status()
            try:
                payload = response.json()
            except ValueError as exc:
                raise TrendingFetchError(
                    ErrorCode.MALFORMED_PAYLOAD, f"Invalid JSON body: {exc}", http_status=status
                ) from exc
            cleaned = _clean_payload(payload)
            _scraper_event(
                "trending",
                phase="fetch",
                status="ok",
                http_status=status,
                attempt=attempt,
                coins=len(cleaned.get("coins") or []),
                categories=len(cleaned.get("categories") or []),
            )
            return cleaned
        except TrendingFetchError as exc:
            last_error, last_status = exc, exc.http_status or status
            error_code = exc.error_code
        except (requests.Timeout, requests.ConnectionError) as exc:
            last_error, last_status = exc, status
            error_code = ErrorCode.NETWORK
        except requests.HTTPError as exc:
            status = getattr(exc.response, "status_code", status)
            last_error, last_status = exc, status
            error_code = _classify_http_status(status)
        except requests.RequestException as exc:
            last_error, last_status = exc, status
            error_code = ErrorCode.NETWORK

        log_line(f"[TRENDING] Attempt {attempt} failed: {last_error}")
        if not decide_retry(
            attempt,
            max_attempts,
            last_error,
            error_code=error_code,
            http_status=last_status,
            scope="trending",
        ):
            break
        delay = compute_linear_backoff_seconds(attempt, step)
        log_line(f"[TRENDING] Retrying in {delay:.1f} seconds")
        sleep(delay)

    _scraper_event("trending", phase="fetch", status="failed", http_status=last_status)
    raise TrendingFetchError(
        ErrorCode.API_EXHAUSTED,
        f"Failed after {max_attempts} attempts: {last_error}",
        http_status=last_status,
    )


__all__ = ["TrendingFetchError", "build_http_session", "fetch_trending"]
