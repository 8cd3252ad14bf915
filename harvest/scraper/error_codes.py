from __future__ import annotations

"""Error code taxonomy for harvest failures.

Codes appear in structured log events, in run telemetry and on the typed run
result so a failed or aborted run can be explained after the fact.
"""


class ErrorCode:
    NAVIGATION_TIMEOUT = "navigation_timeout"
    ELEMENT_MISSING = "element_missing"
    PAGE_ERROR = "page_error"
    NETWORK = "network_error"
    HTTP_4XX = "http_4xx"
    HTTP_5XX = "http_5xx"
    MALFORMED_PAYLOAD = "malformed_payload"
    SESSION_START = "session_start_failed"
    API_EXHAUSTED = "api_exhausted"
    CANCELLED = "cancelled"
    INTERNAL = "internal_error"


class HarvestError(Exception):
    """Base error carrying a stable ``error_code``."""

    def __init__(self, error_code: str, message: str) -> None:
        super().__init__(message)
        self.error_code = error_code

    def __str__(self) -> str:  # pragma: no cover - inherited behaviour
        return str(self.args[0]) if self.args else ""


__all__ = ["ErrorCode", "HarvestError"]
