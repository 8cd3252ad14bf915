from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class RunStatus(str, Enum):
    DONE = "done"
    ABORTED = "aborted"
    CANCELLED = "cancelled"
    FATAL = "fatal"


@dataclass
class RunResult:
    """Outcome of one engine run.

    ``records`` always holds everything accumulated before the run ended,
    whatever the status.
    """

    status: RunStatus
    records: List[Dict[str, Any]] = field(default_factory=list)
    pages_fetched: int = 0
    last_cursor: Optional[int] = None
    sessions_opened: int = 0
    snapshots: int = 0
    error: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def is_fatal(self) -> bool:
        return self.status is RunStatus.FATAL

    def summary(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "records": len(self.records),
            "pages_fetched": self.pages_fetched,
            "last_cursor": self.last_cursor,
            "sessions_opened": self.sessions_opened,
            "snapshots": self.snapshots,
            "error": self.error,
            "error_code": self.error_code,
        }


__all__ = ["RunStatus", "RunResult"]
