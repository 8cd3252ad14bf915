from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from . import config

LOGGER = logging.getLogger("harvest")
_LOGGER_INITIALISED = False

_FORMATTER = logging.Formatter(
    fmt="[%(asctime)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def _configure_logger(log_path: Path | None) -> None:
    """Configure the shared logger for stdout and, optionally, ``log_path``."""

    global _LOGGER_INITIALISED

    for handler in list(LOGGER.handlers):
        LOGGER.removeHandler(handler)
        try:
            handler.close()
        except Exception:  # noqa: BLE001
            continue

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(_FORMATTER)
    LOGGER.addHandler(stream_handler)

    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(_FORMATTER)
        LOGGER.addHandler(file_handler)

    LOGGER.setLevel(logging.INFO)
    LOGGER.propagate = False

    _LOGGER_INITIALISED = True


def _ensure_logger() -> None:
    """Initialise a stdout-only logger lazily; run drivers attach a file."""

    if _LOGGER_INITIALISED:
        return
    _configure_logger(None)


def setup_run_logger() -> Path:
    """Rotate to a fresh timestamped log file for the current run."""

    ensure_dirs()
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    log_path = config.LOG_DIR / f"harvest_{timestamp}.log"
    _configure_logger(log_path)
    LOGGER.info("Logging to %s", log_path)
    return log_path


def ensure_dirs() -> None:
    """Ensure the data and log directories exist."""

    config.DATA_DIR.mkdir(parents=True, exist_ok=True)
    config.LOG_DIR.mkdir(parents=True, exist_ok=True)


def log_line(message: str) -> None:
    """Write a timestamped log line to stdout and the active log file."""

    _ensure_logger()
    LOGGER.info(message)


def utc_timestamp(moment: datetime | None = None) -> str:
    """Return an ISO-8601 UTC timestamp with millisecond precision and ``Z``."""

    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.") + (
        f"{moment.microsecond // 1000:03d}Z"
    )


def filename_timestamp(iso_timestamp: str) -> str:
    """Turn ``2024-01-02T03:04:05.678Z`` into ``2024-01-02T03-04-05``."""

    trimmed = iso_timestamp.split(".", 1)[0].rstrip("Z")
    return trimmed.replace(":", "-")


def save_json_file(path: Path, payload: Any) -> None:
    """Persist ``payload`` as pretty-printed JSON, atomically."""

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, ensure_ascii=False, indent=2)
    tmp_path.replace(path)


__all__ = [
    "ensure_dirs",
    "setup_run_logger",
    "log_line",
    "utc_timestamp",
    "filename_timestamp",
    "save_json_file",
]
