from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from . import config
from .logging_utils import _scraper_event
from .utils import filename_timestamp, log_line, save_json_file, utc_timestamp


class JsonStorage:
    """Write record sets as pretty-printed JSON files under ``data_dir``."""

    def __init__(self, data_dir: Optional[Path] = None) -> None:
        self.data_dir = Path(data_dir) if data_dir is not None else config.DATA_DIR

    def path_for(
        self,
        prefix: str,
        *,
        timestamp: Optional[str] = None,
        fixed_name: Optional[str] = None,
    ) -> Path:
        if fixed_name:
            return self.data_dir / fixed_name
        stamp = filename_timestamp(timestamp or utc_timestamp())
        return self.data_dir / f"{prefix}-{stamp}.json"

    def write(
        self,
        payload: Any,
        prefix: str,
        *,
        timestamp: Optional[str] = None,
        fixed_name: Optional[str] = None,
    ) -> Path:
        path = self.path_for(prefix, timestamp=timestamp, fixed_name=fixed_name)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        save_json_file(path, payload)
        size_kb = path.stat().st_size / 1024
        count = len(payload) if isinstance(payload, (list, dict)) else None
        _scraper_event("storage", phase="write", path=str(path), items=count, size_kb=size_kb)
        log_line(f"[STORAGE] Saved {path} ({size_kb:.2f} KB)")
        return path


__all__ = ["JsonStorage"]
