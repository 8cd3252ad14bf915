from __future__ import annotations

from typing import Any

from .utils import log_line


def _format_value(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.3f}"
    return repr(value)


def _scraper_event(label: str = "", *, phase: str | None = None, **fields: Any) -> None:
    """Emit a structured ``[HARVEST][LABEL] key=value, ...`` log line.

    ``phase`` doubles as the label when no label is given; when both are
    provided the phase is kept in the payload so the stage is still visible.
    Fields are sorted so lines diff cleanly between runs.
    """

    try:
        event_label = label or (phase or "")
        if phase and label:
            fields.setdefault("phase", phase)
        payload = ", ".join(f"{k}={_format_value(v)}" for k, v in sorted(fields.items()))
        log_line(f"[HARVEST][{event_label.upper()}] {payload}")
    except Exception:
        # Never let logging break the scraper.
        return


__all__ = ["_scraper_event"]
