"""Total parsing helpers for rendered table cells.

Every public function here accepts whatever the markup produced (``None``,
empty strings, odd types) and degrades to ``None`` or the raw input instead
of raising.
"""
from __future__ import annotations

import json
import math
import re
from typing import Any, Optional, Union
from urllib.parse import urlparse

CellValue = Union[str, int, float, None]

_CURRENCY_SYMBOLS = re.compile(r"[$€£¥₹]")
_SEPARATORS = re.compile(r"[\s,]")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_SUFFIX_MULTIPLIERS = {"k": 1e3, "m": 1e6, "b": 1e9}


def _to_float(candidate: Any) -> Optional[float]:
    """Return a finite float for ``candidate`` or ``None``."""

    if candidate is None or isinstance(candidate, bool):
        return None
    try:
        value = float(candidate)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(value):
        return None
    return value


def _clean_text(text: Any) -> str:
    if text is None:
        return ""
    if not isinstance(text, str):
        text = str(text)
    return text.strip()


def parse_magnitude(text: Any) -> Optional[float]:
    """Parse display text such as ``$12.3k``, ``4.2M`` or ``1,234``.

    A trailing ``k``/``m``/``b`` scales by a thousand, million or billion.
    """

    cleaned = _CURRENCY_SYMBOLS.sub("", _clean_text(text)).strip()
    if not cleaned:
        return None

    multiplier = _SUFFIX_MULTIPLIERS.get(cleaned[-1].lower())
    if multiplier is not None:
        base = _to_float(_SEPARATORS.sub("", cleaned[:-1]))
        if base is None:
            return None
        scaled = base * multiplier
        return scaled if math.isfinite(scaled) else None

    return _to_float(_SEPARATORS.sub("", cleaned))


def parse_currency(text: Any, raw: Any = None) -> CellValue:
    """Parse a currency cell, preferring the machine-readable ``raw`` value.

    ``raw`` is the pre-computed numeric string some tables expose in a data
    attribute. If it is present but not numeric it is returned unchanged.
    Display text that cannot be parsed is returned as-is.
    """

    if raw is not None and raw != "":
        value = _to_float(raw)
        return value if value is not None else raw

    display = _clean_text(text)
    if not display:
        return None
    value = parse_magnitude(display)
    return value if value is not None else display


def parse_percent(payload: Any, key: str = "usd") -> CellValue:
    """Extract ``key`` from a small JSON payload such as ``{"usd": -1.25}``."""

    if payload is None or payload == "":
        return None
    if isinstance(payload, dict):
        data = payload
    else:
        try:
            data = json.loads(payload)
        except (TypeError, ValueError, RecursionError):
            return None
    if not isinstance(data, dict):
        return None

    candidate = data.get(key)
    if candidate is None:
        return None
    value = _to_float(candidate)
    if value is not None:
        return value
    return candidate if isinstance(candidate, str) else None


def parse_rank(text: Any) -> CellValue:
    """Return an integer rank, the raw text when non-numeric, or ``None``."""

    cleaned = _clean_text(text)
    if not cleaned:
        return None
    value = _to_float(cleaned.replace(",", ""))
    if value is None:
        return cleaned
    return int(value) if value.is_integer() else value


def parse_leading_int(text: Any) -> Optional[int]:
    """Parse the leading integer of ``text`` (``"12."`` -> 12)."""

    match = _LEADING_INT.match(_clean_text(text))
    if not match:
        return None
    try:
        return int(match.group(1))
    except ValueError:
        # past the interpreter's int digit limit
        return None


def slug_from_href(href: Any) -> Optional[str]:
    """Return the final non-empty path segment of a link target."""

    cleaned = _clean_text(href)
    if not cleaned:
        return None
    try:
        path = urlparse(cleaned).path
    except ValueError:
        path = cleaned
    segments = [segment for segment in path.split("/") if segment]
    return segments[-1] if segments else None


__all__ = [
    "CellValue",
    "parse_magnitude",
    "parse_currency",
    "parse_percent",
    "parse_rank",
    "parse_leading_int",
    "slug_from_href",
]
