"""Turn rendered listing rows into fixed-shape records."""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from bs4 import BeautifulSoup
from bs4.element import Comment, NavigableString, Tag

from . import schemas
from .cell_parser import (
    CellValue,
    parse_currency,
    parse_leading_int,
    parse_percent,
    parse_rank,
    slug_from_href,
)
from .logging_utils import _scraper_event
from .schemas import FieldRule, ListingSchema

Record = Dict[str, CellValue]

HTML_PARSER = "html5lib"


def _text(element: Optional[Tag]) -> Optional[str]:
    if element is None:
        return None
    return element.get_text().strip() or None


def _attr(element: Optional[Tag], name: Optional[str]) -> Optional[str]:
    if element is None or not name:
        return None
    value = element.get(name)
    if isinstance(value, list):
        value = " ".join(value)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _first_text_node(container: Tag) -> Optional[str]:
    """First non-blank direct text node; nested elements are skipped."""

    for node in container.children:
        if isinstance(node, Comment) or not isinstance(node, NavigableString):
            continue
        text = str(node).strip()
        if text:
            return text
    return None


def _fallback_identity(row: Tag, rule: FieldRule) -> Optional[str]:
    if not rule.fallback_selector:
        return None
    return _attr(row.select_one(rule.fallback_selector), rule.fallback_attr)


def extract_field(
    row: Tag, cells: Sequence[Tag], rule: FieldRule, timestamp: Optional[str]
) -> CellValue:
    """Read a single field from ``row`` according to ``rule``."""

    if rule.kind == schemas.TIMESTAMP:
        return timestamp

    if rule.cell is None:
        target: Optional[Tag] = row
    else:
        target = cells[rule.cell] if 0 <= rule.cell < len(cells) else None

    element = target
    if target is not None and rule.selector:
        element = target.select_one(rule.selector)

    if rule.kind == schemas.SLUG:
        slug = slug_from_href(_attr(element, rule.attr))
        return slug or _fallback_identity(row, rule)

    if element is None:
        return None

    if rule.kind == schemas.NAME:
        return _first_text_node(element)
    if rule.kind == schemas.SYMBOL:
        symbol = _text(element.select_one(rule.sub_selector)) if rule.sub_selector else None
        return symbol.lower() if symbol else None
    if rule.kind == schemas.ATTR:
        return _attr(element, rule.attr)
    if rule.kind == schemas.TEXT:
        return _text(element)
    if rule.kind == schemas.RANK:
        return parse_rank(_text(element))
    if rule.kind == schemas.LEADING_INT:
        # a zero rank is treated as no rank
        return parse_leading_int(_text(element)) or None
    if rule.kind == schemas.CURRENCY:
        return parse_currency(_text(element), _attr(element, rule.attr))
    if rule.kind == schemas.PERCENT:
        return parse_percent(_attr(element, rule.attr), rule.key or "usd")

    return None


def assemble_record(row: Tag, schema: ListingSchema, timestamp: Optional[str]) -> Record:
    """Build one record from ``row``; every schema field is always present."""

    record: Record = schema.empty_record()
    try:
        cells = row.select(schema.cell_selector)
    except Exception as exc:  # noqa: BLE001
        _scraper_event("error", phase="assemble", step="cells", error=str(exc))
        cells = []

    for rule in schema.fields:
        try:
            record[rule.name] = extract_field(row, cells, rule, timestamp)
        except Exception as exc:  # noqa: BLE001
            _scraper_event(
                "error",
                phase="assemble",
                schema=schema.name,
                field=rule.name,
                error=f"{type(exc).__name__}: {exc}",
            )
            record[rule.name] = None
    return record


def _row_is_visible(row: Tag, schema: ListingSchema) -> bool:
    if not schema.row_style_contains:
        return True
    style = _attr(row, "style") or ""
    return all(marker in style for marker in schema.row_style_contains)


def select_rows(soup: Any, schema: ListingSchema) -> List[Tag]:
    """Return the rows of ``soup`` that belong to the schema's table."""

    rows: List[Tag] = []
    for row in soup.select(schema.row_selector):
        if not _row_is_visible(row, schema):
            continue
        if schema.min_cells and len(row.select(schema.cell_selector)) < schema.min_cells:
            continue
        rows.append(row)
    return rows


def assemble_rows(html: str, schema: ListingSchema, timestamp: Optional[str]) -> List[Record]:
    """Parse an HTML snapshot and assemble every matching row."""

    soup = BeautifulSoup(html or "", HTML_PARSER)
    return [assemble_record(row, schema, timestamp) for row in select_rows(soup, schema)]


__all__ = [
    "Record",
    "extract_field",
    "assemble_record",
    "select_rows",
    "assemble_rows",
]
