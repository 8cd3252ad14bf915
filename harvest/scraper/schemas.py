from __future__ import annotations

"""Field-extraction schemas for the supported listing tables.

A schema tells the record assembler where rows live, how to split a row into
cells and how each output field is read from those cells. Adding a column or
a new site is a schema change; the engines stay untouched.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple
from urllib.parse import urlencode

from . import config

# Rule kinds understood by ``assembler.extract_field``.
SLUG = "slug"
NAME = "name"
SYMBOL = "symbol"
ATTR = "attr"
TEXT = "text"
RANK = "rank"
LEADING_INT = "leading_int"
CURRENCY = "currency"
PERCENT = "percent"
TIMESTAMP = "timestamp"

RULE_KINDS = (SLUG, NAME, SYMBOL, ATTR, TEXT, RANK, LEADING_INT, CURRENCY, PERCENT, TIMESTAMP)


@dataclass(frozen=True)
class FieldRule:
    """How one output field is read from a row.

    ``cell`` indexes the row's cells; ``None`` means the row element itself.
    ``selector`` narrows to a descendant of that cell and ``attr`` names the
    attribute holding a link, image source or machine-readable value.
    ``fallback_selector``/``fallback_attr`` give a secondary row-level
    attribute used when the primary lookup yields nothing.
    """

    name: str
    kind: str
    cell: Optional[int] = None
    selector: Optional[str] = None
    attr: Optional[str] = None
    key: Optional[str] = None
    sub_selector: Optional[str] = None
    fallback_selector: Optional[str] = None
    fallback_attr: Optional[str] = None

    def __post_init__(self) -> None:
        if self.kind not in RULE_KINDS:
            raise ValueError(f"Unknown field rule kind {self.kind!r} for {self.name!r}")


@dataclass(frozen=True)
class ListingSchema:
    """Selectors and field rules for one listing table."""

    name: str
    url: str
    container_selector: str
    row_selector: str
    cell_selector: str
    fields: Tuple[FieldRule, ...]
    identity_field: str
    rank_field: str
    page_param: str = "page"
    min_cells: int = 0
    row_style_contains: Tuple[str, ...] = ()
    magnitude_fields: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(rule.name for rule in self.fields)

    def empty_record(self) -> dict:
        return {name: None for name in self.field_names}

    def page_url(self, page_number: int) -> str:
        return f"{self.url}?{urlencode({self.page_param: page_number})}"


COINGECKO_SCHEMA = ListingSchema(
    name="coingecko",
    url=config.COINGECKO_BASE_URL,
    container_selector="table.gecko-homepage-coin-table",
    row_selector="table.gecko-homepage-coin-table tbody tr",
    cell_selector="td",
    fields=(
        FieldRule(
            "id",
            SLUG,
            cell=2,
            selector="a",
            attr="href",
            fallback_selector="i[data-coin-id]",
            fallback_attr="data-coin-id",
        ),
        FieldRule("symbol", SYMBOL, cell=2, selector="a div div", sub_selector="div"),
        FieldRule("name", NAME, cell=2, selector="a div div"),
        FieldRule("image", ATTR, cell=2, selector="img", attr="src"),
        FieldRule("current_price", CURRENCY, cell=4, selector="span", attr="data-price-usd"),
        FieldRule("market_cap", CURRENCY, cell=10, selector="span", attr="data-price-usd"),
        FieldRule("market_cap_rank", RANK, cell=1),
        FieldRule(
            "fully_diluted_variation", CURRENCY, cell=11, selector="span", attr="data-price-usd"
        ),
        FieldRule("total_volume", CURRENCY, cell=9, selector="span", attr="data-price-usd"),
        FieldRule(
            "price_change_percentage_24h",
            PERCENT,
            cell=6,
            selector="span",
            attr="data-json",
            key="usd",
        ),
        FieldRule("last_updated", TIMESTAMP),
    ),
    identity_field="id",
    rank_field="market_cap_rank",
)

_DEFILLAMA_MAGNITUDE_COLUMNS = (
    "tvl",
    "volume_7d",
    "fees_7d",
    "revenue_7d",
    "mcap_tvl",
    "volume_30d",
    "fees_30d",
    "revenue_30d",
    "volume_24h",
    "fees_24h",
    "revenue_24h",
)

DEFILLAMA_SCHEMA = ListingSchema(
    name="defillama-prediction-markets",
    url=config.DEFILLAMA_PREDICTION_URL,
    container_selector="#table-wrapper",
    row_selector='#table-wrapper div[style*="position: absolute"]',
    cell_selector='div[data-chainpage="true"]',
    fields=(
        FieldRule("rank", LEADING_INT, cell=0, selector="span.shrink-0"),
        FieldRule("name", TEXT, cell=0, selector="a.text-sm"),
        FieldRule("logo", ATTR, cell=0, selector="img", attr="src"),
        FieldRule("chains", TEXT, cell=0, selector='span[class*="text-[0.7rem]"]'),
    )
    + tuple(
        FieldRule(column, TEXT, cell=index)
        for index, column in enumerate(_DEFILLAMA_MAGNITUDE_COLUMNS, start=1)
    ),
    identity_field="name",
    rank_field="rank",
    min_cells=2,
    row_style_contains=("translateY",),
    magnitude_fields=_DEFILLAMA_MAGNITUDE_COLUMNS,
)

SCHEMAS = {
    COINGECKO_SCHEMA.name: COINGECKO_SCHEMA,
    DEFILLAMA_SCHEMA.name: DEFILLAMA_SCHEMA,
}


def get_schema(name: str) -> ListingSchema:
    """Return the registered schema called ``name``."""

    try:
        return SCHEMAS[name]
    except KeyError:
        raise ValueError(f"Unknown listing schema {name!r}") from None


__all__ = [
    "FieldRule",
    "ListingSchema",
    "COINGECKO_SCHEMA",
    "DEFILLAMA_SCHEMA",
    "SCHEMAS",
    "get_schema",
    "RULE_KINDS",
]
