from __future__ import annotations

import pytest

from harvest.scraper import cell_parser


@pytest.mark.parametrize(
    "text, expected",
    [
        ("12.3k", 12_300),
        ("4.2m", 4_200_000),
        ("0.5b", 500_000_000),
        ("$1.2M", 1_200_000),
        ("  $7B ", 7_000_000_000),
        ("1,234.5", 1234.5),
        ("$ 98 765", 98_765),
    ],
)
def test_parse_magnitude_suffixes(text: str, expected: float) -> None:
    assert cell_parser.parse_magnitude(text) == pytest.approx(expected)


@pytest.mark.parametrize("text", [None, "", "   ", "$", "k", "n/a", "-", "nan", "inf", 12.5j])
def test_parse_magnitude_failure_is_none(text) -> None:
    assert cell_parser.parse_magnitude(text) is None


def test_parse_currency_prefers_raw_attribute() -> None:
    assert cell_parser.parse_currency("$1,234.50", "1234.5012") == pytest.approx(1234.5012)


def test_parse_currency_returns_non_numeric_raw_unchanged() -> None:
    assert cell_parser.parse_currency("$5", "pending") == "pending"


def test_parse_currency_from_display_text() -> None:
    assert cell_parser.parse_currency("$1,234.50") == pytest.approx(1234.5)
    assert cell_parser.parse_currency("€2.5k") == pytest.approx(2500)


def test_parse_currency_unparseable_text_is_kept() -> None:
    assert cell_parser.parse_currency("-") == "-"
    assert cell_parser.parse_currency("") is None
    assert cell_parser.parse_currency(None) is None


def test_parse_currency_rejects_non_finite_raw() -> None:
    assert cell_parser.parse_currency("$1", "NaN") == "NaN"


@pytest.mark.parametrize(
    "payload, expected",
    [
        ('{"usd": -1.25, "btc": 0.5}', -1.25),
        ({"usd": "3.5"}, 3.5),
        ('{"usd": "n/a"}', "n/a"),
        ('{"btc": 1}', None),
        ("not json", None),
        ("[1, 2]", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_percent(payload, expected) -> None:
    result = cell_parser.parse_percent(payload)
    if isinstance(expected, float):
        assert result == pytest.approx(expected)
    else:
        assert result == expected


def test_parse_percent_custom_key() -> None:
    assert cell_parser.parse_percent('{"usd": 1, "eur": 2}', key="eur") == 2


@pytest.mark.parametrize(
    "text, expected",
    [("1", 1), (" 1,024 ", 1024), ("2.5", 2.5), ("N/A", "N/A"), ("", None), (None, None)],
)
def test_parse_rank(text, expected) -> None:
    assert cell_parser.parse_rank(text) == expected


def test_parse_rank_returns_int_type() -> None:
    assert isinstance(cell_parser.parse_rank("42"), int)


@pytest.mark.parametrize(
    "text, expected",
    [("12.", 12), ("  7 Polymarket", 7), ("-3", -3), ("#1", None), ("", None), (None, None)],
)
def test_parse_leading_int(text, expected) -> None:
    assert cell_parser.parse_leading_int(text) == expected


@pytest.mark.parametrize(
    "href, expected",
    [
        ("/en/coins/bitcoin", "bitcoin"),
        ("https://www.coingecko.com/en/coins/ethereum/", "ethereum"),
        ("/en/coins/solana?ref=home", "solana"),
        ("/", None),
        ("", None),
        (None, None),
    ],
)
def test_slug_from_href(href, expected) -> None:
    assert cell_parser.slug_from_href(href) == expected


@pytest.mark.parametrize(
    "payload",
    [
        '{"usd": ' + "9" * 400 + "}",
        '{"usd": ' + "9" * 5000 + "}",
        "[" * 100_000 + "]" * 100_000,
        '{"usd": ' + "[" * 100_000 + "]" * 100_000 + "}",
        '{"usd": NaN}',
        '{"usd": Infinity}',
        b'{"usd": "\xff"}',
    ],
)
def test_parse_percent_hostile_payloads_are_none(payload) -> None:
    assert cell_parser.parse_percent(payload) is None


@pytest.mark.parametrize("text", ["1e308k", "9e307b", "1" + "0" * 400 + "m", "$" + "9" * 400])
def test_parse_magnitude_overflow_is_none(text: str) -> None:
    assert cell_parser.parse_magnitude(text) is None


def test_parse_leading_int_past_digit_limit_never_raises() -> None:
    result = cell_parser.parse_leading_int("9" * 10_000 + ". Polymarket")

    assert result is None or isinstance(result, int)


def test_parse_rank_huge_number_is_kept_as_text() -> None:
    text = "9" * 400

    assert cell_parser.parse_rank(text) == text
