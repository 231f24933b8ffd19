from decimal import Decimal

import pytest

from money import format_amount, from_cents, parse_amount, to_cents


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("156.75", Decimal("156.75")),
        ("1 234,50", Decimal("1234.50")),
        ("$12", Decimal("12.00")),
        (7, Decimal("7.00")),
        (0.1, Decimal("0.10")),
        (Decimal("3.5"), Decimal("3.50")),
    ],
)
def test_parse_amount_accepts_common_inputs(raw, expected) -> None:
    assert parse_amount(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "abc",
        "-1.00",
        "1.005",
        "1.000",
        "1,000",
        Decimal("2.500"),
        "NaN",
        "1e30",
        "10000000000",
        "99999999999999999999.99",
        True,
        None,
    ],
)
def test_parse_amount_rejects_invalid_inputs(raw) -> None:
    with pytest.raises(ValueError):
        parse_amount(raw)


def test_cents_conversion_is_exact() -> None:
    assert to_cents(Decimal("156.75")) == 15675
    assert from_cents(15675) == Decimal("156.75")
    assert format_amount(from_cents(15675)) == "156.75"
    assert format_amount(Decimal("0")) == "0.00"


def test_parse_amount_upper_bound() -> None:
    assert parse_amount("9999999999.99") == Decimal("9999999999.99")
    assert to_cents(parse_amount("9999999999.99")) == 999999999999
    with pytest.raises(ValueError, match="too large"):
        parse_amount("10000000000.00")
