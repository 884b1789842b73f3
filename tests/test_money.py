from decimal import Decimal

import pytest

from fee_ledger.core.money import format_amount, parse_amount, to_major


@pytest.mark.parametrize(
    "text,expected",
    [
        ("1250", 125000),
        ("1,250.50", 125050),
        (" 0.005 ", 1),
        ("0.004", 0),
        ("12.345", 1235),
        (Decimal("7.1"), 710),
    ],
)
def test_parse_amount(text, expected) -> None:
    assert parse_amount(text) == expected


@pytest.mark.parametrize("text", ["", "abc", "NaN", "Infinity", "1.2.3", "1e20", "-1e30"])
def test_parse_amount_rejects(text) -> None:
    with pytest.raises(ValueError):
        parse_amount(text)


def test_format_amount() -> None:
    assert to_major(123456) == Decimal("1234.56")
    assert format_amount(123450, symbol="₹") == "₹1,234.50"
    assert format_amount(-500, symbol="$") == "-$5.00"
