"""Minor-unit money helpers. Amounts are stored as integers (e.g. paise); decimals are for display only."""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

from fee_ledger.core.config import settings

MINOR_UNITS_PER_MAJOR = 100
# Largest value a BigInteger amount column holds
MAX_MINOR_UNITS = 2**63 - 1


def parse_amount(value: Union[str, int, float, Decimal]) -> int:
    """Parse a major-unit amount ("1,250.50") into minor units, rounding half up.

    Raises ValueError when the text is not a finite number or does not fit MAX_MINOR_UNITS.
    """
    text = str(value).strip().replace(",", "")
    if not text:
        raise ValueError("Amount is required")
    try:
        major = Decimal(text)
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {value!r}")
    if not major.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    scaled = major * MINOR_UNITS_PER_MAJOR
    # Checked before quantize, which fails outright past the context precision
    if abs(scaled) > MAX_MINOR_UNITS:
        raise ValueError(f"Amount out of range: {value!r}")
    minor = scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(minor)


def to_major(amount_minor_units: int) -> Decimal:
    return (Decimal(amount_minor_units) / MINOR_UNITS_PER_MAJOR).quantize(Decimal("0.01"))


def format_amount(amount_minor_units: int, symbol: Optional[str] = None) -> str:
    if symbol is None:
        symbol = settings.currency_symbol
    major = to_major(amount_minor_units)
    sign = "-" if major < 0 else ""
    return f"{sign}{symbol}{abs(major):,.2f}"
