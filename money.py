from decimal import Decimal, InvalidOperation
from typing import Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
# Amounts are numeric(12, 2): ten digits before the point.
MAX_AMOUNT = Decimal("10000000000")

AmountInput = Union[str, int, float, Decimal]


def parse_amount(value: AmountInput) -> Decimal:
    """
    Parse a user supplied amount into a non-negative Decimal with two places.

    Accepts strings such as "156.75", "1 234,50" or "$12", plain integers and
    Decimals. Floats are converted through their shortest repr so 0.1 stays 0.1.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError("Amount must be a number")
    if isinstance(value, Decimal):
        amount = value
    else:
        if isinstance(value, float):
            value = repr(value)
        clean = str(value).strip().replace("€", "").replace("$", "").replace(" ", "")
        clean = clean.replace(",", ".")
        if clean.count(".") > 1:
            parts = clean.split(".")
            clean = "".join(parts[:-1]) + "." + parts[-1]
        if not clean:
            raise ValueError("Amount is required")
        try:
            amount = Decimal(clean)
        except InvalidOperation as exc:
            raise ValueError("Invalid amount") from exc
    if not amount.is_finite():
        raise ValueError("Invalid amount")
    if amount < 0:
        raise ValueError("Amount must not be negative")
    if amount >= MAX_AMOUNT:
        raise ValueError("Amount is too large")
    if amount.as_tuple().exponent < -2:
        raise ValueError("Amount must have at most two decimal places")
    try:
        return amount.quantize(CENT)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc


def to_cents(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1")))


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def format_amount(amount: Decimal) -> str:
    return f"{amount.quantize(CENT):.2f}"
