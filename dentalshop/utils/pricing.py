# dentalshop/utils/pricing.py
"""
Cart and order pricing.

Every amount is a Decimal quantized to centavos. Totals are always recomputed
from the lines, never patched incrementally.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Union

Amount = Union[Decimal, int, str]

CENT = Decimal("0.01")


def money(value: Amount) -> Decimal:
    """Quantize a currency amount to 2 places. Floats are refused to keep binary rounding out."""
    if isinstance(value, float):
        raise TypeError("Currency amounts must not be floats")
    amount = Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    if amount < 0:
        raise ValueError(f"Currency amount cannot be negative: {amount}")
    return amount


def unit_total(unit_price: Amount, inclusions: Iterable) -> Decimal:
    # Base price plus every selected inclusion, for a single unit
    return money(unit_price) + sum((money(inc.price) for inc in inclusions), Decimal("0.00"))


def line_total(line) -> Decimal:
    return unit_total(line.unit_price, line.selected_inclusions) * line.quantity


def cart_total(lines: Iterable) -> Decimal:
    return sum((line_total(line) for line in lines), Decimal("0.00"))


def to_minor_units(amount: Amount) -> int:
    # Payment providers expect integer centavos
    return int(money(amount) * 100)


def format_amount(amount: Amount, currency: str = "PHP") -> str:
    return f"{currency} {money(amount):,.2f}"
