# Overview: Integer-cents money arithmetic for cart previews and sale commits.

"""
Money rules (authoritative)

- Amounts are integer minor units (cents) everywhere. Decimal text only
  appears in parse_money / format_money.
- Tax rates are percentages held as Decimal (products store basis points,
  500 bps = 5%). No binary floats take part in the arithmetic.
- Line tax is computed from the line's own taxable base
  (subtotal - line discount) and rounded half away from zero; sale tax is
  the sum of line taxes, never a rate applied to the aggregate.
- Everything here is a preview: inputs are clamped, never rejected.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Union

RateLike = Union[int, str, Decimal, float]

_ONE = Decimal("1")
_HUNDRED = Decimal("100")
_NUMERIC_PREFIX = re.compile(r"^\s*([+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)")


@dataclass(frozen=True)
class TotalsLine:
    unit_price_cents: int
    quantity: int
    line_discount_cents: int = 0
    tax_rate_percent: RateLike = 0


@dataclass(frozen=True)
class LineAmounts:
    subtotal: int
    discount: int
    tax: int
    total: int


@dataclass(frozen=True)
class Totals:
    subtotal: int
    order_discount: int
    tax: int
    total: int

    def to_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal,
            "order_discount_cents": self.order_discount,
            "tax_cents": self.tax,
            "total_cents": self.total,
        }


def round_half_away(value: Decimal) -> int:
    """Round to a whole number of cents, ties away from zero."""
    return int(value.quantize(_ONE, rounding=ROUND_HALF_UP))


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def to_rate(value: RateLike | None) -> Decimal:
    if value is None:
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # str() keeps 7.25 as 7.25 instead of its binary expansion
        return Decimal(str(value))
    return Decimal(value)


def percent_to_bps(value: RateLike) -> int:
    return round_half_away(to_rate(value) * _HUNDRED)


def bps_to_percent(bps: int) -> Decimal:
    return Decimal(bps) / _HUNDRED


def compute_tax(taxable_cents: int, tax_rate_percent: RateLike) -> int:
    rate = to_rate(tax_rate_percent)
    if rate <= 0 or taxable_cents <= 0:
        return 0
    return round_half_away(Decimal(taxable_cents) * rate / _HUNDRED)


def compute_line(
    unit_price_cents: int,
    quantity: int,
    line_discount_cents: int = 0,
    tax_rate_percent: RateLike = 0,
) -> LineAmounts:
    """
    Amounts for one line. Non-positive quantities produce an all-zero line.
    The discount is clamped to [0, unit_price * quantity].
    """
    if quantity <= 0:
        return LineAmounts(subtotal=0, discount=0, tax=0, total=0)

    subtotal = unit_price_cents * quantity
    discount = clamp(line_discount_cents or 0, 0, max(subtotal, 0))
    tax = compute_tax(subtotal - discount, tax_rate_percent)
    return LineAmounts(
        subtotal=subtotal,
        discount=discount,
        tax=tax,
        total=subtotal - discount + tax,
    )


def calculate_totals(lines: Iterable[TotalsLine], order_discount_cents: int = 0) -> Totals:
    """
    Subtotal, effective order discount, tax and grand total for a cart.

    Lines with quantity <= 0 are left out. The order discount is clamped to
    [0, subtotal]; total = subtotal - order discount + tax.
    """
    subtotal = 0
    tax = 0
    for line in lines:
        if line.quantity <= 0:
            continue
        amounts = compute_line(
            line.unit_price_cents,
            line.quantity,
            line.line_discount_cents,
            line.tax_rate_percent,
        )
        subtotal += amounts.subtotal
        tax += amounts.tax

    order_discount = clamp(order_discount_cents or 0, 0, max(subtotal, 0))
    return Totals(
        subtotal=subtotal,
        order_discount=order_discount,
        tax=tax,
        total=subtotal - order_discount + tax,
    )


def parse_money(text) -> int:
    """
    Decimal text to cents, e.g. "10.50" -> 1050.

    Reads the leading number the way a lenient form field would ("12.5 USD"
    -> 1250). Anything without one, or non-finite, is 0.
    """
    if text is None:
        return 0
    if isinstance(text, bool):
        return 0
    if isinstance(text, (int, Decimal)):
        value = Decimal(text)
    else:
        match = _NUMERIC_PREFIX.match(str(text))
        if not match:
            return 0
        try:
            value = Decimal(match.group(1))
        except InvalidOperation:
            return 0
    if not value.is_finite():
        return 0
    try:
        return round_half_away(value * _HUNDRED)
    except InvalidOperation:
        # exponent beyond Decimal precision ("1e400")
        return 0


def format_money(cents: int) -> str:
    """Cents to plain decimal text: 1050 -> "10.50", -5 -> "-0.05"."""
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(int(cents)), 100)
    return f"{sign}{whole}.{frac:02d}"
