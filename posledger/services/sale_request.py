# Overview: Turns a POS draft cart into an immutable sale-creation request.

"""
The builder is pure: no database access, no app context required.

It never trusts the cart's preview numbers. Line discounts are re-clamped
against each line's own subtotal and the order discount is clamped against
a freshly recomputed subtotal. The ledger re-prices again from current
product terms at commit time; the request only carries quantities and
discounts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

from ..errors import ValidationError
from ..models.sales import PAYMENT_METHODS
from ..money import TotalsLine, calculate_totals, clamp, parse_money
from ..validation import enforce_rules_quantity


@dataclass
class DraftLine:
    """One cart row as the cashier sees it. Mutable until commit."""
    product_id: int
    quantity: int
    unit_price_cents: int = 0
    line_discount_cents: int = 0


@dataclass
class SaleDraft:
    payment_method: str
    lines: list[DraftLine] = field(default_factory=list)
    sale_number: Optional[str] = None
    customer_name: Optional[str] = None
    order_discount_text: str = ""
    note: Optional[str] = None


@dataclass(frozen=True)
class CreateSaleLine:
    product_id: int
    quantity: int
    discount_cents: int = 0


@dataclass(frozen=True)
class CreateSaleRequest:
    payment_method: str
    lines: tuple[CreateSaleLine, ...]
    sale_number: Optional[str] = None
    customer_name: Optional[str] = None
    discount_cents: int = 0
    note: Optional[str] = None


def normalize_customer_name(name: Optional[str]) -> Optional[str]:
    if name is None:
        return None
    name = name.strip()
    return name or None


def validate_payment_method(method: Optional[str]) -> str:
    if method not in PAYMENT_METHODS:
        raise ValidationError(
            f"Unknown payment method {method!r}",
            details={"allowed": list(PAYMENT_METHODS)},
        )
    return method


def build_sale_request(draft: SaleDraft) -> CreateSaleRequest:
    """
    Raises:
        ValidationError: unknown payment method, no line with quantity > 0,
            or a quantity above MAX_QUANTITY
    """
    payment_method = validate_payment_method(draft.payment_method)

    kept = [line for line in draft.lines if line.quantity > 0]
    if not kept:
        raise ValidationError("At least one line with quantity > 0 is required")
    for line in kept:
        enforce_rules_quantity(line.quantity)

    lines = tuple(
        CreateSaleLine(
            product_id=line.product_id,
            quantity=line.quantity,
            discount_cents=clamp(line.line_discount_cents, 0, max(line.unit_price_cents * line.quantity, 0)),
        )
        for line in kept
    )

    totals = calculate_totals(
        TotalsLine(unit_price_cents=line.unit_price_cents, quantity=line.quantity)
        for line in kept
    )
    order_discount = clamp(parse_money(draft.order_discount_text), 0, totals.subtotal)

    sale_number = draft.sale_number.strip() if draft.sale_number else None

    return CreateSaleRequest(
        payment_method=payment_method,
        lines=lines,
        sale_number=sale_number or None,
        customer_name=normalize_customer_name(draft.customer_name),
        discount_cents=order_discount,
        note=draft.note.strip() if draft.note and draft.note.strip() else None,
    )


def generate_sale_number(now: Optional[datetime] = None, prefix: str = "INV") -> str:
    """
    Display-style number, e.g. INV-20261019-143005.

    Second granularity: two sales in the same second get the same number,
    so this is a suggestion for the till screen, not a key.
    """
    now = now or datetime.now()
    return f"{prefix}-{now:%Y%m%d}-{now:%H%M%S}"


def request_lines_by_product(lines: Sequence[CreateSaleLine]) -> dict[int, int]:
    """Total requested quantity per product id, in first-seen order."""
    totals: dict[int, int] = {}
    for line in lines:
        totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
    return totals
