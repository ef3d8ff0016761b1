# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..errors import InsufficientStock, NotFound
from ..extensions import db
from ..models import Product, StockMovement
from ..time_utils import utcnow
from ..validation import enforce_rules_adjustment
from .concurrency import begin_write, lock_for_update, run_with_retry
"""
Inventory invariants (authoritative)

- Product.stock_quantity is the on-hand figure and never goes negative.
- Every change to it writes a StockMovement in the same DB transaction.
- debit_stock / credit_stock do NOT commit: they compose into the caller's
  unit of work (sale create, refund, void). adjust_stock is its own unit.
- Low stock means reorder_level > 0 AND stock_quantity <= reorder_level.
  It is always counted from current rows, never cached.
"""

MOVEMENT_SALE = "SALE"
MOVEMENT_REFUND = "REFUND"
MOVEMENT_VOID = "VOID"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"


def lookup_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFound(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def _record_movement(
    product: Product,
    *,
    movement_type: str,
    quantity_delta: int,
    reason: str | None = None,
    ref: str | None = None,
    sale_id: int | None = None,
) -> StockMovement:
    movement = StockMovement(
        product_id=product.id,
        movement_type=movement_type,
        quantity_delta=quantity_delta,
        reason=reason,
        ref=ref,
        sale_id=sale_id,
        occurred_at=utcnow(),
    )
    db.session.add(movement)
    return movement


def debit_stock(
    product: Product,
    quantity: int,
    *,
    movement_type: str = MOVEMENT_SALE,
    reason: str | None = None,
    ref: str | None = None,
    sale_id: int | None = None,
) -> StockMovement:
    """
    Take quantity off the shelf. Caller holds the row lock and commits.

    Raises:
        InsufficientStock: if quantity exceeds stock_quantity
    """
    if quantity > product.stock_quantity:
        raise InsufficientStock(
            f"Insufficient stock for {product.sku}",
            details={
                "product_id": product.id,
                "sku": product.sku,
                "requested_quantity": quantity,
                "stock_quantity": product.stock_quantity,
            },
        )
    product.stock_quantity -= quantity
    return _record_movement(
        product,
        movement_type=movement_type,
        quantity_delta=-quantity,
        reason=reason,
        ref=ref,
        sale_id=sale_id,
    )


def credit_stock(
    product: Product,
    quantity: int,
    *,
    movement_type: str,
    reason: str | None = None,
    ref: str | None = None,
    sale_id: int | None = None,
) -> StockMovement:
    """Put quantity back on the shelf. Caller holds the row lock and commits."""
    product.stock_quantity += quantity
    return _record_movement(
        product,
        movement_type=movement_type,
        quantity_delta=quantity,
        reason=reason,
        ref=ref,
        sale_id=sale_id,
    )


def adjust_stock(product_id: int, delta: int, reason: str, ref: str | None = None) -> dict:
    """
    Manual inventory correction outside the sale lifecycle.

    Returns the product view after the change.

    Raises:
        ValidationError: zero delta or blank reason
        NotFound: unknown product
        InsufficientStock: the correction would take stock below zero
    """
    enforce_rules_adjustment(delta, reason)
    reason = reason.strip()
    ref = ref.strip() if ref and ref.strip() else None

    def _op():
        begin_write()
        product = lookup_product(product_id, lock=True)

        if delta < 0:
            debit_stock(product, -delta, movement_type=MOVEMENT_ADJUSTMENT, reason=reason, ref=ref)
        else:
            credit_stock(product, delta, movement_type=MOVEMENT_ADJUSTMENT, reason=reason, ref=ref)

        db.session.commit()
        return product

    product = run_with_retry(_op)
    current_app.logger.info(
        "Stock adjusted: product=%s delta=%+d reason=%r stock=%d",
        product.sku,
        delta,
        reason,
        product.stock_quantity,
    )
    return product.to_dict()


def _low_stock_filter(query):
    return query.filter(
        Product.reorder_level > 0,
        Product.stock_quantity <= Product.reorder_level,
    )


def low_stock_count() -> int:
    """Products at or below their reorder level (reorder_level 0 means untracked)."""
    q = _low_stock_filter(db.session.query(func.count(Product.id)))
    return int(q.scalar() or 0)


def list_low_stock(limit: int | None = None) -> list[Product]:
    q = _low_stock_filter(db.session.query(Product)).order_by(
        Product.stock_quantity.asc(),
        Product.name.asc(),
    )
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def list_stock_movements(product_id: int, limit: int = 100) -> list[StockMovement]:
    lookup_product(product_id)
    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )
