"""
Sales ledger: commit, look up, refund and void sales.

WHY: A sale and the stock it consumes are one unit of work. Every mutation
here runs inside run_with_retry with the write lock taken first, so either
the sale row, its lines, the stock debits and the movement journal all land
together, or nothing does.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError

from ..errors import DuplicateIdentifier, InsufficientStock, LedgerError, NotFound, ValidationError
from ..extensions import db
from ..models import Sale, SaleLine, SaleNumberSequence
from ..models.sales import STATUS_COMPLETED, STATUS_REFUNDED, STATUS_VOIDED
from ..money import clamp, compute_line, format_money
from ..time_utils import to_utc_naive, utcnow
from ..validation import enforce_rules_quantity
from .concurrency import begin_write, lock_for_update, run_with_retry
from .inventory_service import (
    MOVEMENT_REFUND,
    MOVEMENT_SALE,
    MOVEMENT_VOID,
    credit_stock,
    debit_stock,
    lookup_product,
)
from .lifecycle_service import require_transition
from .sale_request import CreateSaleRequest, request_lines_by_product, validate_payment_method


@dataclass
class SaleFilter:
    date_from: datetime | None = None
    date_to: datetime | None = None
    payment_methods: set[str] = field(default_factory=set)
    statuses: set[str] = field(default_factory=set)
    customer_query: str | None = None
    limit: int | None = None
    offset: int = 0

    def normalized(self) -> "SaleFilter":
        """
        Fill in history defaults: to = now, from = to - N days when missing
        or after `to`, limit outside 1..max falls back to the default.
        """
        config = current_app.config
        date_to = to_utc_naive(self.date_to) if self.date_to else utcnow()
        date_from = to_utc_naive(self.date_from) if self.date_from else None
        if date_from is None or date_from > date_to:
            date_from = date_to - timedelta(days=config["SALES_LIST_DEFAULT_DAYS"])

        limit = self.limit
        if limit is None or limit <= 0 or limit > config["SALES_LIST_MAX_LIMIT"]:
            limit = config["SALES_LIST_DEFAULT_LIMIT"]

        query = (self.customer_query or "").strip() or None
        return SaleFilter(
            date_from=date_from,
            date_to=date_to,
            payment_methods=set(self.payment_methods or ()),
            statuses=set(self.statuses or ()),
            customer_query=query,
            limit=limit,
            offset=max(self.offset or 0, 0),
        )


def _next_sale_number(prefix: str, business_date: str) -> str:
    """
    Allocate INV-YYYYMMDD-NNNN inside the current transaction.

    The counter row is only ever bumped under the sale's write lock, so
    numbers are unique; a rolled back sale releases its number.
    """
    stmt = (
        update(SaleNumberSequence)
        .where(
            SaleNumberSequence.prefix == prefix,
            SaleNumberSequence.business_date == business_date,
        )
        .values(next_number=SaleNumberSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(SaleNumberSequence.next_number)
            .filter_by(prefix=prefix, business_date=business_date)
            .scalar()
        )
        next_num = current - 1
    else:
        try:
            with db.session.begin_nested():
                db.session.add(SaleNumberSequence(prefix=prefix, business_date=business_date, next_number=2))
            next_num = 1
        except IntegrityError:
            # another writer created today's row first
            db.session.execute(stmt)
            current = (
                db.session.query(SaleNumberSequence.next_number)
                .filter_by(prefix=prefix, business_date=business_date)
                .scalar()
            )
            next_num = current - 1

    return f"{prefix}-{business_date}-{next_num:04d}"


def _sale_number_taken(sale_number: str) -> bool:
    return db.session.query(Sale.id).filter_by(sale_number=sale_number).first() is not None


def _allocate_sale_number(now: datetime) -> str:
    prefix = current_app.config["SALE_NUMBER_PREFIX"]
    business_date = now.strftime("%Y%m%d")
    while True:
        candidate = _next_sale_number(prefix, business_date)
        # skip numbers a caller already used by hand
        if not _sale_number_taken(candidate):
            return candidate


def _duplicate(sale_number: str) -> DuplicateIdentifier:
    return DuplicateIdentifier(
        f"Sale number {sale_number} already exists",
        details={"sale_number": sale_number},
    )


def _lock_products(product_ids) -> dict:
    # Fixed lock order keeps two multi-line sales from deadlocking
    return {pid: lookup_product(pid, lock=True) for pid in sorted(product_ids)}


def _create_sale_locked(request: CreateSaleRequest, lines, sale_number: str, now: datetime) -> Sale:
    if _sale_number_taken(sale_number):
        raise _duplicate(sale_number)

    requested = request_lines_by_product(lines)
    products = _lock_products(requested)

    inactive = [p.id for p in products.values() if not p.is_active]
    if inactive:
        raise ValidationError("Cannot sell inactive products", details={"product_ids": inactive})

    # Check every product before touching any stock
    insufficient = [
        {
            "product_id": pid,
            "sku": products[pid].sku,
            "requested_quantity": qty,
            "stock_quantity": products[pid].stock_quantity,
        }
        for pid, qty in requested.items()
        if qty > products[pid].stock_quantity
    ]
    if insufficient:
        raise InsufficientStock("Insufficient stock to complete sale", details={"items": insufficient})

    sale_lines = []
    subtotal = 0
    tax = 0
    for position, req_line in enumerate(lines, start=1):
        product = products[req_line.product_id]
        amounts = compute_line(
            product.unit_price_cents,
            req_line.quantity,
            req_line.discount_cents,
            product.tax_rate_percent,
        )
        sale_lines.append(SaleLine(
            position=position,
            product_id=product.id,
            product_name=product.name,
            sku=product.sku,
            quantity=req_line.quantity,
            unit_price_cents=product.unit_price_cents,
            tax_rate_bps=product.tax_rate_bps,
            line_subtotal_cents=amounts.subtotal,
            discount_cents=amounts.discount,
            tax_cents=amounts.tax,
            line_total_cents=amounts.total,
        ))
        subtotal += amounts.subtotal
        tax += amounts.tax

    order_discount = clamp(request.discount_cents, 0, subtotal)

    sale = Sale(
        sale_number=sale_number,
        created_at=now,
        customer_name=request.customer_name,
        subtotal_cents=subtotal,
        discount_cents=order_discount,
        tax_cents=tax,
        total_cents=subtotal - order_discount + tax,
        payment_method=request.payment_method,
        status=STATUS_COMPLETED,
        note=request.note,
        lines=sale_lines,
    )
    db.session.add(sale)
    db.session.flush()

    for line in sale_lines:
        debit_stock(
            products[line.product_id],
            line.quantity,
            movement_type=MOVEMENT_SALE,
            reason="Sale",
            ref=sale_number,
            sale_id=sale.id,
        )

    return sale


def create_sale(request: CreateSaleRequest) -> Sale:
    """
    Commit a sale: re-price from current product terms, debit stock, persist.

    Raises:
        ValidationError: no line with quantity > 0, quantity above
            MAX_QUANTITY, bad payment method, inactive product
        DuplicateIdentifier: sale_number already used
        NotFound: unknown product id
        InsufficientStock: any product short of the requested quantity
    """
    validate_payment_method(request.payment_method)
    lines = [line for line in request.lines if line.quantity > 0]
    if not lines:
        raise ValidationError("Cannot create a sale with no lines")
    for line in lines:
        enforce_rules_quantity(line.quantity)

    def _op():
        begin_write()
        # one clock for the number's business date and created_at
        now = utcnow()
        sale_number = request.sale_number
        try:
            sale_number = sale_number or _allocate_sale_number(now)
            sale = _create_sale_locked(request, lines, sale_number, now)
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            if "sale_number" in str(exc.orig):
                raise _duplicate(sale_number or "") from exc
            raise
        return sale

    try:
        sale = run_with_retry(_op)
    except LedgerError as exc:
        current_app.logger.warning("Sale rejected (%s): %s", exc.kind.value, exc.message)
        raise

    current_app.logger.info(
        "Sale %s completed: lines=%d subtotal=%s discount=%s tax=%s total=%s payment=%s",
        sale.sale_number,
        len(lines),
        format_money(sale.subtotal_cents),
        format_money(sale.discount_cents),
        format_money(sale.tax_cents),
        format_money(sale.total_cents),
        sale.payment_method,
    )
    return sale


def fetch_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFound(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def list_sales(sale_filter: SaleFilter | None = None) -> list[Sale]:
    """Sales in the filter window, newest first."""
    f = (sale_filter or SaleFilter()).normalized()

    q = db.session.query(Sale).filter(
        Sale.created_at >= f.date_from,
        Sale.created_at <= f.date_to,
    )
    if f.payment_methods:
        q = q.filter(Sale.payment_method.in_(sorted(f.payment_methods)))
    if f.statuses:
        q = q.filter(Sale.status.in_(sorted(f.statuses)))
    if f.customer_query:
        pattern = f"%{f.customer_query.lower()}%"
        q = q.filter(or_(
            func.lower(func.coalesce(Sale.customer_name, "")).like(pattern),
            func.lower(Sale.sale_number).like(pattern),
        ))

    return (
        q.order_by(Sale.created_at.desc(), Sale.id.desc())
        .limit(f.limit)
        .offset(f.offset)
        .all()
    )


def _load_sale_for_update(sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if sale is None:
        raise NotFound(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def _restore_stock(sale: Sale, movement_type: str) -> None:
    products = _lock_products({line.product_id for line in sale.lines})
    for line in sale.lines:
        credit_stock(
            products[line.product_id],
            line.quantity,
            movement_type=movement_type,
            reason=movement_type.title(),
            ref=sale.sale_number,
            sale_id=sale.id,
        )


def refund_sale(sale_id: int) -> Sale:
    """
    COMPLETED -> REFUNDED, crediting every line's quantity back to stock.

    Raises:
        NotFound: unknown sale id
        InvalidStateTransition: sale is not COMPLETED
    """
    def _op():
        begin_write()
        sale = _load_sale_for_update(sale_id)
        require_transition(sale, STATUS_REFUNDED)

        _restore_stock(sale, MOVEMENT_REFUND)
        sale.status = STATUS_REFUNDED
        sale.refunded_at = utcnow()

        db.session.commit()
        return sale

    try:
        sale = run_with_retry(_op)
    except LedgerError as exc:
        current_app.logger.warning("Refund of sale %s rejected (%s): %s", sale_id, exc.kind.value, exc.message)
        raise

    current_app.logger.info("Sale %s refunded: total=%s", sale.sale_number, format_money(sale.total_cents))
    return sale


def void_sale(sale_id: int, note: str | None = None, *, restore_stock: bool | None = None) -> Sale:
    """
    COMPLETED -> VOIDED, storing the note.

    Stock comes back unless VOID_RESTORES_STOCK is off (or restore_stock=False
    is passed explicitly).

    Raises:
        NotFound: unknown sale id
        InvalidStateTransition: sale is not COMPLETED
    """
    if restore_stock is None:
        restore_stock = current_app.config["VOID_RESTORES_STOCK"]
    clean_note = note.strip() if note and note.strip() else None

    def _op():
        begin_write()
        sale = _load_sale_for_update(sale_id)
        require_transition(sale, STATUS_VOIDED)

        if restore_stock:
            _restore_stock(sale, MOVEMENT_VOID)
        sale.status = STATUS_VOIDED
        sale.voided_at = utcnow()
        if clean_note is not None:
            sale.note = clean_note

        db.session.commit()
        return sale

    try:
        sale = run_with_retry(_op)
    except LedgerError as exc:
        current_app.logger.warning("Void of sale %s rejected (%s): %s", sale_id, exc.kind.value, exc.message)
        raise

    current_app.logger.info(
        "Sale %s voided (stock restored: %s): %s",
        sale.sale_number,
        "yes" if restore_stock else "no",
        clean_note or "-",
    )
    return sale
