# posledger/services/products_service.py
"""
Product catalog service.

Stock is NOT writable here after creation: stock_quantity only moves through
inventory_service (sales, refunds, voids, adjustments) so every change has a
StockMovement row. Price and tax edits apply to future sales only; sale
lines keep their own snapshot.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..errors import DuplicateIdentifier, NotFound
from ..extensions import db
from ..models import Product
from ..validation import ModelValidationPolicy, enforce_rules_product, validate_payload
from .concurrency import run_with_retry

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku",
        "name",
        "category",
        "notes",
        "unit_price_cents",
        "tax_rate_bps",
        "stock_quantity",
        "reorder_level",
        "is_active",
    },
    required_on_create={"sku", "name", "unit_price_cents"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "category",
        "notes",
        "unit_price_cents",
        "tax_rate_bps",
        "reorder_level",
        "is_active",
    },
)


def _sku_conflict(sku: str) -> DuplicateIdentifier:
    return DuplicateIdentifier(f"SKU {sku} already exists", details={"sku": sku})


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def list_products(query: str | None = None, limit: int = 200, offset: int = 0) -> list[Product]:
    q = db.session.query(Product)
    if query and query.strip():
        pattern = f"%{query.strip().lower()}%"
        q = q.filter(or_(
            func.lower(Product.name).like(pattern),
            func.lower(Product.sku).like(pattern),
        ))
    return q.order_by(Product.name.asc(), Product.id.asc()).limit(limit).offset(offset).all()


def create_product(payload: dict) -> Product:
    """
    Raises:
        ValidationError: bad or missing fields
        DuplicateIdentifier: SKU already in the catalog
    """
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
    enforce_rules_product(patch)

    sku = patch["sku"]

    def _op():
        if db.session.query(Product.id).filter_by(sku=sku).first() is not None:
            raise _sku_conflict(sku)
        product = Product(**patch)
        db.session.add(product)
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise _sku_conflict(sku) from exc
        return product

    product = run_with_retry(_op)
    current_app.logger.info("Product %s created: stock=%d", product.sku, product.stock_quantity)
    return product


def update_product(product_id: int, payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)

    def _op():
        product = get_product(product_id)
        for key, value in patch.items():
            setattr(product, key, value)
        db.session.commit()
        return product

    return run_with_retry(_op)
