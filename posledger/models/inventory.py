from __future__ import annotations

from ..extensions import db
from ..money import bps_to_percent
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data and the current stock level.

    STOCK DESIGN DECISION:
    stock_quantity is the authoritative on-hand figure and is only changed by
    inventory_service (debit_stock / credit_stock / adjust_stock), always
    together with a StockMovement row in the same transaction.
    The CHECK constraint keeps it from going negative even if a caller skips
    the service-level check.

    Prices and tax rates here are the CURRENT terms. Sale lines copy them at
    sale time, so editing a product never rewrites history.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("reorder_level >= 0", name="ck_products_reorder_non_negative"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_products_price_non_negative"),
        db.CheckConstraint("tax_rate_bps >= 0", name="ck_products_tax_non_negative"),
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_low_stock", "reorder_level", "stock_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)

    # Basis points: 500 == 5.00%
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def tax_rate_percent(self):
        return bps_to_percent(self.tax_rate_bps or 0)

    @property
    def is_low_stock(self) -> bool:
        return self.reorder_level > 0 and self.stock_quantity <= self.reorder_level

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.stock_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "notes": self.notes,
            "unit_price_cents": self.unit_price_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "stock_quantity": self.stock_quantity,
            "reorder_level": self.reorder_level,
            "is_low_stock": self.is_low_stock,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only journal of stock changes.

    quantity_delta is signed: sales are negative, refunds/voids positive,
    adjustments either way. ref carries the sale number for sale-driven rows.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_occurred", "product_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # SALE, REFUND, VOID, ADJUSTMENT
    movement_type = db.Column(db.String(16), nullable=False, index=True)

    quantity_delta = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    ref = db.Column(db.String(128), nullable=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    occurred_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    product = db.relationship("Product", backref=db.backref("movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity_delta": self.quantity_delta,
            "reason": self.reason,
            "ref": self.ref,
            "sale_id": self.sale_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }
