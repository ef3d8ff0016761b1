# posledger/routes/inventory.py
"""
Inventory routes.

- Low stock: count plus the products behind it, always computed from current
  rows.
- Adjust: manual correction outside the sale lifecycle; writes an
  ADJUSTMENT movement.
"""
from flask import Blueprint, current_app, request

from ..errors import ValidationError
from ..result import capture
from ..services import inventory_service
from ..validation import coerce_int
from .envelope import internal_error, respond


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/low-stock")
def low_stock_route():
    limit = request.args.get("limit", type=int)
    products = inventory_service.list_low_stock(limit=limit)
    return {
        "ok": True,
        "data": {
            "low_stock_count": inventory_service.low_stock_count(),
            "items": [p.to_dict() for p in products],
        },
    }, 200


def _adjust(payload: dict) -> dict:
    if "product_id" not in payload or "delta" not in payload:
        raise ValidationError("product_id and delta required")
    reason = payload.get("reason")
    ref = payload.get("ref")
    if reason is not None and not isinstance(reason, str):
        raise ValidationError("reason must be a string")
    if ref is not None and not isinstance(ref, str):
        raise ValidationError("ref must be a string")

    product = inventory_service.adjust_stock(
        product_id=coerce_int(payload["product_id"], "product_id"),
        delta=coerce_int(payload["delta"], "delta"),
        reason=reason,
        ref=ref,
    )
    return {"product": product, "low_stock_count": inventory_service.low_stock_count()}


@inventory_bp.post("/adjust")
def adjust_stock_route():
    """
    Adjust stock (corrections, shrink, recount).

    Body: {"product_id": 1, "delta": -2, "reason": "Damaged", "ref": "optional"}
    """
    try:
        payload = request.get_json(silent=True) or {}
        return respond(capture(_adjust, payload))
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return internal_error()


@inventory_bp.get("/<int:product_id>/movements")
def list_movements_route(product_id: int):
    limit = request.args.get("limit", default=100, type=int)
    result = capture(inventory_service.list_stock_movements, product_id, limit)
    return respond(result, lambda rows: [m.to_dict() for m in rows])
