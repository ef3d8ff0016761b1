# posledger/routes/products.py
from flask import Blueprint, current_app, request

from ..result import capture
from ..services import products_service
from .envelope import internal_error, respond


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _serialize(product):
    return product.to_dict()


@products_bp.get("/")
def list_products_route():
    products = products_service.list_products(
        query=request.args.get("q"),
        limit=min(request.args.get("limit", default=200, type=int), 500),
        offset=max(request.args.get("offset", default=0, type=int), 0),
    )
    return {"ok": True, "data": [p.to_dict() for p in products]}, 200


@products_bp.post("/")
def create_product_route():
    try:
        payload = request.get_json(silent=True)
        return respond(capture(products_service.create_product, payload), _serialize, success_status=201)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return internal_error()


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    return respond(capture(products_service.get_product, product_id), _serialize)


@products_bp.put("/<int:product_id>")
def update_product_route(product_id: int):
    """Stock is read-only here; use /api/inventory/adjust."""
    try:
        payload = request.get_json(silent=True)
        return respond(capture(products_service.update_product, product_id, payload), _serialize)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return internal_error()
