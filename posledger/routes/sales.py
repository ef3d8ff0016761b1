# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""
Sales API routes.

Money crosses the wire as integer cents. The preview endpoint never fails on
bad numbers (they count as zero); every other endpoint is strict and answers
with the Result envelope:

    {"ok": true, "data": {...}}
    {"ok": false, "error": {"kind": "...", "message": "...", "details": {...}}}
"""

from decimal import InvalidOperation

from flask import Blueprint, current_app, request

from ..errors import ErrorKind, ValidationError
from ..extensions import db
from ..models import Product
from ..money import TotalsLine, calculate_totals, format_money, parse_money, to_rate, bps_to_percent
from ..result import Result, capture
from ..services import inventory_service, sales_service
from ..services.sale_request import DraftLine, SaleDraft, build_sale_request, generate_sale_number
from ..services.lifecycle_service import VALID_STATUSES
from ..services.sales_service import SaleFilter
from ..time_utils import parse_iso_datetime
from ..validation import coerce_int, enforce_rules_quantity
from .envelope import internal_error, respond


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _loose_int(value) -> int:
    """Preview inputs: anything that is not a whole number counts as 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return 0
    return 0


def _loose_rate(line: dict):
    if "tax_rate_bps" in line:
        return bps_to_percent(_loose_int(line.get("tax_rate_bps")))
    try:
        rate = to_rate(line.get("tax_rate_percent"))
    except (InvalidOperation, TypeError, ValueError):
        return 0
    return rate if rate.is_finite() else 0


def _with_low_stock(sale) -> dict:
    return {
        "sale": sale.to_dict(),
        "low_stock_count": inventory_service.low_stock_count(),
    }


@sales_bp.post("/preview")
def preview_totals_route():
    """
    Live cart totals.

    Body: {"lines": [{"unit_price_cents", "quantity", "line_discount_cents",
    "tax_rate_percent" | "tax_rate_bps"}], "order_discount": "2.00"} or
    "order_discount_cents": 200.
    """
    data = request.get_json(silent=True) or {}
    raw_lines = data.get("lines") or []
    if not isinstance(raw_lines, list):
        raw_lines = []

    lines = [
        TotalsLine(
            unit_price_cents=_loose_int(line.get("unit_price_cents")),
            quantity=_loose_int(line.get("quantity")),
            line_discount_cents=_loose_int(line.get("line_discount_cents")),
            tax_rate_percent=_loose_rate(line),
        )
        for line in raw_lines
        if isinstance(line, dict)
    ]

    if "order_discount" in data:
        order_discount = parse_money(data.get("order_discount"))
    else:
        order_discount = _loose_int(data.get("order_discount_cents"))

    totals = calculate_totals(lines, order_discount)
    return {"ok": True, "data": totals.to_dict()}, 200


def _optional_text(data: dict, key: str):
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    return value


def _draft_from_payload(data: dict) -> SaleDraft:
    raw_lines = data.get("lines")
    if not isinstance(raw_lines, list):
        raise ValidationError("lines must be a list")

    lines = []
    for i, raw in enumerate(raw_lines):
        if not isinstance(raw, dict):
            raise ValidationError(f"line {i}: must be an object")
        if "product_id" not in raw:
            raise ValidationError(f"line {i}: product_id required")
        product_id = coerce_int(raw.get("product_id"), f"line {i}: product_id")
        quantity = coerce_int(raw.get("quantity", 0), f"line {i}: quantity")
        enforce_rules_quantity(quantity, f"line {i}: quantity")
        discount = coerce_int(raw.get("discount_cents", 0), f"line {i}: discount_cents")

        # The draft clamp uses the catalog's current price, not the client's copy
        product = db.session.get(Product, product_id)
        lines.append(DraftLine(
            product_id=product_id,
            quantity=quantity,
            unit_price_cents=product.unit_price_cents if product else 0,
            line_discount_cents=discount,
        ))

    if "order_discount" in data:
        order_discount_text = str(data.get("order_discount") or "")
    else:
        order_discount_text = format_money(coerce_int(data.get("discount_cents", 0), "discount_cents"))

    return SaleDraft(
        payment_method=_optional_text(data, "payment_method"),
        lines=lines,
        sale_number=_optional_text(data, "sale_number"),
        customer_name=_optional_text(data, "customer_name"),
        order_discount_text=order_discount_text,
        note=_optional_text(data, "note"),
    )


def _commit_sale(data: dict):
    sale_request = build_sale_request(_draft_from_payload(data))
    return sales_service.create_sale(sale_request)


@sales_bp.post("/")
def create_sale_route():
    """Commit a cart as a COMPLETED sale."""
    try:
        data = request.get_json(silent=True) or {}
        result = capture(_commit_sale, data)
        return respond(result, _with_low_stock, success_status=201)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return internal_error()


@sales_bp.get("/")
def list_sales_route():
    """
    Sales history.

    Query: from, to (ISO-8601), payment_method (repeatable), status
    (repeatable), q (customer or sale number), limit, offset.
    """
    try:
        date_from = parse_iso_datetime(request.args.get("from"))
        date_to = parse_iso_datetime(request.args.get("to"))
    except ValueError:
        return respond(Result.failure(ErrorKind.VALIDATION, "from/to must be ISO-8601 datetimes"))

    statuses = {s.strip().upper() for s in request.args.getlist("status")}
    unknown = sorted(statuses - VALID_STATUSES)
    if unknown:
        return respond(Result.failure(
            ErrorKind.VALIDATION,
            "Unknown sale status",
            {"statuses": unknown, "allowed": sorted(VALID_STATUSES)},
        ))

    sale_filter = SaleFilter(
        date_from=date_from,
        date_to=date_to,
        payment_methods=set(request.args.getlist("payment_method")),
        statuses=statuses,
        customer_query=request.args.get("q"),
        limit=request.args.get("limit", type=int),
        offset=request.args.get("offset", default=0, type=int),
    )
    result = capture(sales_service.list_sales, sale_filter)
    return respond(result, lambda sales: [s.to_dict() for s in sales])


@sales_bp.get("/next-number")
def next_sale_number_route():
    prefix = current_app.config["SALE_NUMBER_PREFIX"]
    return {"ok": True, "data": {"sale_number": generate_sale_number(prefix=prefix)}}, 200


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    result = capture(sales_service.fetch_sale, sale_id)
    return respond(result, lambda sale: sale.to_dict())


@sales_bp.post("/<int:sale_id>/refund")
def refund_sale_route(sale_id: int):
    """Refund a completed sale and put its stock back."""
    try:
        result = capture(sales_service.refund_sale, sale_id)
        return respond(result, _with_low_stock)
    except Exception:
        current_app.logger.exception("Failed to refund sale")
        return internal_error()


@sales_bp.post("/<int:sale_id>/void")
def void_sale_route(sale_id: int):
    """Void a completed sale. Body: {"note": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        note = data.get("note")
        if note is not None and not isinstance(note, str):
            note = str(note)
        result = capture(sales_service.void_sale, sale_id, note)
        return respond(result, _with_low_stock)
    except Exception:
        current_app.logger.exception("Failed to void sale")
        return internal_error()
