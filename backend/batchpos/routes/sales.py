# Overview: Flask API routes for quoting, checkout and committed sales.

# backend/batchpos/routes/sales.py
"""Sales API routes"""

from flask import Blueprint, current_app, request

from ..errors import ConnectivityError, PosError
from ..extensions import db
from ..models import Sale
from ..services import quote_service, sales_service
from ..services.concurrency import probe_remote, remote_call
from ..services.queue_service import get_sale_queue
from ..services.quote_service import CartLine
from ..validation import ValidationError, coerce_int


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _parse_items(payload: dict) -> list[dict]:
    items = payload.get("items")
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")
    parsed = []
    for raw in items:
        if not isinstance(raw, dict):
            raise ValidationError("each item must be an object")
        item = dict(raw)
        item["product_id"] = coerce_int("product_id", raw.get("product_id"))
        item["quantity"] = coerce_int("quantity", raw.get("quantity"))
        if item["quantity"] <= 0:
            raise ValidationError("quantity must be > 0", details={"product_id": item["product_id"]})
        parsed.append(item)
    return parsed


def _offline_cart(items: list[dict]) -> list[CartLine]:
    """
    Price a cart without the remote store: client snapshot first, then the
    cached catalog (oldest open batch price, else the nominal price).
    """
    cached = {p["id"]: p for p in (get_sale_queue().get_products_cache() or [])}
    cart = []
    for item in items:
        known = cached.get(item["product_id"], {})
        name = item.get("name") or known.get("name")
        unit_price = item.get("unit_price_cents")
        if unit_price is None:
            unit_price = known.get("next_batch_price_cents")
        if unit_price is None:
            unit_price = known.get("price_cents")
        if name is None or unit_price is None:
            raise ValidationError(
                "offline checkout needs name and unit_price_cents for uncached products",
                details={"product_id": item["product_id"]},
            )
        stock = item.get("stock", known.get("stock"))
        cart.append(
            CartLine(
                product_id=item["product_id"],
                name=name,
                category=item.get("category") or known.get("category"),
                quantity=item["quantity"],
                unit_price_cents=coerce_int("unit_price_cents", unit_price),
                stock=None if stock is None else coerce_int("stock", stock),
            )
        )
    return cart


@sales_bp.post("/quote")
def quote_route():
    """
    Preview a cart at FIFO batch prices.

    Body: {"items": [{"product_id", "quantity"}, ...]}
    """
    payload = request.get_json(silent=True) or {}
    try:
        items = _parse_items(payload)
        cart = quote_service.price_cart(items)
    except PosError as e:
        return e.to_dict(), e.status_code

    return {
        "items": [line.to_dict() for line in cart],
        "subtotal_cents": sum(line.line_total_cents for line in cart),
        "tax_cents": 0,
    }, 200


@sales_bp.post("/checkout")
def checkout_route():
    """
    Check out a cart.

    Body: {"items": [{"product_id", "quantity", "unit_price_cents"?, "name"?,
    "category"?, "stock"?}], "payment_method", "cash_received_cents"?}

    200 with state "committed" or "queued" (saved offline); 400 on bad input;
    409 when stock is insufficient.
    """
    payload = request.get_json(silent=True) or {}
    queue = get_sale_queue()

    try:
        items = _parse_items(payload)
        online = probe_remote()
        cart = None
        if online:
            try:
                cart = quote_service.price_cart(items)
            except ConnectivityError:
                online = False
        if cart is None:
            cart = _offline_cart(items)

        result = sales_service.checkout(
            cart,
            payment_method=payload.get("payment_method"),
            cash_received_cents=payload.get("cash_received_cents"),
            queue=queue,
            online=online,
        )
    except PosError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to check out sale")
        return {"error": "Internal server error"}, 500

    return result.to_dict(), 200


@sales_bp.get("")
def list_sales_route():
    limit = min(request.args.get("limit", default=50, type=int) or 50, 500)
    try:
        sales = sales_service.list_sales(limit=limit)
    except PosError as e:
        return e.to_dict(), e.status_code

    return {"sales": [s.to_dict() for s in sales]}, 200


@sales_bp.get("/summary")
def sales_summary_route():
    """Admin dashboard figures."""
    try:
        summary = sales_service.sales_summary(get_sale_queue())
    except PosError as e:
        return e.to_dict(), e.status_code

    return {"summary": summary}, 200


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        sale = remote_call(db.session.get, Sale, sale_id)
    except PosError as e:
        return e.to_dict(), e.status_code

    if not sale:
        return {"error": "Sale not found"}, 404

    return {"sale": sale.to_dict(include_items=True)}, 200
