# Overview: Flask API routes for the product catalog and its purchase batches.

# backend/batchpos/routes/products.py
"""
Product and batch routes.

Money is integer cents everywhere. Product.stock is read-only over the API:
it moves only through restock batches, batch deletion and sales.
"""
from flask import Blueprint, current_app, request

from ..errors import ConnectivityError, PosError
from ..models import Batch, Product
from ..services import ledger_service, products_service, quote_service
from ..services.queue_service import get_sale_queue
from ..validation import ModelValidationPolicy, ValidationError, coerce_int, validate_payload


products_bp = Blueprint("products", __name__, url_prefix="/api/products")

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category", "price_cents", "barcode", "image_url"},
    required_on_create={"name", "price_cents"},
)

RESTOCK_POLICY = ModelValidationPolicy(
    writable_fields={"bought_price_cents", "selling_price_cents", "quantity"},
    required_on_create={"bought_price_cents", "selling_price_cents", "quantity"},
)


@products_bp.get("")
def list_products_route():
    """
    List products, newest first. Optional ?category= filter.

    Each entry carries the oldest open batch price (next_batch_price_cents).
    While online the full catalog is also written to the local products cache;
    when the remote store is unreachable the cached snapshot is served instead.
    """
    category = request.args.get("category")
    queue = get_sale_queue()
    try:
        products = []
        for p in products_service.list_products(category=category):
            data = p.to_dict()
            data["next_batch_price_cents"] = quote_service.next_batch_price(p.id)
            products.append(data)
    except ConnectivityError:
        cached = queue.get_products_cache()
        if cached is None:
            return {"error": "Remote store unreachable and no cached catalog"}, 503
        if category:
            cached = [p for p in cached if p.get("category") == category]
        return {"products": cached, "offline": True}, 200

    if not category:
        queue.save_products_cache(products)
    return {"products": products, "offline": False}, 200


@products_bp.post("")
def create_product_route():
    """
    Create a product.

    Optional "stock" and "bought_price_cents" open the first batch at the
    product's price.
    """
    payload = request.get_json(silent=True) or {}
    stock = payload.pop("stock", 0)
    bought_price_cents = payload.pop("bought_price_cents", None)

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        stock = coerce_int("stock", stock or 0)
        if bought_price_cents is not None:
            bought_price_cents = coerce_int("bought_price_cents", bought_price_cents)
        created = products_service.create_product(
            stock=stock,
            bought_price_cents=bought_price_cents,
            **patch,
        )
    except PosError as e:
        return e.to_dict(), e.status_code

    return {"product": created.to_dict()}, 201


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
    except ValidationError:
        return {"error": "Product not found"}, 404
    except PosError as e:
        return e.to_dict(), e.status_code

    return {"product": product.to_dict()}, 200


@products_bp.patch("/<int:product_id>")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        updated = products_service.update_product(product_id, patch)
    except PosError as e:
        return e.to_dict(), e.status_code

    return {"product": updated.to_dict()}, 200


@products_bp.get("/<int:product_id>/batches")
def list_batches_route(product_id: int):
    """All batches for a product in FIFO order, with the ledger stock next to the cached one."""
    try:
        product = products_service.get_product(product_id)
        batches = ledger_service.list_batches(product_id)
        ledger_stock = ledger_service.get_ledger_stock(product_id)
        next_price = quote_service.next_batch_price(product_id)
    except ValidationError:
        return {"error": "Product not found"}, 404
    except PosError as e:
        return e.to_dict(), e.status_code

    return {
        "product": product.to_dict(),
        "batches": [b.to_dict() for b in batches],
        "ledger_stock": ledger_stock,
        "next_batch_price_cents": next_price,
    }, 200


@products_bp.post("/<int:product_id>/batches")
def restock_route(product_id: int):
    """Restock: new batch at the given cost and price; product stock rises by quantity."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Batch, payload=payload, policy=RESTOCK_POLICY, partial=False)
        batch = ledger_service.add_stock_batch(
            product_id,
            patch["bought_price_cents"],
            patch["quantity"],
            patch["selling_price_cents"],
        )
    except PosError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to restock product %s", product_id)
        return {"error": "Internal server error"}, 500

    return {"batch": batch.to_dict()}, 201


@products_bp.post("/<int:product_id>/batches/prune")
def prune_batches_route(product_id: int):
    try:
        deleted = ledger_service.prune_exhausted_batches(product_id)
    except PosError as e:
        return e.to_dict(), e.status_code

    return {"deleted": deleted}, 200
