# Overview: Flask API routes for editing and deleting individual purchase batches.

from flask import Blueprint, request

from ..errors import PosError
from ..services import ledger_service
from ..validation import coerce_int


batches_bp = Blueprint("batches", __name__, url_prefix="/api/batches")


@batches_bp.patch("/<int:batch_id>")
def update_batch_price_route(batch_id: int):
    """Change a batch's selling price. Body: {"selling_price_cents": int > 0}."""
    payload = request.get_json(silent=True) or {}

    try:
        price = coerce_int("selling_price_cents", payload.get("selling_price_cents"))
        batch = ledger_service.update_batch_price(batch_id, price)
    except PosError as e:
        return e.to_dict(), e.status_code

    if batch is None:
        return {"error": "Batch not found"}, 404

    return {"batch": batch.to_dict()}, 200


@batches_bp.delete("/<int:batch_id>")
def delete_batch_route(batch_id: int):
    try:
        deleted = ledger_service.delete_batch(batch_id)
    except PosError as e:
        return e.to_dict(), e.status_code

    if not deleted:
        return {"error": "Batch not found"}, 404

    return {"ok": True}, 200
