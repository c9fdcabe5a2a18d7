# Overview: Operational view of the local offline-sales queue.

# backend/batchpos/routes/queue.py
"""
Queue routes.

These only touch the client-local queue, except sync which replays entries
against the remote store. Sync failures are recorded on the entries and
reported in the response body; they are not HTTP errors.
"""
from flask import Blueprint, current_app, request

from ..errors import PosError
from ..models import QueueStatus
from ..services import sync_service
from ..services.queue_service import get_sale_queue


queue_bp = Blueprint("queue", __name__, url_prefix="/api/queue")


@queue_bp.get("")
def list_queue_route():
    status = request.args.get("status")
    if status is not None and status not in {s.value for s in QueueStatus}:
        return {"error": f"unknown status: {status}"}, 400

    entries = get_sale_queue().list(status=status)
    return {"entries": [e.to_dict() for e in entries]}, 200


@queue_bp.get("/count")
def count_pending_route():
    return {"pending": get_sale_queue().count_pending()}, 200


@queue_bp.post("/sync")
def sync_all_route():
    try:
        report = sync_service.sync_all(get_sale_queue())
    except PosError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to sync queued sales")
        return {"error": "Internal server error"}, 500

    return {"report": report.to_dict()}, 200


@queue_bp.post("/<string:queued_id>/sync")
def sync_one_route(queued_id: str):
    queue = get_sale_queue()
    if queue.get(queued_id) is None:
        return {"error": "Queued sale not found"}, 404

    try:
        report = sync_service.sync_one(queue, queued_id)
    except PosError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to sync queued sale %s", queued_id)
        return {"error": "Internal server error"}, 500

    return {"report": report.to_dict()}, 200


@queue_bp.post("/<string:queued_id>/reset")
def reset_entry_route(queued_id: str):
    """Manual retry: put a failed (or stuck) entry back to queued and clear its error."""
    if not get_sale_queue().set_status(queued_id, QueueStatus.QUEUED, None):
        return {"error": "Queued sale not found"}, 404
    return {"ok": True}, 200


@queue_bp.delete("/<string:queued_id>")
def delete_entry_route(queued_id: str):
    """Idempotent: deleting an entry that is already gone still succeeds."""
    deleted = get_sale_queue().delete(queued_id)
    return {"ok": True, "deleted": deleted}, 200


@queue_bp.post("/reset-stale")
def reset_stale_route():
    payload = request.get_json(silent=True) or {}
    threshold = payload.get("threshold_seconds", current_app.config["SYNC_STALE_THRESHOLD_SECONDS"])
    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)) or threshold < 0:
        return {"error": "threshold_seconds must be a non-negative number"}, 400

    reset = get_sale_queue().reset_stale(threshold)
    return {"reset": reset}, 200
