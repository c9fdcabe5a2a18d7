# backend/batchpos/routes/system.py
"""
System health endpoint.

Reports remote store reachability and the local queue backlog separately:
the register keeps selling when the remote store is down.
"""

import time

from flask import Blueprint, current_app

from ..services.concurrency import probe_remote
from ..services.queue_service import get_sale_queue

system_bp = Blueprint("system", __name__)


@system_bp.get("/health")
def health():
    start_time = time.time()
    remote_ok = probe_remote()
    elapsed_ms = (time.time() - start_time) * 1000

    try:
        pending = get_sale_queue().count_pending()
        queue_status = {"status": "healthy", "pending_sync": pending}
    except Exception:
        current_app.logger.exception("Local queue health check failed")
        queue_status = {"status": "unhealthy", "error": "Queue database error"}

    return {
        "status": "ok" if queue_status["status"] == "healthy" else "degraded",
        "remote": {
            "status": "online" if remote_ok else "offline",
            "latency_ms": round(elapsed_ms, 2),
        },
        "queue": queue_status,
    }, 200
