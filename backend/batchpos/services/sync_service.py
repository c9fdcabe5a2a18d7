# Overview: Replays locally queued sales against the remote ledger and store.

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..errors import ConnectivityError, PosError, SyncError
from ..models.queue import SYNCABLE_STATUSES, QueueStatus
from .fifo_service import consume_many
from .queue_service import QueuedEntry, SaleQueue
from .sales_service import Tender, find_sale_by_client_id, record_sale, validate_on_hand


@dataclass
class SyncReport:
    synced: list[str] = field(default_factory=list)
    failed: list[SyncError] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    aborted: bool = False

    def to_dict(self) -> dict:
        return {
            "synced": self.synced,
            "failed": [err.to_dict() for err in self.failed],
            "skipped": self.skipped,
            "aborted": self.aborted,
        }


def _line_snapshots(entry: QueuedEntry) -> list[dict]:
    return [
        {
            "product_id": item.product_id,
            "product_name": item.product_name,
            "category": item.category,
            "unit_price_cents": item.unit_price_cents,
            "quantity": item.quantity,
            "line_total_cents": item.line_total_cents,
        }
        for item in entry.items
    ]


def _fail(queue: SaleQueue, report: SyncReport, entry_id: str, exc: PosError, stage: str) -> None:
    message = str(exc) or "Sync error"
    queue.set_status(entry_id, QueueStatus.FAILED, message)
    report.failed.append(SyncError(entry_id, message, details={"stage": stage, **exc.details}))
    current_app.logger.warning("Queued sale %s failed during %s: %s", entry_id, stage, message)


def _sync_entry(queue: SaleQueue, entry: QueuedEntry, report: SyncReport) -> None:
    sale = entry.sale
    queue.set_status(sale.id, QueueStatus.SYNCING)

    try:
        existing = find_sale_by_client_id(sale.id)
    except ConnectivityError:
        raise
    except PosError as exc:
        _fail(queue, report, sale.id, exc, "lookup")
        return

    # Already committed by an earlier attempt whose local delete never happened
    if existing is not None:
        queue.set_status(sale.id, QueueStatus.DONE)
        queue.delete(sale.id)
        report.synced.append(sale.id)
        return

    # Recompute against the ledger as it is now, not as it was at enqueue time
    fifo_items = [(item.product_id, item.quantity) for item in entry.items]
    try:
        validate_on_hand(fifo_items)
        consumption = consume_many(fifo_items)
    except ConnectivityError:
        raise
    except PosError as exc:
        _fail(queue, report, sale.id, exc, "consume")
        return

    tender = Tender(
        payment_method=sale.payment_method,
        subtotal_cents=sale.subtotal_cents,
        total_cents=sale.total_cents,
        cash_received_cents=sale.cash_received_cents,
        change_cents=sale.change_cents,
    )
    try:
        # Line prices are what the customer was charged, not the fresh FIFO figures
        record_sale(
            tender,
            _line_snapshots(entry),
            consumption,
            client_sale_id=sale.id,
            created_at=sale.created_at,
        )
    except PosError as exc:
        # Inventory for this sale is now consumed while the entry stays queued;
        # the next attempt consumes it again.
        _fail(queue, report, sale.id, exc, "record")
        return

    queue.set_status(sale.id, QueueStatus.DONE)
    queue.delete(sale.id)
    report.synced.append(sale.id)


def sync_all(queue: SaleQueue, target_id: str | None = None) -> SyncReport:
    """
    One synchronization cycle over every queued or failed entry (or just target_id).

    Entries are handled oldest first. A per-entry failure marks that entry
    failed and moves on; a lost connection marks the current entry failed and
    ends the cycle. Nothing is retried within a cycle.
    """
    queue.reset_stale(current_app.config.get("SYNC_STALE_THRESHOLD_SECONDS", 120))

    report = SyncReport()
    for entry in queue.list():
        sale = entry.sale
        if target_id is not None and sale.id != target_id:
            continue
        if sale.status not in SYNCABLE_STATUSES:
            report.skipped.append(sale.id)
            continue

        try:
            _sync_entry(queue, entry, report)
        except ConnectivityError as exc:
            _fail(queue, report, sale.id, exc, "connect")
            report.aborted = True
            break

    current_app.logger.info(
        "Sync cycle finished: %s synced, %s failed, %s skipped%s",
        len(report.synced), len(report.failed), len(report.skipped),
        " (aborted: remote store unreachable)" if report.aborted else "",
    )
    return report


def sync_one(queue: SaleQueue, queued_id: str) -> SyncReport:
    return sync_all(queue, target_id=queued_id)
