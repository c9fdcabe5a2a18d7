# Overview: Client-local durable queue of sales awaiting remote commit.

"""
Local Durable Queue

One SaleQueue instance is created per process by create_app() and stored on
app.extensions["sale_queue"]. It owns its own engine and session factory over
QUEUE_DATABASE_URL; the remote store never reads it.

Lifecycle per entry:
    enqueue -> queued -> syncing -> done -> (deleted)
                            \\-> failed -> syncing ...
A "syncing" entry whose sync attempt died is returned to "queued" by
reset_stale(), which runs at app start and before every sync cycle.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import create_engine, event, func, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ..errors import ValidationError
from ..models.queue import (
    PENDING_STATUSES,
    ProductsCache,
    QueueBase,
    QueuedSale,
    QueuedSaleItem,
    QueueStatus,
    new_id,
)
from ..time_utils import utcnow

STALE_SYNC_ERROR = "Reset stale syncing"
PRODUCTS_CACHE_KEY = "all"


@dataclass
class QueuedEntry:
    sale: QueuedSale
    items: list[QueuedSaleItem]

    def to_dict(self) -> dict:
        return {
            "sale": self.sale.to_dict(),
            "items": [item.to_dict() for item in self.items],
        }


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class SaleQueue:
    """Handle on the local queue database. Create once, dispose on shutdown."""

    def __init__(self, url: str):
        self.url = url
        engine_kwargs: dict = {}
        if url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool
        self.engine = create_engine(url, **engine_kwargs)
        if url.startswith("sqlite"):
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        QueueBase.metadata.create_all(self.engine)

    def __repr__(self) -> str:
        return f"<SaleQueue url={self.url!r}>"

    @contextmanager
    def session(self):
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    def enqueue(self, sale: dict, items: list[dict]) -> str:
        """
        Persist a sale and its line snapshots atomically. Returns the queue id.

        `sale` needs subtotal_cents, total_cents, payment_method and may carry
        id, created_at, cash_received_cents, change_cents, items_count, status.
        Each item needs product_id, product_name, unit_price_cents, quantity and
        may carry category and line_total_cents.
        """
        if not items:
            raise ValidationError("cannot queue a sale with no items")

        sale_id = sale.get("id") or new_id()
        now = utcnow()
        row = QueuedSale(
            id=sale_id,
            created_at=sale.get("created_at") or now,
            subtotal_cents=sale["subtotal_cents"],
            total_cents=sale["total_cents"],
            payment_method=sale["payment_method"],
            cash_received_cents=sale.get("cash_received_cents"),
            change_cents=sale.get("change_cents"),
            items_count=sale.get("items_count") or sum(int(it["quantity"]) for it in items),
            status=sale.get("status") or QueueStatus.QUEUED.value,
            error=None,
            status_updated_at=now,
        )
        for position, it in enumerate(items):
            quantity = int(it["quantity"])
            unit_price = int(it["unit_price_cents"])
            row.items.append(
                QueuedSaleItem(
                    id=new_id(),
                    position=position,
                    product_id=it["product_id"],
                    product_name=it["product_name"],
                    category=it.get("category"),
                    unit_price_cents=unit_price,
                    quantity=quantity,
                    line_total_cents=int(it.get("line_total_cents") or unit_price * quantity),
                )
            )

        with self.session() as session:
            session.merge(row)
        return sale_id

    def list(self, status: str | None = None) -> list[QueuedEntry]:
        """Every queued sale with its items, oldest first."""
        with self.session() as session:
            stmt = select(QueuedSale).order_by(QueuedSale.created_at.asc(), QueuedSale.id.asc())
            if status is not None:
                stmt = stmt.where(QueuedSale.status == status)
            sales = session.scalars(stmt).all()
            return [QueuedEntry(sale=s, items=list(s.items)) for s in sales]

    def get(self, sale_id: str) -> QueuedEntry | None:
        with self.session() as session:
            sale = session.get(QueuedSale, sale_id)
            if sale is None:
                return None
            return QueuedEntry(sale=sale, items=list(sale.items))

    def set_status(self, sale_id: str, status: QueueStatus | str, error: str | None = None) -> bool:
        """Move an entry to `status`. Unknown ids are ignored (returns False)."""
        value = QueueStatus(status).value
        with self.session() as session:
            sale = session.get(QueuedSale, sale_id)
            if sale is None:
                return False
            sale.status = value
            sale.error = error
            sale.status_updated_at = utcnow()
            return True

    def delete(self, sale_id: str) -> bool:
        """Delete an entry and its items. Deleting a missing entry is a no-op."""
        with self.session() as session:
            sale = session.get(QueuedSale, sale_id)
            if sale is None:
                return False
            session.delete(sale)
            return True

    def count_pending(self) -> int:
        """Entries still waiting on a sync: status queued or syncing."""
        with self.session() as session:
            stmt = select(func.count()).select_from(QueuedSale).where(QueuedSale.status.in_(PENDING_STATUSES))
            return int(session.scalar(stmt) or 0)

    def reset_stale(self, threshold_seconds: float, *, now: datetime | None = None) -> int:
        """
        Return "syncing" entries older than the threshold to "queued".

        An entry stays in "syncing" forever if the process died mid-sync; this
        is the only way out. Entries without a status timestamp count as stale.
        """
        now = now or utcnow()
        cutoff = now - timedelta(seconds=threshold_seconds)
        reset = 0
        with self.session() as session:
            stmt = select(QueuedSale).where(QueuedSale.status == QueueStatus.SYNCING.value)
            for sale in session.scalars(stmt):
                updated = sale.status_updated_at
                if updated is None or updated < cutoff:
                    sale.status = QueueStatus.QUEUED.value
                    sale.status_updated_at = now
                    sale.error = sale.error or STALE_SYNC_ERROR
                    reset += 1
        if reset:
            current_app.logger.info("Reset %s stale syncing queue entries", reset)
        return reset

    # ------------------------------------------------------------------
    # Offline catalog
    # ------------------------------------------------------------------

    def save_products_cache(self, products: list[dict]) -> None:
        with self.session() as session:
            session.merge(ProductsCache(key=PRODUCTS_CACHE_KEY, products=products, updated_at=utcnow()))

    def get_products_cache(self) -> list[dict] | None:
        with self.session() as session:
            row = session.get(ProductsCache, PRODUCTS_CACHE_KEY)
            return list(row.products) if row else None


def get_sale_queue() -> SaleQueue:
    """The queue bound to the current app."""
    return current_app.extensions["sale_queue"]
