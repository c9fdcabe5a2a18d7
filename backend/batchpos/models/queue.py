# Overview: Client-local tables for sales saved while the remote store was unreachable.
#
# These live in their own SQLite database (QUEUE_DATABASE_URL) with their own
# declarative base, so they never end up in the remote schema or its migrations.

from __future__ import annotations

import enum
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, JSON, String, Text
from sqlalchemy.orm import declarative_base, relationship

from batchpos.time_utils import to_utc_z, utcnow

QueueBase = declarative_base()


class QueueStatus(str, enum.Enum):
    QUEUED = "queued"
    SYNCING = "syncing"
    DONE = "done"
    FAILED = "failed"


PENDING_STATUSES = (QueueStatus.QUEUED.value, QueueStatus.SYNCING.value)
SYNCABLE_STATUSES = (QueueStatus.QUEUED.value, QueueStatus.FAILED.value)


def new_id() -> str:
    return str(uuid.uuid4())


class QueuedSale(QueueBase):
    """A checkout accepted while offline, waiting to be committed remotely.

    status moves queued -> syncing -> (deleted | failed). "done" is only ever
    a transient marker written right before the row is deleted.
    """
    __tablename__ = "queued_sales"

    id = Column(String(64), primary_key=True, default=new_id)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    subtotal_cents = Column(Integer, nullable=False)
    total_cents = Column(Integer, nullable=False)
    payment_method = Column(String(16), nullable=False)
    cash_received_cents = Column(Integer, nullable=True)
    change_cents = Column(Integer, nullable=True)
    items_count = Column(Integer, nullable=False, default=0)

    status = Column(String(16), nullable=False, default=QueueStatus.QUEUED.value)
    error = Column(Text, nullable=True)
    status_updated_at = Column(DateTime, nullable=True, default=utcnow)

    items = relationship(
        "QueuedSaleItem",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="QueuedSaleItem.position",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_queued_sales_status", "status"),
        Index("ix_queued_sales_created_at", "created_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "created_at": to_utc_z(self.created_at),
            "subtotal_cents": self.subtotal_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "cash_received_cents": self.cash_received_cents,
            "change_cents": self.change_cents,
            "items_count": self.items_count,
            "status": self.status,
            "error": self.error,
            "status_updated_at": to_utc_z(self.status_updated_at),
        }


class QueuedSaleItem(QueueBase):
    """Line snapshot taken at enqueue time.

    Name, category and unit price are copied so the queue stays
    self-describing even if the catalog changes before the sale syncs.
    """
    __tablename__ = "queued_sale_items"

    id = Column(String(64), primary_key=True, default=new_id)
    sale_id = Column(String(64), ForeignKey("queued_sales.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    product_id = Column(Integer, nullable=False)
    product_name = Column(String(255), nullable=False)
    category = Column(String(128), nullable=True)

    unit_price_cents = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False)
    line_total_cents = Column(Integer, nullable=False)

    sale = relationship("QueuedSale", back_populates="items")

    __table_args__ = (
        Index("ix_queued_sale_items_sale_id", "sale_id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "category": self.category,
            "unit_price_cents": self.unit_price_cents,
            "quantity": self.quantity,
            "line_total_cents": self.line_total_cents,
        }


class ProductsCache(QueueBase):
    """Last catalog snapshot fetched while online, keyed by name (one row: 'all')."""
    __tablename__ = "products_cache"

    key = Column(String(32), primary_key=True)
    products = Column(JSON, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
