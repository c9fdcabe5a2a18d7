from __future__ import annotations

from ..extensions import db
from batchpos.time_utils import to_utc_z


class Sale(db.Model):
    """
    Committed, authoritative sale. Append-only once written.

    client_sale_id is the queue id of a sale that was saved offline and
    synced later. It is unique, so replaying the same queued sale twice
    cannot create two remote sales.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_sale_id = db.Column(db.String(64), nullable=True, unique=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(16), nullable=False)
    cash_received_cents = db.Column(db.Integer, nullable=True)
    change_cents = db.Column(db.Integer, nullable=True)

    # FIFO figures at the time inventory was consumed
    cogs_cents = db.Column(db.Integer, nullable=False, default=0)
    revenue_cents = db.Column(db.Integer, nullable=False, default=0)

    items_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    items = db.relationship("SaleItem", backref="sale", lazy=True, order_by="SaleItem.id")

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "client_sale_id": self.client_sale_id,
            "subtotal_cents": self.subtotal_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "cash_received_cents": self.cash_received_cents,
            "change_cents": self.change_cents,
            "cogs_cents": self.cogs_cents,
            "revenue_cents": self.revenue_cents,
            "items_count": self.items_count,
            "created_at": to_utc_z(self.created_at),
            "synced_at": to_utc_z(self.synced_at) if self.synced_at else None,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """One line per product in a committed sale; snapshots name, price and cost."""
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=True)

    unit_price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)
    line_cogs_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

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
            "line_cogs_cents": self.line_cogs_cents,
            "created_at": to_utc_z(self.created_at),
        }
