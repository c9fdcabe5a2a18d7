from __future__ import annotations

from ..extensions import db
from batchpos.time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data.

    STOCK DESIGN DECISION:
    Product.stock is a denormalized cache of SUM(Batch.remaining_quantity).
    The batch ledger is the authority; the FIFO engine and restock path update
    the cache in the same breath as the batches they touch.

    PRICING:
    - price_cents is the nominal selling price shown in the catalog
    - the price actually charged comes from the FIFO batch being consumed,
      falling back to price_cents only when no open batch quotes a price
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_name", "category", "name"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=False, default="General")

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=False, default=0)

    barcode = db.Column(db.String(64), nullable=True, index=True)
    image_url = db.Column(db.String(512), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "price_cents": self.price_cents,
            "stock": self.stock,
            "barcode": self.barcode,
            "image_url": self.image_url,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Batch(db.Model):
    """
    A purchase lot: the unit of inventory truth.

    FIFO CONTRACT: open batches (remaining_quantity > 0) are consumed in
    ascending (created_at, id) order. id breaks created_at ties so the order
    is total.

    version_id makes every remaining_quantity write a compare-and-swap: two
    registers that read the same row cannot both decrement it.
    """
    __tablename__ = "product_batches"
    __table_args__ = (
        db.Index("ix_product_batches_fifo", "product_id", "created_at", "id"),
        db.CheckConstraint("quantity > 0", name="ck_product_batches_quantity_positive"),
        db.CheckConstraint(
            "remaining_quantity >= 0 AND remaining_quantity <= quantity",
            name="ck_product_batches_remaining_range",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    bought_price_cents = db.Column(db.Integer, nullable=False)
    selling_price_cents = db.Column(db.Integer, nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    remaining_quantity = db.Column(db.Integer, nullable=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("batches", lazy=True, passive_deletes=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_exhausted(self) -> bool:
        return self.remaining_quantity == 0

    def __repr__(self) -> str:
        return (
            f"<Batch id={self.id} product_id={self.product_id} "
            f"remaining={self.remaining_quantity}/{self.quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "bought_price_cents": self.bought_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "quantity": self.quantity,
            "remaining_quantity": self.remaining_quantity,
            "exhausted": self.is_exhausted,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
