# Overview: Batch ledger operations; purchase lots are the sole authority for inventory quantity.

# backend/batchpos/services/ledger_service.py
"""
Batch Ledger Invariants (authoritative)

FIFO contract:
- Open batches are those with remaining_quantity > 0.
- They are consumed in ascending (created_at, id) order. id is the tie-break,
  so no two open batches ever compare equal.

Quantity invariants:
- 0 <= remaining_quantity <= quantity for every batch (DB CHECK + services).
- remaining_quantity only goes down, except through restock (a new batch).
- Product.stock == SUM(remaining_quantity) over the product's batches.
  Every path that changes a batch quantity also moves Product.stock.

Exhausted batches:
- A batch with remaining_quantity == 0 may be deleted at any time. Deleting it
  is storage hygiene only; no FIFO walk or stock figure depends on it.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import Batch, Product
from ..validation import enforce_rules_batch, enforce_rules_selling_price
from .concurrency import remote_call, run_with_retry


def _get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ValidationError("product not found", details={"product_id": product_id})
    return product


def open_batches_query(product_id: int):
    return (
        db.session.query(Batch)
        .filter(Batch.product_id == product_id, Batch.remaining_quantity > 0)
        .order_by(Batch.created_at.asc(), Batch.id.asc())
    )


def list_open_batches(product_id: int) -> list[Batch]:
    """Open batches for a product in FIFO order."""
    return remote_call(lambda: open_batches_query(product_id).all())


def list_batches(product_id: int) -> list[Batch]:
    """All batches (including exhausted ones still on file) in FIFO order."""
    def _op():
        return (
            db.session.query(Batch)
            .filter(Batch.product_id == product_id)
            .order_by(Batch.created_at.asc(), Batch.id.asc())
            .all()
        )
    return remote_call(_op)


def get_ledger_stock(product_id: int) -> int:
    """Aggregate stock straight from the ledger: SUM(remaining_quantity)."""
    def _op():
        total = (
            db.session.query(func.coalesce(func.sum(Batch.remaining_quantity), 0))
            .filter(Batch.product_id == product_id)
            .scalar()
        )
        return int(total or 0)
    return remote_call(_op)


def _insert_batch(
    product_id: int,
    bought_price_cents: int,
    quantity: int,
    selling_price_cents: int,
    created_at: datetime | None,
) -> Batch:
    batch = Batch(
        product_id=product_id,
        bought_price_cents=bought_price_cents,
        selling_price_cents=selling_price_cents,
        quantity=quantity,
        remaining_quantity=quantity,
    )
    if created_at is not None:
        batch.created_at = created_at
    db.session.add(batch)
    db.session.flush()
    return batch


def create_batch(
    product_id: int,
    bought_price_cents: int,
    quantity: int,
    selling_price_cents: int,
    *,
    created_at: datetime | None = None,
) -> Batch:
    """
    Record a purchase lot without touching Product.stock.

    Used when the product's stock figure already accounts for the quantity
    (initial stock on product creation). Restocks go through add_stock_batch.
    """
    enforce_rules_batch(
        bought_price_cents=bought_price_cents,
        quantity=quantity,
        selling_price_cents=selling_price_cents,
    )

    def _op():
        _get_product(product_id)
        batch = _insert_batch(product_id, bought_price_cents, quantity, selling_price_cents, created_at)
        db.session.commit()
        return batch

    return remote_call(_op)


def add_stock_batch(
    product_id: int,
    bought_price_cents: int,
    quantity: int,
    selling_price_cents: int,
    *,
    created_at: datetime | None = None,
) -> Batch:
    """Restock: create a new batch and raise Product.stock by the same quantity, in one commit."""
    enforce_rules_batch(
        bought_price_cents=bought_price_cents,
        quantity=quantity,
        selling_price_cents=selling_price_cents,
    )

    def _op():
        product = _get_product(product_id)
        batch = _insert_batch(product_id, bought_price_cents, quantity, selling_price_cents, created_at)
        product.stock = (product.stock or 0) + quantity
        db.session.commit()
        return batch

    return remote_call(run_with_retry, _op)


def update_batch_price(batch_id: int, selling_price_cents: int) -> Batch | None:
    """Change a batch's selling price. Returns None when the batch is gone; consumed cost is unaffected."""
    enforce_rules_selling_price(selling_price_cents)

    def _op():
        batch = db.session.get(Batch, batch_id)
        if batch is None:
            return None
        batch.selling_price_cents = selling_price_cents
        db.session.commit()
        return batch

    return remote_call(run_with_retry, _op)


def delete_batch(batch_id: int) -> bool:
    """
    Delete a batch unconditionally. Returns False when it was already gone.

    Sale line items snapshot their own price and cost, so no history check is
    made. Whatever the batch still held is taken out of Product.stock.
    """
    def _op():
        batch = db.session.get(Batch, batch_id)
        if batch is None:
            return False
        if batch.remaining_quantity:
            product = db.session.get(Product, batch.product_id)
            if product is not None:
                product.stock = max(0, (product.stock or 0) - batch.remaining_quantity)
        db.session.delete(batch)
        db.session.commit()
        return True

    return remote_call(run_with_retry, _op)


def prune_exhausted_batches(product_id: int) -> int:
    """Delete the product's batches with remaining_quantity == 0. Safe to run or skip at any time."""
    def _op():
        deleted = (
            db.session.query(Batch)
            .filter(Batch.product_id == product_id, Batch.remaining_quantity == 0)
            .delete(synchronize_session=False)
        )
        db.session.commit()
        return int(deleted or 0)

    return remote_call(_op)


def adjust_product_stock(product_id: int, delta: int) -> Product:
    """Move the cached Product.stock by delta (never below zero)."""
    def _op():
        product = _get_product(product_id)
        new_stock = (product.stock or 0) + delta
        if new_stock < 0:
            current_app.logger.warning(
                "Product %s stock cache would go negative (%s); clamping to 0", product_id, new_stock
            )
            new_stock = 0
        product.stock = new_stock
        db.session.commit()
        return product

    return remote_call(run_with_retry, _op)


def reconcile_product_stock(product_id: int) -> Product:
    """Rewrite Product.stock from the ledger sum (repair tool for a drifted cache)."""
    def _op():
        product = _get_product(product_id)
        total = (
            db.session.query(func.coalesce(func.sum(Batch.remaining_quantity), 0))
            .filter(Batch.product_id == product_id)
            .scalar()
        )
        product.stock = int(total or 0)
        db.session.commit()
        return product

    return remote_call(run_with_retry, _op)
