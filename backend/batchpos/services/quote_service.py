# Overview: Read-only FIFO price quoting for carts; never writes to the ledger.

from __future__ import annotations

from dataclasses import dataclass

from ..errors import ValidationError
from ..extensions import db
from ..models import Batch, Product
from .concurrency import remote_call
from .fifo_service import plan_fifo
from .ledger_service import open_batches_query


@dataclass
class CartLine:
    """A checkout line with the unit price the customer will be charged."""
    product_id: int
    name: str
    quantity: int
    unit_price_cents: int
    category: str | None = None
    # Last known aggregate stock; only consulted when the remote store is unreachable
    stock: int | None = None

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "category": self.category,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


def _fifo_revenue(product_id: int, quantity: int, offset: int = 0) -> int:
    """Revenue of `quantity` units taken after the first `offset` units of the walk."""
    batches = open_batches_query(product_id).all()
    takes, _ = plan_fifo(batches, offset + quantity)
    skip = offset
    revenue = 0
    for batch, take in takes:
        skipped = min(skip, take)
        skip -= skipped
        revenue += (take - skipped) * batch.selling_price_cents
    return revenue


def quote(items) -> int:
    """
    Revenue the FIFO walk would produce for [(product_id, quantity), ...].

    Lines naming the same product continue the walk where the previous one
    stopped, exactly as consume_many would. Products without open batches
    contribute 0; a short product contributes only what its batches cover.
    """
    def _op():
        total = 0
        taken: dict[int, int] = {}
        for product_id, quantity in items:
            if quantity <= 0:
                continue
            offset = taken.get(product_id, 0)
            total += _fifo_revenue(product_id, quantity, offset)
            taken[product_id] = offset + quantity
        return total
    return remote_call(_op)


def quote_unit_price(product_id: int, quantity: int, *, offset: int = 0) -> int:
    """
    FIFO unit price for buying `quantity` units right now (integer cents, half-up).

    `offset` units are assumed already taken by earlier lines of the same cart.
    0 means "no batch price available": callers fall back to the nominal price.
    """
    if quantity <= 0:
        return 0
    revenue = remote_call(_fifo_revenue, product_id, quantity, offset)
    if revenue <= 0:
        return 0
    return (revenue + quantity // 2) // quantity


def next_batch_price(product_id: int) -> int | None:
    """Selling price of the oldest open batch, or None when nothing is open."""
    def _op():
        batch = open_batches_query(product_id).with_entities(Batch.selling_price_cents).first()
        return batch.selling_price_cents if batch else None
    return remote_call(_op)


def price_cart(lines) -> list[CartLine]:
    """
    Build priced cart lines from [{"product_id", "quantity"}, ...].

    Each unit price is the FIFO quote, continuing the walk across lines of
    the same product; a non-positive quote falls back to Product.price_cents,
    since a real batch price is always positive.
    """
    priced: list[CartLine] = []
    taken: dict[int, int] = {}
    for raw in lines:
        product_id = raw["product_id"]
        quantity = raw["quantity"]
        product = remote_call(db.session.get, Product, product_id)
        if product is None:
            raise ValidationError("product not found", details={"product_id": product_id})

        offset = taken.get(product_id, 0)
        unit_price = quote_unit_price(product_id, quantity, offset=offset)
        taken[product_id] = offset + quantity
        if unit_price <= 0:
            unit_price = product.price_cents or 0

        priced.append(
            CartLine(
                product_id=product.id,
                name=product.name,
                category=product.category,
                quantity=quantity,
                unit_price_cents=unit_price,
                stock=product.stock,
            )
        )
    return priced
