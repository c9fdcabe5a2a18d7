# Overview: FIFO consumption engine; turns a requested quantity into batch decrements, COGS and revenue.

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..errors import InsufficientStock, PosError, ValidationError
from ..extensions import db
from ..models import Batch
from .concurrency import remote_call, run_with_retry
from .ledger_service import adjust_product_stock, open_batches_query, prune_exhausted_batches


@dataclass
class ConsumeResult:
    product_id: int
    consumed_quantity: int = 0
    cogs_cents: int = 0
    revenue_cents: int = 0
    # Set when the batches were consumed but Product.stock could not be updated
    stock_cache_error: str | None = None

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "consumed_quantity": self.consumed_quantity,
            "cogs_cents": self.cogs_cents,
            "revenue_cents": self.revenue_cents,
            "stock_cache_error": self.stock_cache_error,
        }


@dataclass
class ConsumeManyResult:
    cogs_cents: int = 0
    revenue_cents: int = 0
    details: list[ConsumeResult] = field(default_factory=list)

    def add(self, result: ConsumeResult) -> None:
        self.cogs_cents += result.cogs_cents
        self.revenue_cents += result.revenue_cents
        self.details.append(result)

    def cogs_for(self, product_id: int) -> int:
        return sum(d.cogs_cents for d in self.details if d.product_id == product_id)


def plan_fifo(batches: list[Batch], quantity: int) -> tuple[list[tuple[Batch, int]], int]:
    """
    Walk batches oldest-first and decide how much to take from each.

    Returns ([(batch, take), ...], still_needed). Pure: nothing is mutated.
    """
    takes: list[tuple[Batch, int]] = []
    still_needed = quantity
    for batch in batches:
        if still_needed <= 0:
            break
        take = min(batch.remaining_quantity, still_needed)
        if take <= 0:
            continue
        takes.append((batch, take))
        still_needed -= take
    return takes, still_needed


def consume(product_id: int, quantity: int, *, prune: bool = True) -> ConsumeResult:
    """
    Consume `quantity` units of a product from its open batches in FIFO order.

    The walk and the batch writes happen in one session commit. Each batch
    write is version-checked; if another register changed a batch under us the
    whole walk is redone from fresh reads.

    Raises InsufficientStock (with .partial holding what the walk could cover)
    when the open batches cannot supply the full quantity. In that case no
    batch is written.

    After the batches commit, Product.stock moves by -consumed_quantity. If
    that cache write fails the consume still stands; the failure is logged and
    returned on the result.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer", details={"product_id": product_id})

    def _op() -> ConsumeResult:
        batches = open_batches_query(product_id).all()
        takes, still_needed = plan_fifo(batches, quantity)

        result = ConsumeResult(product_id=product_id)
        for batch, take in takes:
            result.consumed_quantity += take
            result.cogs_cents += take * batch.bought_price_cents
            result.revenue_cents += take * batch.selling_price_cents

        if still_needed > 0:
            db.session.rollback()
            raise InsufficientStock(
                "Insufficient batch stock",
                details={
                    "product_id": product_id,
                    "requested_quantity": quantity,
                    "available_quantity": quantity - still_needed,
                },
                partial=result,
            )

        for batch, take in takes:
            batch.remaining_quantity -= take
        db.session.commit()
        return result

    result = remote_call(run_with_retry, _op)

    try:
        adjust_product_stock(product_id, -result.consumed_quantity)
    except PosError as exc:
        current_app.logger.warning(
            "Consumed %s units of product %s but failed to update stock cache: %s",
            result.consumed_quantity, product_id, exc,
        )
        result.stock_cache_error = str(exc)

    if prune:
        try:
            prune_exhausted_batches(product_id)
        except PosError as exc:
            current_app.logger.warning("Pruning exhausted batches for product %s failed: %s", product_id, exc)

    return result


def consume_many(items) -> ConsumeManyResult:
    """
    Consume every (product_id, quantity) pair in order.

    The first InsufficientStock stops the run and is re-raised with .partial
    set to the aggregate of the items consumed before it. Those earlier items
    stay consumed: there is no compensating write, so callers validate total
    availability before calling this.
    """
    aggregate = ConsumeManyResult()
    for product_id, quantity in items:
        try:
            result = consume(product_id, quantity)
        except InsufficientStock as exc:
            raise InsufficientStock(str(exc), details=exc.details, partial=aggregate) from exc
        aggregate.add(result)
    return aggregate
