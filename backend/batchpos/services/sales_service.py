"""
Sales Service - checkout orchestration

Checkout runs a small state machine:

    Validating -> Committing -> Committed | Queued | Rejected

- Validating: cart shape, payment guard, stock pre-check. Failures raise
  ValidationError / InsufficientStock (Rejected).
- Committing (only while online): FIFO-consume every line, then write the
  Sale and its SaleItems remotely.
    * ConnectivityError anywhere           -> Queued
    * InsufficientStock from the engine    -> Rejected (raised)
    * RemoteWriteError after consumption   -> Queued, because inventory has
      already moved and the sale must be recorded somewhere
- Offline: straight to Queued; the remote ledger is not touched.

The stock pre-check is not done under a lock. Two registers can both pass it
for the last unit; the FIFO engine then refuses the loser.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..errors import ConnectivityError, InsufficientStock, RemoteWriteError, ValidationError
from ..extensions import db
from ..models import Product, Sale, SaleItem
from ..time_utils import utcnow
from ..validation import coerce_int, enforce_rules_payment
from .concurrency import probe_remote, remote_call
from .fifo_service import ConsumeManyResult, consume_many
from .ledger_service import get_ledger_stock
from .queue_service import SaleQueue
from .quote_service import CartLine

STATE_COMMITTED = "committed"
STATE_QUEUED = "queued"


@dataclass
class CheckoutResult:
    state: str
    receipt: dict
    sale: Sale | None = None
    queued_id: str | None = None
    cogs_cents: int | None = None
    revenue_cents: int | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "state": self.state,
            "sale": self.sale.to_dict(include_items=True) if self.sale is not None else None,
            "queued_id": self.queued_id,
            "cogs_cents": self.cogs_cents,
            "revenue_cents": self.revenue_cents,
            "receipt": self.receipt,
            "warnings": self.warnings,
        }


@dataclass
class Tender:
    payment_method: str
    subtotal_cents: int
    total_cents: int
    cash_received_cents: int | None = None
    change_cents: int | None = None


def _validate_cart(cart: list[CartLine]) -> None:
    if not cart:
        raise ValidationError("Cart is empty")
    for line in cart:
        line.quantity = coerce_int("quantity", line.quantity)
        if line.quantity <= 0:
            raise ValidationError("quantity must be > 0", details={"product_id": line.product_id})
        line.unit_price_cents = coerce_int("unit_price_cents", line.unit_price_cents)
        if line.unit_price_cents < 0:
            raise ValidationError("unit_price_cents must be >= 0", details={"product_id": line.product_id})


def build_tender(cart: list[CartLine], payment_method: str, cash_received_cents=None) -> Tender:
    """
    Totals plus the cash guard. Tax is always 0, so total == subtotal.

    Cash needs a positive amount received that covers the total; change is
    received - total. Amounts are integer cents, so the 2-decimal rounding is
    exact.
    """
    enforce_rules_payment(payment_method)
    subtotal = sum(line.line_total_cents for line in cart)
    tender = Tender(payment_method=payment_method, subtotal_cents=subtotal, total_cents=subtotal)

    if payment_method == "cash":
        if cash_received_cents is None:
            raise ValidationError("cash_received_cents is required for cash payments")
        received = coerce_int("cash_received_cents", cash_received_cents)
        if received <= 0:
            raise ValidationError("cash_received_cents must be > 0")
        if received < tender.total_cents:
            raise ValidationError(
                "Cash received is less than the total",
                details={"total_cents": tender.total_cents, "cash_received_cents": received},
            )
        tender.cash_received_cents = received
        tender.change_cents = received - tender.total_cents

    return tender


def _requested_by_product(lines) -> dict[int, int]:
    totals: dict[int, int] = {}
    for product_id, quantity in lines:
        totals[product_id] = totals.get(product_id, 0) + quantity
    return totals


def validate_on_hand(lines, *, known_stock: dict[int, int | None] | None = None, use_remote: bool = True) -> None:
    """
    Pre-check that every product can cover its requested quantity.

    With use_remote the ledger sum is read; otherwise the last known stock is
    used, and products without a known figure are let through.
    """
    insufficient = []
    for product_id, qty in _requested_by_product(lines).items():
        if use_remote:
            on_hand = get_ledger_stock(product_id)
        else:
            on_hand = (known_stock or {}).get(product_id)
            if on_hand is None:
                continue
        if on_hand < qty:
            insufficient.append({
                "product_id": product_id,
                "requested_quantity": qty,
                "on_hand": on_hand,
            })

    if insufficient:
        raise InsufficientStock(
            "Insufficient stock for one or more items",
            details={"items": insufficient},
        )


def record_sale(
    tender: Tender,
    lines: list[dict],
    consumption: ConsumeManyResult,
    *,
    client_sale_id: str | None = None,
    created_at: datetime | None = None,
) -> Sale:
    """
    Write the Sale header and one SaleItem per line in a single commit.

    `lines` carry the price actually charged (product_id, product_name,
    category, unit_price_cents, quantity, line_total_cents). Per-line COGS
    comes from the consumption details for that product.
    """
    def _op():
        sale = Sale(
            client_sale_id=client_sale_id,
            subtotal_cents=tender.subtotal_cents,
            total_cents=tender.total_cents,
            payment_method=tender.payment_method,
            cash_received_cents=tender.cash_received_cents,
            change_cents=tender.change_cents,
            cogs_cents=consumption.cogs_cents,
            revenue_cents=consumption.revenue_cents,
            items_count=sum(int(line["quantity"]) for line in lines),
        )
        if created_at is not None:
            sale.created_at = created_at
            sale.synced_at = utcnow()
        db.session.add(sale)
        db.session.flush()

        cogs_left = {d.product_id: consumption.cogs_for(d.product_id) for d in consumption.details}
        for line in lines:
            # A product split over several lines carries its COGS on the first one
            line_cogs = cogs_left.pop(line["product_id"], 0)
            db.session.add(
                SaleItem(
                    sale_id=sale.id,
                    product_id=line["product_id"],
                    product_name=line["product_name"],
                    category=line.get("category"),
                    unit_price_cents=line["unit_price_cents"],
                    quantity=line["quantity"],
                    line_total_cents=line["line_total_cents"],
                    line_cogs_cents=line_cogs,
                )
            )
        db.session.commit()
        return sale

    return remote_call(_op)


def find_sale_by_client_id(client_sale_id: str) -> Sale | None:
    return remote_call(lambda: db.session.query(Sale).filter_by(client_sale_id=client_sale_id).first())


def _line_snapshots(cart: list[CartLine]) -> list[dict]:
    return [
        {
            "product_id": line.product_id,
            "product_name": line.name,
            "category": line.category,
            "unit_price_cents": line.unit_price_cents,
            "quantity": line.quantity,
            "line_total_cents": line.line_total_cents,
        }
        for line in cart
    ]


def build_receipt(cart: list[CartLine], tender: Tender, *, saved_offline: bool) -> dict:
    """Payload for the external receipt renderer. The core never formats or prints."""
    receipt = {
        "items": [line.to_dict() for line in cart],
        "subtotal_cents": tender.subtotal_cents,
        "tax_cents": 0,
        "total_cents": tender.total_cents,
        "payment_method": tender.payment_method,
        "saved_offline": saved_offline,
    }
    if tender.cash_received_cents is not None:
        receipt["cash_received_cents"] = tender.cash_received_cents
        receipt["change_cents"] = tender.change_cents
    return receipt


def _enqueue(queue: SaleQueue, cart: list[CartLine], tender: Tender, reason: str) -> CheckoutResult:
    queued_id = queue.enqueue(
        {
            "subtotal_cents": tender.subtotal_cents,
            "total_cents": tender.total_cents,
            "payment_method": tender.payment_method,
            "cash_received_cents": tender.cash_received_cents,
            "change_cents": tender.change_cents,
            "items_count": sum(line.quantity for line in cart),
        },
        _line_snapshots(cart),
    )
    current_app.logger.warning("Sale saved offline as %s (%s)", queued_id, reason)
    return CheckoutResult(
        state=STATE_QUEUED,
        receipt=build_receipt(cart, tender, saved_offline=True),
        queued_id=queued_id,
        warnings=[reason],
    )


def checkout(
    cart: list[CartLine],
    *,
    payment_method: str,
    queue: SaleQueue,
    cash_received_cents=None,
    online: bool | None = None,
) -> CheckoutResult:
    """
    Run one checkout through Validating -> Committing -> Committed/Queued.

    `online` None means "probe the remote store". Rejections raise
    ValidationError or InsufficientStock; every other outcome returns a
    CheckoutResult the register can treat as a completed sale.
    """
    # Validating
    _validate_cart(cart)
    tender = build_tender(cart, payment_method, cash_received_cents)
    fifo_items = [(line.product_id, line.quantity) for line in cart]

    if online is None:
        online = probe_remote()

    if online:
        try:
            validate_on_hand(fifo_items)
        except ConnectivityError:
            online = False
    if not online:
        validate_on_hand(
            fifo_items,
            known_stock={line.product_id: line.stock for line in cart},
            use_remote=False,
        )
        return _enqueue(queue, cart, tender, "Remote store unreachable")

    # Committing
    try:
        consumption = consume_many(fifo_items)
    except ConnectivityError:
        return _enqueue(queue, cart, tender, "Connection lost while consuming inventory")
    except RemoteWriteError as exc:
        return _enqueue(queue, cart, tender, f"Inventory write failed: {exc}")

    try:
        sale = record_sale(tender, _line_snapshots(cart), consumption)
    except (ConnectivityError, RemoteWriteError) as exc:
        return _enqueue(queue, cart, tender, f"Sale write failed after inventory was consumed: {exc}")

    warnings = [
        f"Stock cache not updated for product {d.product_id}: {d.stock_cache_error}"
        for d in consumption.details
        if d.stock_cache_error
    ]
    return CheckoutResult(
        state=STATE_COMMITTED,
        receipt=build_receipt(cart, tender, saved_offline=False),
        sale=sale,
        cogs_cents=consumption.cogs_cents,
        revenue_cents=consumption.revenue_cents,
        warnings=warnings,
    )


def list_sales(limit: int = 50) -> list[Sale]:
    return remote_call(
        lambda: db.session.query(Sale).order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()
    )


def sales_summary(queue: SaleQueue | None = None) -> dict:
    """Dashboard figures over committed sales plus the local pending-sync count."""
    def _op():
        row = db.session.query(
            func.count(Sale.id).label("count"),
            func.coalesce(func.sum(Sale.total_cents), 0).label("total"),
            func.coalesce(func.sum(Sale.cogs_cents), 0).label("cogs"),
            func.coalesce(func.sum(Sale.items_count), 0).label("items"),
        ).one()
        low_stock = db.session.query(func.count(Product.id)).filter(Product.stock <= 5).scalar()
        return row, int(low_stock or 0)

    row, low_stock = remote_call(_op)
    total = int(row.total or 0)
    cogs = int(row.cogs or 0)
    return {
        "sales_count": int(row.count or 0),
        "items_sold": int(row.items or 0),
        "revenue_cents": total,
        "cogs_cents": cogs,
        "gross_profit_cents": total - cogs,
        "low_stock_products": low_stock,
        "pending_sync": queue.count_pending() if queue is not None else None,
    }
