# Overview: Service-layer operations for the product catalog.

from __future__ import annotations

from ..errors import ValidationError
from ..extensions import db
from ..models import Batch, Product
from ..validation import enforce_rules_batch, enforce_rules_product
from .concurrency import remote_call, run_with_retry


def get_product(product_id: int) -> Product:
    product = remote_call(db.session.get, Product, product_id)
    if product is None:
        raise ValidationError("product not found", details={"product_id": product_id})
    return product


def list_products(category: str | None = None) -> list[Product]:
    def _op():
        q = db.session.query(Product)
        if category:
            q = q.filter(Product.category == category)
        return q.order_by(Product.created_at.desc(), Product.id.desc()).all()
    return remote_call(_op)


def create_product(
    *,
    name: str,
    price_cents: int,
    category: str = "General",
    stock: int = 0,
    bought_price_cents: int | None = None,
    barcode: str | None = None,
    image_url: str | None = None,
) -> Product:
    """
    Create a product. Initial stock is recorded as the product's first batch.

    The opening batch is bought at bought_price_cents (0 when unknown) and
    sells at price_cents, so Product.stock and the ledger agree from the start.
    """
    enforce_rules_product({"price_cents": price_cents, "stock": stock})
    if stock and bought_price_cents is None:
        bought_price_cents = 0
    if stock:
        enforce_rules_batch(
            bought_price_cents=bought_price_cents,
            quantity=stock,
            selling_price_cents=price_cents,
        )

    def _op():
        product = Product(
            name=name,
            category=category or "General",
            price_cents=price_cents,
            stock=stock,
            barcode=barcode,
            image_url=image_url,
        )
        db.session.add(product)
        db.session.flush()
        if stock:
            db.session.add(
                Batch(
                    product_id=product.id,
                    bought_price_cents=bought_price_cents,
                    selling_price_cents=price_cents,
                    quantity=stock,
                    remaining_quantity=stock,
                )
            )
        db.session.commit()
        return product

    return remote_call(_op)


def update_product(product_id: int, patch: dict) -> Product:
    """
    Apply a validated patch (name, category, price_cents, barcode, image_url).

    stock is not patchable: it only moves through batches.
    """
    if "stock" in patch:
        raise ValidationError("stock is derived from batches; restock or delete a batch instead")
    enforce_rules_product(patch)

    def _op():
        product = db.session.get(Product, product_id)
        if product is None:
            raise ValidationError("product not found", details={"product_id": product_id})
        for key, value in patch.items():
            setattr(product, key, value)
        db.session.commit()
        return product

    return remote_call(run_with_retry, _op)
