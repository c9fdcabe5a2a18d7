from datetime import datetime

import pytest

from batchpos.errors import ValidationError
from batchpos.extensions import db
from batchpos.models import Batch, Product
from batchpos.services import ledger_service, products_service


def _ledger_sum(product_id):
    return sum(b.remaining_quantity for b in db.session.query(Batch).filter_by(product_id=product_id))


def test_open_batches_are_fifo_ordered_with_id_tiebreak(make_product, add_batch):
    product = make_product()
    late = add_batch(product, 5, 100, 200, minutes=10)
    early = add_batch(product, 5, 100, 200, minutes=0)
    tie_a = add_batch(product, 5, 100, 200, minutes=5)
    tie_b = add_batch(product, 5, 100, 200, minutes=5)

    ids = [b.id for b in ledger_service.list_open_batches(product.id)]

    assert ids == [early.id, tie_a.id, tie_b.id, late.id]


def test_open_batches_skip_exhausted(make_product, add_batch):
    product = make_product()
    first = add_batch(product, 5, 100, 200, minutes=0)
    second = add_batch(product, 5, 100, 200, minutes=1)
    first.remaining_quantity = 0
    db.session.commit()

    assert [b.id for b in ledger_service.list_open_batches(product.id)] == [second.id]


def test_create_batch_sets_remaining_to_quantity(make_product):
    product = make_product()

    batch = ledger_service.create_batch(product.id, 400, 12, 900)

    assert batch.quantity == 12
    assert batch.remaining_quantity == 12
    assert batch.bought_price_cents == 400
    assert batch.selling_price_cents == 900


@pytest.mark.parametrize(
    "bought, quantity, selling",
    [
        (100, 0, 200),
        (100, -3, 200),
        (-1, 5, 200),
        (100, 5, 0),
    ],
)
def test_create_batch_rejects_bad_input(make_product, bought, quantity, selling):
    product = make_product()

    with pytest.raises(ValidationError):
        ledger_service.create_batch(product.id, bought, quantity, selling)

    assert db.session.query(Batch).filter_by(product_id=product.id).count() == 0


def test_create_batch_allows_zero_cost(make_product):
    product = make_product()
    batch = ledger_service.create_batch(product.id, 0, 3, 100)
    assert batch.bought_price_cents == 0


def test_create_batch_unknown_product(db_session):
    with pytest.raises(ValidationError):
        ledger_service.create_batch(999_999, 100, 1, 200)


def test_add_stock_batch_keeps_cache_in_step(make_product, add_batch):
    product = make_product()
    add_batch(product, 4, 100, 200)
    add_batch(product, 6, 120, 220, minutes=1)

    db.session.refresh(product)
    assert product.stock == 10
    assert _ledger_sum(product.id) == 10
    assert ledger_service.get_ledger_stock(product.id) == 10


def test_update_batch_price(make_product, add_batch):
    product = make_product()
    batch = add_batch(product, 4, 100, 200)

    updated = ledger_service.update_batch_price(batch.id, 350)

    assert updated.selling_price_cents == 350
    assert updated.bought_price_cents == 100


@pytest.mark.parametrize("price", [0, -10])
def test_update_batch_price_rejects_non_positive(make_product, add_batch, price):
    product = make_product()
    batch = add_batch(product, 4, 100, 200)

    with pytest.raises(ValidationError):
        ledger_service.update_batch_price(batch.id, price)


def test_delete_batch_takes_remaining_out_of_stock(make_product, add_batch):
    product = make_product()
    keep = add_batch(product, 4, 100, 200)
    drop = add_batch(product, 6, 100, 200, minutes=1)

    assert ledger_service.delete_batch(drop.id) is True

    db.session.refresh(product)
    assert product.stock == 4
    assert [b.id for b in ledger_service.list_batches(product.id)] == [keep.id]


def test_delete_missing_batch_is_noop(db_session):
    assert ledger_service.delete_batch(123_456) is False


def test_prune_exhausted_batches_only_removes_empty(make_product, add_batch):
    product = make_product()
    empty = add_batch(product, 2, 100, 200)
    full = add_batch(product, 3, 100, 200, minutes=1)
    empty.remaining_quantity = 0
    product.stock = 3
    db.session.commit()
    empty_id = empty.id

    assert ledger_service.prune_exhausted_batches(product.id) == 1
    db.session.expire_all()

    remaining = ledger_service.list_batches(product.id)
    assert [b.id for b in remaining] == [full.id]
    assert db.session.get(Batch, empty_id) is None
    # pruning twice is harmless
    assert ledger_service.prune_exhausted_batches(product.id) == 0


def test_adjust_product_stock_clamps_at_zero(make_product, add_batch):
    product = make_product()
    add_batch(product, 2, 100, 200)

    ledger_service.adjust_product_stock(product.id, -5)

    db.session.refresh(product)
    assert product.stock == 0


def test_reconcile_product_stock_repairs_drift(make_product, add_batch):
    product = make_product()
    add_batch(product, 7, 100, 200)
    product.stock = 99
    db.session.commit()

    ledger_service.reconcile_product_stock(product.id)

    db.session.refresh(product)
    assert product.stock == 7


def test_new_product_initial_stock_opens_a_batch(db_session):
    product = products_service.create_product(
        name="Tea", price_cents=450, stock=8, bought_price_cents=200, category="Drinks"
    )

    batches = ledger_service.list_batches(product.id)
    assert len(batches) == 1
    assert batches[0].remaining_quantity == 8
    assert batches[0].selling_price_cents == 450
    assert batches[0].bought_price_cents == 200
    assert product.stock == _ledger_sum(product.id) == 8


def test_version_column_bumps_on_update(make_product, add_batch):
    product = make_product()
    batch = add_batch(product, 4, 100, 200)
    before = batch.version_id

    ledger_service.update_batch_price(batch.id, 300)

    db.session.refresh(batch)
    assert batch.version_id == before + 1


def test_update_missing_batch_returns_none(db_session):
    assert ledger_service.update_batch_price(123_456, 300) is None
