import pytest

from batchpos.errors import ValidationError
from batchpos.services import fifo_service, quote_service


def test_quote_walks_batches_without_writing(make_product, add_batch):
    product = make_product()
    first = add_batch(product, 5, 1000, 1500, minutes=1)
    add_batch(product, 5, 2000, 2500, minutes=2)

    assert quote_service.quote([(product.id, 7)]) == 5 * 1500 + 2 * 2500
    assert quote_service.quote([(product.id, 7)]) == 5 * 1500 + 2 * 2500
    assert first.remaining_quantity == 5


def test_quote_short_product_counts_only_what_is_covered(make_product, add_batch):
    product = make_product()
    add_batch(product, 2, 100, 300)

    assert quote_service.quote([(product.id, 5)]) == 600


def test_quote_product_without_batches_is_zero(make_product):
    product = make_product()
    assert quote_service.quote([(product.id, 3)]) == 0


def test_quote_unit_price_rounds_half_up(make_product, add_batch):
    product = make_product()
    add_batch(product, 1, 100, 100, minutes=1)
    add_batch(product, 1, 100, 101, minutes=2)

    # 201 / 2 = 100.5
    assert quote_service.quote_unit_price(product.id, 2) == 101


def test_quote_unit_price_zero_when_nothing_open(make_product):
    product = make_product()
    assert quote_service.quote_unit_price(product.id, 1) == 0
    assert quote_service.quote_unit_price(product.id, 0) == 0


def test_next_batch_price(make_product, add_batch):
    product = make_product()
    assert quote_service.next_batch_price(product.id) is None

    add_batch(product, 1, 100, 700, minutes=5)
    add_batch(product, 1, 100, 650, minutes=1)

    assert quote_service.next_batch_price(product.id) == 650


def test_price_cart_uses_fifo_price_then_nominal(make_product, add_batch):
    stocked = make_product(name="Stocked", price_cents=999)
    empty = make_product(name="Empty", price_cents=450, category="Snacks")
    add_batch(stocked, 3, 100, 300)

    lines = quote_service.price_cart([
        {"product_id": stocked.id, "quantity": 2},
        {"product_id": empty.id, "quantity": 1},
    ])

    assert [line.unit_price_cents for line in lines] == [300, 450]
    assert lines[0].stock == 3
    assert lines[1].category == "Snacks"
    assert lines[0].line_total_cents == 600


def test_price_cart_unknown_product(db_session):
    with pytest.raises(ValidationError):
        quote_service.price_cart([{"product_id": 424242, "quantity": 1}])


def test_quote_continues_walk_across_lines_of_same_product(make_product, add_batch):
    product = make_product()
    add_batch(product, 5, 100, 100, minutes=1)
    add_batch(product, 5, 100, 200, minutes=2)

    quoted = quote_service.quote([(product.id, 5), (product.id, 5)])
    consumed = fifo_service.consume_many([(product.id, 5), (product.id, 5)])

    assert quoted == 1500
    assert consumed.revenue_cents == quoted


def test_price_cart_prices_repeated_product_lines_in_fifo_order(make_product, add_batch):
    product = make_product(price_cents=999)
    add_batch(product, 2, 50, 100, minutes=1)
    add_batch(product, 3, 50, 200, minutes=2)

    lines = quote_service.price_cart([
        {"product_id": product.id, "quantity": 2},
        {"product_id": product.id, "quantity": 2},
        {"product_id": product.id, "quantity": 2},
    ])

    # third line runs one unit past the ledger and is priced on what remains
    assert [line.unit_price_cents for line in lines] == [100, 200, 100]
