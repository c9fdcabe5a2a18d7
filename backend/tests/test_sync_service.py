from batchpos.errors import ConnectivityError, RemoteWriteError
from batchpos.extensions import db
from batchpos.models import QueueStatus, Sale, SaleItem
from batchpos.services import fifo_service, ledger_service, sales_service, sync_service
from batchpos.services.quote_service import CartLine


def _queue_offline_sale(queue, product, quantity, unit_price_cents=200):
    cart = [
        CartLine(
            product_id=product.id,
            name=product.name,
            category=product.category,
            quantity=quantity,
            unit_price_cents=unit_price_cents,
        )
    ]
    result = sales_service.checkout(cart, payment_method="card", queue=queue, online=False)
    return result.queued_id


def test_sync_commits_queued_sale_once(make_product, add_batch, queue):
    product = make_product()
    add_batch(product, 5, 100, 250)
    queued_id = _queue_offline_sale(queue, product, 2, unit_price_cents=200)

    report = sync_service.sync_all(queue)

    assert report.synced == [queued_id]
    assert report.failed == []
    assert queue.get(queued_id) is None
    assert ledger_service.get_ledger_stock(product.id) == 3

    sale = db.session.query(Sale).filter_by(client_sale_id=queued_id).one()
    assert sale.total_cents == 400
    assert sale.cogs_cents == 200
    # revenue reflects the batches consumed at sync time
    assert sale.revenue_cents == 500
    assert sale.synced_at is not None
    item = db.session.query(SaleItem).filter_by(sale_id=sale.id).one()
    assert item.unit_price_cents == 200

    # Nothing left to do on a second cycle
    again = sync_service.sync_all(queue)
    assert again.synced == []
    assert ledger_service.get_ledger_stock(product.id) == 3


def test_sync_marks_entry_failed_when_stock_ran_out(make_product, add_batch, queue):
    product = make_product()
    add_batch(product, 2, 100, 200)
    queued_id = _queue_offline_sale(queue, product, 2)
    # Another register sold the stock meanwhile
    fifo_service.consume(product.id, 1)

    report = sync_service.sync_all(queue)

    assert report.synced == []
    assert [err.queued_id for err in report.failed] == [queued_id]
    entry = queue.get(queued_id)
    assert entry.sale.status == QueueStatus.FAILED.value
    assert entry.sale.error
    assert ledger_service.get_ledger_stock(product.id) == 1
    assert db.session.query(Sale).count() == 0


def test_failed_entry_is_retried_next_cycle(make_product, add_batch, queue):
    product = make_product()
    add_batch(product, 1, 100, 200)
    queued_id = _queue_offline_sale(queue, product, 2)

    first = sync_service.sync_all(queue)
    assert [err.queued_id for err in first.failed] == [queued_id]

    add_batch(product, 5, 100, 200, minutes=1)
    second = sync_service.sync_all(queue)

    assert second.synced == [queued_id]
    assert ledger_service.get_ledger_stock(product.id) == 4


def test_sync_stops_cycle_when_remote_unreachable(make_product, add_batch, queue, monkeypatch):
    product = make_product()
    add_batch(product, 10, 100, 200)
    first_id = _queue_offline_sale(queue, product, 1)
    second_id = _queue_offline_sale(queue, product, 1)

    def _down(*args, **kwargs):
        raise ConnectivityError("Remote store unreachable")

    monkeypatch.setattr(sync_service, "find_sale_by_client_id", _down)

    report = sync_service.sync_all(queue)

    assert report.aborted is True
    assert len(report.failed) == 1
    statuses = sorted(queue.get(i).sale.status for i in (first_id, second_id))
    assert statuses == [QueueStatus.FAILED.value, QueueStatus.QUEUED.value]
    assert ledger_service.get_ledger_stock(product.id) == 10


def test_replay_of_already_committed_entry_does_not_consume_again(make_product, add_batch, queue):
    product = make_product()
    add_batch(product, 5, 100, 200)
    queued_id = _queue_offline_sale(queue, product, 2)

    # An earlier attempt committed remotely but never deleted the local entry
    sync_service.sync_all(queue)
    queue.enqueue(
        {"id": queued_id, "subtotal_cents": 400, "total_cents": 400, "payment_method": "card"},
        [{"product_id": product.id, "product_name": "Widget", "unit_price_cents": 200, "quantity": 2}],
    )

    report = sync_service.sync_all(queue)

    assert report.synced == [queued_id]
    assert queue.get(queued_id) is None
    assert ledger_service.get_ledger_stock(product.id) == 3
    assert db.session.query(Sale).filter_by(client_sale_id=queued_id).count() == 1


def test_sync_one_only_touches_target(make_product, add_batch, queue):
    product = make_product()
    add_batch(product, 10, 100, 200)
    first_id = _queue_offline_sale(queue, product, 1)
    second_id = _queue_offline_sale(queue, product, 1)

    report = sync_service.sync_one(queue, second_id)

    assert report.synced == [second_id]
    assert queue.get(first_id) is not None
    assert ledger_service.get_ledger_stock(product.id) == 9


def test_syncing_entries_are_skipped(make_product, add_batch, queue):
    product = make_product()
    add_batch(product, 10, 100, 200)
    queued_id = _queue_offline_sale(queue, product, 1)
    queue.set_status(queued_id, QueueStatus.SYNCING)

    report = sync_service.sync_all(queue)

    assert report.skipped == [queued_id]
    assert ledger_service.get_ledger_stock(product.id) == 10


def test_lookup_rejection_fails_entry_and_cycle_continues(make_product, add_batch, queue, monkeypatch):
    product = make_product()
    add_batch(product, 10, 100, 200)
    first_id = _queue_offline_sale(queue, product, 1)
    second_id = _queue_offline_sale(queue, product, 1)

    def _rejected(*args, **kwargs):
        raise RemoteWriteError("Remote store rejected the operation")

    monkeypatch.setattr(sync_service, "find_sale_by_client_id", _rejected)

    report = sync_service.sync_all(queue)

    assert report.aborted is False
    assert sorted(err.queued_id for err in report.failed) == sorted([first_id, second_id])
    assert all(err.details["stage"] == "lookup" for err in report.failed)
    for queued_id in (first_id, second_id):
        entry = queue.get(queued_id)
        assert entry.sale.status == QueueStatus.FAILED.value
        assert entry.sale.error == "Remote store rejected the operation"
    assert ledger_service.get_ledger_stock(product.id) == 10


def test_sale_write_failure_during_sync_keeps_entry(make_product, add_batch, queue, monkeypatch):
    product = make_product()
    add_batch(product, 10, 100, 200)
    queued_id = _queue_offline_sale(queue, product, 2)

    def _rejected(*args, **kwargs):
        raise RemoteWriteError("sales table locked")

    monkeypatch.setattr(sync_service, "record_sale", _rejected)

    report = sync_service.sync_all(queue)

    assert report.synced == []
    assert [err.queued_id for err in report.failed] == [queued_id]
    assert report.failed[0].details["stage"] == "record"
    entry = queue.get(queued_id)
    assert entry is not None
    assert entry.sale.status == QueueStatus.FAILED.value
    assert entry.sale.error == "sales table locked"
    # Consumed once; the entry consumes again on its next attempt
    assert ledger_service.get_ledger_stock(product.id) == 8
    assert db.session.query(Sale).count() == 0
