"""
Pytest fixtures for batchpos backend tests.

Provides an app over in-memory SQLite (remote store) plus an in-memory local
queue, per-test data wipes, and small factories for products and batches.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import delete

from batchpos import create_app
from batchpos.extensions import db
from batchpos.models import ProductsCache, QueuedSale, QueuedSaleItem
from batchpos.services import ledger_service, products_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'QUEUE_DATABASE_URL': 'sqlite://',
        'SYNC_STALE_THRESHOLD_SECONDS': 120,
        'FORCE_OFFLINE': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()
        app.extensions['sale_queue'].dispose()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh remote tables and an empty local queue for each test."""
    with app.app_context():
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        with app.extensions['sale_queue'].session() as session:
            session.execute(delete(QueuedSaleItem))
            session.execute(delete(QueuedSale))
            session.execute(delete(ProductsCache))

        app.config['FORCE_OFFLINE'] = False

        yield db.session

        db.session.rollback()
        app.config['FORCE_OFFLINE'] = False


@pytest.fixture(scope='function')
def queue(app, db_session):
    return app.extensions['sale_queue']


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: product with no stock unless batches are added."""
    def _make(name="Widget", price_cents=1500, category="General"):
        return products_service.create_product(name=name, price_cents=price_cents, category=category)
    return _make


BASE_TIME = datetime(2026, 1, 1, 9, 0, 0)


@pytest.fixture(scope='function')
def add_batch(db_session):
    """Factory: restock a product with a batch created `minutes` after a fixed base time."""
    def _add(product, quantity, bought_price_cents, selling_price_cents, minutes=0):
        return ledger_service.add_stock_batch(
            product.id,
            bought_price_cents,
            quantity,
            selling_price_cents,
            created_at=BASE_TIME + timedelta(minutes=minutes),
        )
    return _add
