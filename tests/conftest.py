"""
Pytest fixtures for posledger tests.

Provides the in-memory app, a per-test table wipe, the test client and a
product factory.
"""

import pytest

from posledger import create_app
from posledger.extensions import db
from posledger.models import Product


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DB_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory for committed products. Defaults: 10.00, 0% tax, 10 on hand."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        fields = {
            "sku": f"SKU-{counter['n']:03d}",
            "name": f"Product {counter['n']}",
            "unit_price_cents": 1000,
            "tax_rate_bps": 0,
            "stock_quantity": 10,
            "reorder_level": 0,
        }
        fields.update(overrides)
        product = Product(**fields)
        db_session.add(product)
        db_session.commit()
        return product

    return _make


def stock_of(product_id: int) -> int:
    """Current on-hand figure, bypassing the identity map."""
    db.session.expire_all()
    return db.session.get(Product, product_id).stock_quantity
