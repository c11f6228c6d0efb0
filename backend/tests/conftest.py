"""
Pytest fixtures for sale engine tests.

Provides the in-memory application, a per-test table wipe, and product and
promotion factories.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from sale_engine import create_app
from sale_engine.extensions import db
from sale_engine.models import Product, Promotion
from sale_engine.time_utils import utcnow

from helpers import ADMIN_TOKEN


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ADMIN_API_TOKEN': ADMIN_TOKEN,
        'STOCK_RETRY_BACKOFF_SECONDS': 0,
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
        db.session.rollback()
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(price="100.00", stock=10, ...)."""
    counter = {"n": 0}

    def _make(price="100.00", stock=10, minimum_stock=0, name=None, code=None):
        counter["n"] += 1
        product = Product(
            product_code=code or f"PROD-{counter['n']:03d}",
            name=name or f"Product {counter['n']}",
            price=Decimal(price),
            stock_quantity=stock,
            minimum_stock=minimum_stock,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def make_promotion(db_session):
    """
    Factory: make_promotion(products, "percentage", "20").

    Defaults to a window that started a day ago and ends in a day.
    """
    def _make(products, discount_type="percentage", discount_value="10", *,
              start=None, end=None, is_active=True, name=None):
        now = utcnow()
        promo = Promotion(
            name=name or f"{discount_type} {discount_value}",
            discount_type=discount_type,
            discount_value=Decimal(discount_value),
            start_date=start or now - timedelta(days=1),
            end_date=end or now + timedelta(days=1),
            is_active=is_active,
        )
        promo.products = list(products)
        db_session.add(promo)
        db_session.commit()
        return promo

    return _make

