"""
Pytest fixtures for deposit engine tests.

Provides an in-memory database, a per-test table wipe, a test client, and
product factories that stock the ledger through the public receive path.
"""

import itertools

import pytest
from deposit_engine import create_app
from deposit_engine.extensions import db
from deposit_engine.models import Product
from deposit_engine.services.deposit_service import DepositItemSpec, PartExchangeSpec, PaymentSpec
from deposit_engine.services.stock_ledger_service import receive_stock


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TX_RETRY_ATTEMPTS': 1,
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


_sku_counter = itertools.count(1)


@pytest.fixture(scope='function')
def make_product(db_session):
    """
    Factory: create a committed catalog product, optionally with stock on hand.

    Usage: make_product(stock=3, unit_cost_cents=300, is_consignment=True, ...)
    """
    def _make(*, stock=0, name=None, price_cents=500, unit_cost_cents=300, **fields):
        n = next(_sku_counter)
        product = Product(
            sku=f"TEST-{n:04d}",
            name=name or f"Test Ring {n}",
            price_cents=price_cents,
            unit_cost_cents=unit_cost_cents,
            **fields,
        )
        db_session.add(product)
        db_session.commit()
        if stock:
            receive_stock(product_id=product.id, quantity=stock, unit_cost_cents=unit_cost_cents)
        return product

    return _make


@pytest.fixture(scope='function')
def product(make_product):
    """A single non-consigned product with 5 units on hand."""
    return make_product(stock=5, name="Gold Ring")


def catalog_item(product_id, *, quantity=1, unit_price_cents=500, unit_cost_cents=None):
    return DepositItemSpec(
        product_id=product_id,
        product_name="",
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        unit_cost_cents=unit_cost_cents,
    )


def custom_item(name="Custom Engraved Band", *, quantity=1, unit_price_cents=800, unit_cost_cents=450):
    return DepositItemSpec(
        product_name=name,
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        unit_cost_cents=unit_cost_cents,
        is_custom_order=True,
    )


def trade_in(name="Old Watch", *, allowance_cents=100, serial=None):
    return PartExchangeSpec(product_name=name, allowance_cents=allowance_cents, serial=serial)


def cash(amount_cents):
    return PaymentSpec(amount_cents=amount_cents, payment_method="cash")
