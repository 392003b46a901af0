"""
Concurrency tests against a file-backed SQLite database.

Each worker runs in its own thread with its own app context (and therefore
its own session and connection), so writers really contend for the lock.
"""

import os
import tempfile
import threading

import pytest

from deposit_engine import create_app
from deposit_engine.errors import InsufficientStockError, OverpaymentError
from deposit_engine.extensions import db
from deposit_engine.models import Product, Sale
from deposit_engine.services import deposit_service, payment_service
from deposit_engine.services.stock_ledger_service import get_available, receive_stock

from conftest import cash, catalog_item


@pytest.fixture
def file_app():
    tmpdir = tempfile.TemporaryDirectory()
    db_path = os.path.join(tmpdir.name, "concurrency.db")
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        "TX_RETRY_ATTEMPTS": 3,
    })

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.session.remove()
        db.engine.dispose()
    tmpdir.cleanup()


def _seed_product(app, *, stock):
    with app.app_context():
        product = Product(sku="CONCUR-1", name="Last Ring", price_cents=500, unit_cost_cents=300)
        db.session.add(product)
        db.session.commit()
        product_id = product.id
        receive_stock(product_id=product_id, quantity=stock, unit_cost_cents=300)
        db.session.remove()
    return product_id


def _run_concurrently(app, targets):
    results = []
    lock = threading.Lock()
    barrier = threading.Barrier(len(targets))

    def worker(target):
        with app.app_context():
            try:
                barrier.wait()
                value = target()
                with lock:
                    results.append(("ok", value))
            except Exception as exc:
                with lock:
                    results.append(("error", exc))
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(t,)) for t in targets]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


def test_two_orders_race_for_last_unit(file_app):
    product_id = _seed_product(file_app, stock=1)

    def reserve_last():
        order = deposit_service.create_deposit_order(
            customer_name="Racer",
            items=[catalog_item(product_id, unit_price_cents=500)],
        )
        return order.id

    results = _run_concurrently(file_app, [reserve_last, reserve_last])

    outcomes = sorted(kind for kind, _ in results)
    assert outcomes == ["error", "ok"]
    error = next(value for kind, value in results if kind == "error")
    assert isinstance(error, InsufficientStockError)
    assert error.details["available"] == 0

    with file_app.app_context():
        assert get_available(product_id) == 0
        assert len(deposit_service.list_orders()) == 1
        db.session.remove()


def test_concurrent_payments_cannot_overpay(file_app):
    product_id = _seed_product(file_app, stock=1)
    with file_app.app_context():
        order = deposit_service.create_deposit_order(
            customer_name="Payer",
            items=[catalog_item(product_id, unit_price_cents=500)],
        )
        order_id = order.id
        db.session.remove()

    def pay():
        return payment_service.record_payment(order_id, 300, "card").id

    results = _run_concurrently(file_app, [pay, pay])

    assert sorted(kind for kind, _ in results) == ["error", "ok"]
    error = next(value for kind, value in results if kind == "error")
    assert isinstance(error, OverpaymentError)
    assert error.details["balance_due_cents"] == 200

    with file_app.app_context():
        assert payment_service.get_amount_paid(order_id) == 300
        db.session.remove()


def test_concurrent_completions_get_distinct_sale_numbers(file_app):
    product_id = _seed_product(file_app, stock=4)
    order_ids = []
    with file_app.app_context():
        for _ in range(4):
            order = deposit_service.create_deposit_order(
                customer_name="Buyer",
                items=[catalog_item(product_id, unit_price_cents=500)],
                initial_payment=cash(500),
            )
            order_ids.append(order.id)
        db.session.remove()

    def completer(order_id):
        return lambda: deposit_service.complete_deposit_order(order_id).sale_id

    results = _run_concurrently(file_app, [completer(i) for i in order_ids])

    assert all(kind == "ok" for kind, _ in results), results
    with file_app.app_context():
        numbers = [s.document_number for s in db.session.query(Sale).all()]
        assert len(numbers) == 4
        assert len(set(numbers)) == 4
        assert get_available(product_id) == 0
        db.session.remove()
