# Overview: Pytest coverage for concurrent stock deductions against the same product.

"""
Concurrency Tests

Two workers deduct 60 units each from a product holding 100. The per-product
guard serializes check-then-append, so exactly one succeeds and stock never
goes negative.

Uses a file-backed SQLite database so each thread gets its own connection.
"""

import threading

import pytest

from stockledger import create_app
from stockledger.extensions import db
from stockledger.models import Product, Customer, StockEvent
from stockledger.models.ledger import EVENT_PURCHASE_RECEIPT, EVENT_SALE
from stockledger.services.exceptions import InsufficientStockError
from stockledger.services.ledger_service import append_stock_event
from stockledger.services.operations_service import record_sale
from stockledger.services.stock_calculator import calculate_stock


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.sqlite3'}",
        'STOCK_RETRY_ATTEMPTS': 5,
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


class TestConcurrentDeductions:

    def test_two_deductions_never_both_succeed(self, file_app):
        with file_app.app_context():
            product = Product(name="LPG 12kg", category="gas", cost_price_cents=9000, least_price_cents=11000)
            customer = Customer(name="Harbor Restaurant")
            db.session.add_all([product, customer])
            db.session.commit()
            append_stock_event(product_id=product.id, kind=EVENT_PURCHASE_RECEIPT, quantity=100)
            db.session.commit()
            product_id, customer_id = product.id, customer.id

        barrier = threading.Barrier(2)
        outcomes = []
        outcomes_lock = threading.Lock()

        def worker():
            with file_app.app_context():
                barrier.wait()
                try:
                    record_sale(customer_id=customer_id, items=[{"product_id": product_id, "quantity": 60}])
                    outcome = "ok"
                except InsufficientStockError:
                    outcome = "rejected"
                finally:
                    db.session.remove()
                with outcomes_lock:
                    outcomes.append(outcome)

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert sorted(outcomes) == ["ok", "rejected"]

        with file_app.app_context():
            assert calculate_stock(product_id) == 40
            assert db.session.query(StockEvent).filter_by(kind=EVENT_SALE).count() == 1
            assert db.session.get(Product, product_id).current_stock == 40
