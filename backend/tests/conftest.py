"""
Pytest fixtures for stock ledger backend tests.

Provides test database setup, catalog fixtures, and test client.
"""

import pytest
from stockledger import create_app
from stockledger.extensions import db
from stockledger.models import Product, Customer, Supplier, Employee, StockAssignment
from stockledger.models.ledger import ASSIGNMENT_RECEIVED, EVENT_PURCHASE_RECEIPT
from stockledger.services.ledger_service import append_stock_event
from stockledger.services.sequence_service import next_sequence_value, SEQ_STOCK_ASSIGNMENT
from stockledger.time_utils import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STOCK_RETRY_ATTEMPTS': 3,
    })

    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    app.config['ASSIGNMENT_SHORTFALL_POLICY'] = 'warn'
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
def gas_product(db_session):
    product = Product(name="LPG 12kg", category="gas", cost_price_cents=9000, least_price_cents=11000)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def cylinder_product(db_session):
    product = Product(
        name="Large Cylinder",
        category="cylinder",
        cylinder_type="large",
        cost_price_cents=25000,
        least_price_cents=30000,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def customer(db_session):
    record = Customer(name="Harbor Restaurant", phone="555-0100")
    db_session.add(record)
    db_session.commit()
    return record


@pytest.fixture(scope='function')
def supplier(db_session):
    record = Supplier(company_name="Gulf Gas Supply", contact_person="R. Haddad")
    db_session.add(record)
    db_session.commit()
    return record


@pytest.fixture(scope='function')
def employee(db_session):
    record = Employee(name="Driver One", email="driver1@example.com")
    db_session.add(record)
    db_session.commit()
    return record


def receive_stock(product_id: int, quantity: int):
    """Helper: put units into the ledger as a purchase receipt."""
    ev = append_stock_event(product_id=product_id, kind=EVENT_PURCHASE_RECEIPT, quantity=quantity)
    db.session.commit()
    return ev


def received_assignment(employee_id: int, product_id: int, quantity: int, *, assigned_at=None, remaining=None):
    """Helper: an assignment already in received state, without touching warehouse stock."""
    assignment = StockAssignment(
        sequence=next_sequence_value(SEQ_STOCK_ASSIGNMENT),
        employee_id=employee_id,
        product_id=product_id,
        quantity=quantity,
        remaining_quantity=quantity if remaining is None else remaining,
        status=ASSIGNMENT_RECEIVED,
        assigned_at=assigned_at or utcnow(),
        received_at=utcnow(),
    )
    db.session.add(assignment)
    db.session.commit()
    return assignment
