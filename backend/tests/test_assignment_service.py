# Overview: Pytest coverage for employee stock assignments and FIFO allocation.

"""
Assignment Allocator Tests

- FIFO: oldest received assignment is drawn down first
- Shortfall is reported, not raised
- Lifecycle: assigned -> received -> returned, with warehouse stock moving
  only on issue and return
"""

from datetime import timedelta

import pytest

from stockledger.models import Product, StockAssignment, StockEvent
from stockledger.models.ledger import (
    ASSIGNMENT_ASSIGNED,
    ASSIGNMENT_RECEIVED,
    ASSIGNMENT_RETURNED,
    EVENT_ASSIGNMENT_DEDUCTION,
    EVENT_ASSIGNMENT_ISSUE,
    EVENT_ASSIGNMENT_RETURN,
)
from stockledger.services import assignment_service
from stockledger.services.exceptions import InsufficientStockError, NotFoundError, StockStateError
from stockledger.services.stock_calculator import calculate_stock
from stockledger.time_utils import utcnow
from stockledger.validation import ValidationError

from conftest import receive_stock, received_assignment


class TestFifoAllocation:

    def test_oldest_assignment_drawn_first(self, db_session, employee, gas_product):
        now = utcnow()
        older = received_assignment(employee.id, gas_product.id, 10, assigned_at=now - timedelta(hours=2))
        newer = received_assignment(employee.id, gas_product.id, 5, assigned_at=now - timedelta(hours=1))

        result = assignment_service.deduct_from_assignments(employee.id, gas_product.id, 12)
        db_session.commit()

        assert result.deducted == 12
        assert result.shortfall == 0
        assert db_session.get(StockAssignment, older.id).remaining_quantity == 0
        assert db_session.get(StockAssignment, newer.id).remaining_quantity == 3
        assert [(a.assignment_id, a.deducted) for a in result.allocations] == [(older.id, 10), (newer.id, 2)]

    def test_sequence_breaks_assigned_at_ties(self, db_session, employee, gas_product):
        same_time = utcnow()
        first = received_assignment(employee.id, gas_product.id, 4, assigned_at=same_time)
        second = received_assignment(employee.id, gas_product.id, 4, assigned_at=same_time)

        result = assignment_service.deduct_from_assignments(employee.id, gas_product.id, 4)

        assert [a.assignment_id for a in result.allocations] == [first.id]
        assert second.remaining_quantity == 4

    def test_shortfall_reported_not_raised(self, db_session, employee, gas_product, caplog):
        received_assignment(employee.id, gas_product.id, 10)
        received_assignment(employee.id, gas_product.id, 2)

        result = assignment_service.deduct_from_assignments(employee.id, gas_product.id, 20)

        assert result.deducted == 12
        assert result.shortfall == 8
        assert "shortfall" in caplog.text

    def test_only_received_assignments_are_allocatable(self, db_session, employee, gas_product):
        pending = received_assignment(employee.id, gas_product.id, 10)
        pending.status = ASSIGNMENT_ASSIGNED
        db_session.commit()

        result = assignment_service.deduct_from_assignments(employee.id, gas_product.id, 3)
        assert result.deducted == 0
        assert result.shortfall == 3

    def test_each_touched_assignment_gets_a_deduction_event(self, db_session, employee, gas_product):
        now = utcnow()
        a1 = received_assignment(employee.id, gas_product.id, 2, assigned_at=now - timedelta(minutes=5))
        a2 = received_assignment(employee.id, gas_product.id, 2, assigned_at=now)

        assignment_service.deduct_from_assignments(
            employee.id, gas_product.id, 3, source_type="employee_sale", source_id=77
        )
        db_session.commit()

        events = db_session.query(StockEvent).filter_by(kind=EVENT_ASSIGNMENT_DEDUCTION).all()
        assert sorted((ev.assignment_id, ev.quantity) for ev in events) == [(a1.id, 2), (a2.id, 1)]
        assert all(ev.quantity_delta == 0 and ev.source_id == 77 for ev in events)


class TestAssignmentLifecycle:

    def test_create_deducts_warehouse_stock(self, db_session, employee, gas_product):
        receive_stock(gas_product.id, 30)

        assignment = assignment_service.create_assignment(
            employee_id=employee.id, product_id=gas_product.id, quantity=12
        )

        assert assignment.status == ASSIGNMENT_ASSIGNED
        assert assignment.remaining_quantity == 12
        assert calculate_stock(gas_product.id) == 18
        assert db_session.get(Product, gas_product.id).current_stock == 18
        issue = db_session.query(StockEvent).filter_by(kind=EVENT_ASSIGNMENT_ISSUE).one()
        assert issue.assignment_id == assignment.id

    def test_create_gate_checked(self, db_session, employee, gas_product):
        receive_stock(gas_product.id, 5)
        with pytest.raises(InsufficientStockError):
            assignment_service.create_assignment(employee_id=employee.id, product_id=gas_product.id, quantity=6)
        assert db_session.query(StockAssignment).count() == 0

    def test_create_unknown_employee(self, db_session, gas_product):
        with pytest.raises(NotFoundError):
            assignment_service.create_assignment(employee_id=9999, product_id=gas_product.id, quantity=1)

    def test_receive_then_receive_again_conflicts(self, db_session, employee, gas_product):
        receive_stock(gas_product.id, 10)
        assignment = assignment_service.create_assignment(
            employee_id=employee.id, product_id=gas_product.id, quantity=4
        )

        received = assignment_service.receive_assignment(assignment.id)
        assert received.status == ASSIGNMENT_RECEIVED
        assert received.received_at is not None

        with pytest.raises(StockStateError):
            assignment_service.receive_assignment(assignment.id)

    def test_return_adds_back_only_remaining(self, db_session, employee, gas_product):
        receive_stock(gas_product.id, 20)
        assignment = assignment_service.create_assignment(
            employee_id=employee.id, product_id=gas_product.id, quantity=10
        )
        assignment_service.receive_assignment(assignment.id)
        assignment_service.deduct_from_assignments(employee.id, gas_product.id, 6)
        db_session.commit()

        returned = assignment_service.return_assignment(assignment.id)

        assert returned.status == ASSIGNMENT_RETURNED
        assert returned.remaining_quantity == 0
        ret = db_session.query(StockEvent).filter_by(kind=EVENT_ASSIGNMENT_RETURN).one()
        assert ret.quantity == 4
        # 20 - 10 issued + 4 returned
        assert calculate_stock(gas_product.id) == 14

    def test_return_twice_conflicts(self, db_session, employee, gas_product):
        receive_stock(gas_product.id, 5)
        assignment = assignment_service.create_assignment(
            employee_id=employee.id, product_id=gas_product.id, quantity=5
        )
        assignment_service.return_assignment(assignment.id)

        with pytest.raises(StockStateError):
            assignment_service.return_assignment(assignment.id)
        assert calculate_stock(gas_product.id) == 5

    def test_list_filters(self, db_session, employee, gas_product, cylinder_product):
        received_assignment(employee.id, gas_product.id, 3)
        received_assignment(employee.id, cylinder_product.id, 2)

        assert len(assignment_service.list_assignments(employee_id=employee.id)) == 2
        only_gas = assignment_service.list_assignments(product_id=gas_product.id)
        assert [a.product_id for a in only_gas] == [gas_product.id]
        assert assignment_service.list_assignments(status=ASSIGNMENT_RETURNED) == []

        with pytest.raises(ValidationError):
            assignment_service.list_assignments(status="lost")

    def test_employee_held_stock(self, db_session, employee, gas_product):
        receive_stock(gas_product.id, 10)
        received_assignment(employee.id, gas_product.id, 3)
        assignment_service.create_assignment(employee_id=employee.id, product_id=gas_product.id, quantity=2)

        held = assignment_service.employee_held_stock(employee.id)

        assert held == [{
            "product_id": gas_product.id,
            "product_name": gas_product.name,
            "received_remaining": 3,
            "in_transit": 2,
        }]
