# Overview: Service-layer operations for employee stock assignments and FIFO allocation.

"""
Employee Stock Assignments

WHY: Field employees carry stock away from the warehouse. Issuing an
assignment moves units out of warehouse stock; the employee's later sales
draw those units down oldest-assignment-first.

LIFECYCLE:
1. assigned: Issued by the office (ASSIGNMENT_ISSUE event, warehouse -qty)
2. received: Employee confirmed receipt; only received rows are allocatable
3. returned: Remaining units went back to the warehouse (ASSIGNMENT_RETURN)

FIFO: Allocation order is assigned_at, then sequence. The sequence number
breaks ties between assignments created in the same instant.

SHORTFALL: An employee selling more than their received assignments cover is
recorded as a shortfall diagnostic. Under the default "warn" policy the sale
proceeds; under "reject" it is refused before anything is written.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict, field

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import StockAssignment, Product
from ..models.ledger import (
    ASSIGNMENT_ASSIGNED,
    ASSIGNMENT_RECEIVED,
    ASSIGNMENT_RETURNED,
    ASSIGNMENT_STATUSES,
    EVENT_ASSIGNMENT_ISSUE,
    EVENT_ASSIGNMENT_RETURN,
    EVENT_ASSIGNMENT_DEDUCTION,
)
from ..time_utils import utcnow
from ..validation import ValidationError, parse_positive_quantity
from .catalog_service import ensure_employee, ensure_product
from .concurrency import lock_for_update, product_guard, run_with_retry
from .exceptions import NotFoundError, StockStateError
from .ledger_service import append_stock_event
from .reconciliation_service import refresh_cached_stock
from .sequence_service import next_sequence_value, SEQ_STOCK_ASSIGNMENT
from .validation_gate import require_available


SHORTFALL_POLICY_WARN = "warn"
SHORTFALL_POLICY_REJECT = "reject"


@dataclass
class Allocation:
    assignment_id: int
    deducted: int
    remaining_after: int


@dataclass
class AllocationResult:
    employee_id: int
    product_id: int
    requested: int
    deducted: int = 0
    shortfall: int = 0
    allocations: list[Allocation] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def shortfall_policy() -> str:
    policy = (current_app.config.get("ASSIGNMENT_SHORTFALL_POLICY") or SHORTFALL_POLICY_WARN).lower()
    if policy not in (SHORTFALL_POLICY_WARN, SHORTFALL_POLICY_REJECT):
        raise ValueError(f"ASSIGNMENT_SHORTFALL_POLICY must be 'warn' or 'reject', got {policy!r}")
    return policy


def open_assignments(employee_id: int, product_id: int, *, lock: bool = False) -> list[StockAssignment]:
    """Received assignments with units left, oldest first."""
    q = db.session.query(StockAssignment).filter(
        StockAssignment.employee_id == employee_id,
        StockAssignment.product_id == product_id,
        StockAssignment.status == ASSIGNMENT_RECEIVED,
        StockAssignment.remaining_quantity > 0,
    )
    if lock:
        q = lock_for_update(q)
    return q.order_by(StockAssignment.assigned_at.asc(), StockAssignment.sequence.asc()).all()


def available_assigned(employee_id: int, product_id: int) -> int:
    """Units the employee can still sell from received assignments."""
    q = db.session.query(
        func.coalesce(func.sum(StockAssignment.remaining_quantity), 0)
    ).filter(
        StockAssignment.employee_id == employee_id,
        StockAssignment.product_id == product_id,
        StockAssignment.status == ASSIGNMENT_RECEIVED,
    )
    return int(q.scalar() or 0)


def deduct_from_assignments(
    employee_id: int,
    product_id: int,
    quantity: int,
    *,
    source_type: str | None = None,
    source_id: int | None = None,
    occurred_at=None,
) -> AllocationResult:
    """
    FIFO deduction of `quantity` from the employee's received assignments.

    Walks open assignments oldest first, taking min(remaining, still_needed)
    from each, and appends an ASSIGNMENT_DEDUCTION event per touched
    assignment. A shortfall is returned, not raised.

    Runs inside the caller's transaction and product guard (no commit).
    """
    quantity = parse_positive_quantity(quantity)
    result = AllocationResult(employee_id=employee_id, product_id=product_id, requested=quantity)

    needed = quantity
    for assignment in open_assignments(employee_id, product_id, lock=True):
        if needed <= 0:
            break
        take = min(assignment.remaining_quantity, needed)
        assignment.remaining_quantity -= take
        needed -= take

        append_stock_event(
            product_id=product_id,
            kind=EVENT_ASSIGNMENT_DEDUCTION,
            quantity=take,
            occurred_at=occurred_at,
            source_type=source_type,
            source_id=source_id,
            employee_id=employee_id,
            assignment_id=assignment.id,
        )
        result.allocations.append(Allocation(
            assignment_id=assignment.id,
            deducted=take,
            remaining_after=assignment.remaining_quantity,
        ))

    result.deducted = quantity - needed
    result.shortfall = needed

    if result.shortfall:
        current_app.logger.warning(
            "Employee %s oversold product %s: requested %d, covered by assignments %d, shortfall %d",
            employee_id, product_id, quantity, result.deducted, result.shortfall,
        )
    return result


def _ensure_assignment(assignment_id: int, *, lock: bool = False) -> StockAssignment:
    q = db.session.query(StockAssignment).filter_by(id=assignment_id)
    if lock:
        q = lock_for_update(q)
    assignment = q.first()
    if assignment is None:
        raise NotFoundError(f"Assignment not found: {assignment_id}", details={"assignment_id": assignment_id})
    return assignment


def get_assignment(assignment_id: int) -> StockAssignment:
    return _ensure_assignment(assignment_id)


def create_assignment(
    *,
    employee_id: int,
    product_id: int,
    quantity: int,
    assigned_by_user_id: int | None = None,
    notes: str | None = None,
) -> StockAssignment:
    """
    Issue stock to an employee.

    Gate-checked against live warehouse stock; the ASSIGNMENT_ISSUE event and
    the assignment row are written in one transaction.
    """
    quantity = parse_positive_quantity(quantity)
    ensure_employee(employee_id)
    ensure_product(product_id, require_active=True)

    def _op() -> StockAssignment:
        ensure_product(product_id, lock=True)
        require_available(product_id, quantity, "assignment")

        assignment = StockAssignment(
            sequence=next_sequence_value(SEQ_STOCK_ASSIGNMENT),
            employee_id=employee_id,
            product_id=product_id,
            quantity=quantity,
            remaining_quantity=quantity,
            status=ASSIGNMENT_ASSIGNED,
            assigned_at=utcnow(),
            assigned_by_user_id=assigned_by_user_id,
            notes=notes,
        )
        db.session.add(assignment)
        db.session.flush()

        append_stock_event(
            product_id=product_id,
            kind=EVENT_ASSIGNMENT_ISSUE,
            quantity=quantity,
            source_type="stock_assignment",
            source_id=assignment.id,
            employee_id=employee_id,
            assignment_id=assignment.id,
            note=notes,
        )
        db.session.commit()
        return assignment

    with product_guard(product_id):
        assignment = run_with_retry(_op)
        refresh_cached_stock(product_id)
    return assignment


def receive_assignment(assignment_id: int) -> StockAssignment:
    """Employee confirms receipt: assigned -> received."""
    def _op() -> StockAssignment:
        assignment = _ensure_assignment(assignment_id, lock=True)
        if assignment.status != ASSIGNMENT_ASSIGNED:
            raise StockStateError(
                f"Cannot receive assignment in status {assignment.status}",
                details={"assignment_id": assignment.id, "status": assignment.status},
            )
        assignment.status = ASSIGNMENT_RECEIVED
        assignment.received_at = utcnow()
        db.session.commit()
        return assignment

    return run_with_retry(_op)


def return_assignment(assignment_id: int) -> StockAssignment:
    """
    Employee hands unsold units back: assigned|received -> returned.

    Only remaining_quantity goes back to the warehouse; units already sold
    against the assignment stay sold.
    """
    product_id = _ensure_assignment(assignment_id).product_id

    def _op() -> StockAssignment:
        assignment = _ensure_assignment(assignment_id, lock=True)
        if assignment.status == ASSIGNMENT_RETURNED:
            raise StockStateError(
                "Assignment already returned",
                details={"assignment_id": assignment.id, "status": assignment.status},
            )

        returned_units = assignment.remaining_quantity
        if returned_units > 0:
            append_stock_event(
                product_id=assignment.product_id,
                kind=EVENT_ASSIGNMENT_RETURN,
                quantity=returned_units,
                source_type="stock_assignment",
                source_id=assignment.id,
                employee_id=assignment.employee_id,
                assignment_id=assignment.id,
            )
        assignment.remaining_quantity = 0
        assignment.status = ASSIGNMENT_RETURNED
        assignment.returned_at = utcnow()
        db.session.commit()
        return assignment

    with product_guard(product_id):
        assignment = run_with_retry(_op)
        refresh_cached_stock(product_id)
    return assignment


def list_assignments(
    *,
    employee_id: int | None = None,
    product_id: int | None = None,
    status: str | None = None,
) -> list[StockAssignment]:
    if status is not None and status not in ASSIGNMENT_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(ASSIGNMENT_STATUSES)}")

    q = db.session.query(StockAssignment)
    if employee_id is not None:
        q = q.filter(StockAssignment.employee_id == employee_id)
    if product_id is not None:
        q = q.filter(StockAssignment.product_id == product_id)
    if status is not None:
        q = q.filter(StockAssignment.status == status)
    return q.order_by(StockAssignment.assigned_at.desc(), StockAssignment.sequence.desc()).all()


def employee_held_stock(employee_id: int) -> list[dict]:
    """Per-product units an employee holds: received (sellable) and still in transit."""
    ensure_employee(employee_id)

    rows = (
        db.session.query(
            StockAssignment.product_id,
            Product.name,
            StockAssignment.status,
            func.coalesce(func.sum(StockAssignment.remaining_quantity), 0).label("remaining"),
        )
        .join(Product, Product.id == StockAssignment.product_id)
        .filter(
            StockAssignment.employee_id == employee_id,
            StockAssignment.status.in_([ASSIGNMENT_ASSIGNED, ASSIGNMENT_RECEIVED]),
        )
        .group_by(StockAssignment.product_id, Product.name, StockAssignment.status)
        .all()
    )

    held: dict[int, dict] = {}
    for product_id, name, status, remaining in rows:
        entry = held.setdefault(product_id, {
            "product_id": product_id,
            "product_name": name,
            "received_remaining": 0,
            "in_transit": 0,
        })
        if status == ASSIGNMENT_RECEIVED:
            entry["received_remaining"] += int(remaining)
        else:
            entry["in_transit"] += int(remaining)
    return sorted(held.values(), key=lambda e: e["product_id"])
