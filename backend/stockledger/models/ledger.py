from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from stockledger.time_utils import utcnow, to_utc_z
from ..services.exceptions import LedgerImmutableError


# Event kinds and the sign of their effect on warehouse stock
EVENT_PURCHASE_RECEIPT = "PURCHASE_RECEIPT"
EVENT_SALE = "SALE"
EVENT_SALE_REVERSAL = "SALE_REVERSAL"
EVENT_DEPOSIT = "DEPOSIT"
EVENT_REFILL = "REFILL"
EVENT_CYLINDER_RETURN = "CYLINDER_RETURN"
EVENT_ASSIGNMENT_ISSUE = "ASSIGNMENT_ISSUE"
EVENT_ASSIGNMENT_RETURN = "ASSIGNMENT_RETURN"
EVENT_ASSIGNMENT_DEDUCTION = "ASSIGNMENT_DEDUCTION"
EVENT_ADJUSTMENT = "ADJUSTMENT"

EVENT_SIGNS = {
    EVENT_PURCHASE_RECEIPT: 1,
    EVENT_SALE: -1,
    EVENT_SALE_REVERSAL: 1,
    EVENT_DEPOSIT: -1,
    EVENT_REFILL: -1,
    EVENT_CYLINDER_RETURN: 1,
    EVENT_ASSIGNMENT_ISSUE: -1,
    EVENT_ASSIGNMENT_RETURN: 1,
    EVENT_ASSIGNMENT_DEDUCTION: 0,  # stock already left the warehouse at issue time
    EVENT_ADJUSTMENT: None,  # signed by the caller
}

ASSIGNMENT_ASSIGNED = "assigned"
ASSIGNMENT_RECEIVED = "received"
ASSIGNMENT_RETURNED = "returned"
ASSIGNMENT_STATUSES = (ASSIGNMENT_ASSIGNED, ASSIGNMENT_RECEIVED, ASSIGNMENT_RETURNED)


class StockEvent(db.Model):
    """
    Append-only stock ledger row.

    - quantity is the unsigned number of units the event concerns.
    - quantity_delta is the signed effect on warehouse stock.
    - sequence is a dedicated, strictly increasing number; ordering is
      (occurred_at, sequence) so equal timestamps stay deterministic.
    - Rows are never updated or deleted through the ORM (see listeners below).
    """
    __tablename__ = "stock_events"
    __table_args__ = (
        db.UniqueConstraint("sequence", name="uq_stock_events_sequence"),
        db.Index("ix_stock_events_product_occurred", "product_id", "occurred_at", "sequence"),
        db.Index("ix_stock_events_source", "source_type", "source_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sequence = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    kind = db.Column(db.String(32), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    quantity_delta = db.Column(db.Integer, nullable=False)

    # Business vs system time
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    # Source operation reference (e.g. "sale", 12)
    source_type = db.Column(db.String(32), nullable=True)
    source_id = db.Column(db.Integer, nullable=True)

    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True, index=True)
    assignment_id = db.Column(db.Integer, db.ForeignKey("stock_assignments.id"), nullable=True, index=True)

    note = db.Column(db.String(255), nullable=True)

    product = db.relationship("Product", backref=db.backref("stock_events", lazy="dynamic"))

    def __repr__(self) -> str:
        return f"<StockEvent seq={self.sequence} product_id={self.product_id} kind={self.kind} delta={self.quantity_delta}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sequence": self.sequence,
            "product_id": self.product_id,
            "kind": self.kind,
            "quantity": self.quantity,
            "quantity_delta": self.quantity_delta,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "source_type": self.source_type,
            "source_id": self.source_id,
            "employee_id": self.employee_id,
            "assignment_id": self.assignment_id,
            "note": self.note,
        }


@event.listens_for(StockEvent, "before_update")
def _refuse_event_update(mapper, connection, target):
    raise LedgerImmutableError(f"stock event {target.id} is immutable; append a compensating event instead")


@event.listens_for(StockEvent, "before_delete")
def _refuse_event_delete(mapper, connection, target):
    raise LedgerImmutableError(f"stock event {target.id} cannot be deleted")


class StockAssignment(db.Model):
    """
    Stock handed to an employee.

    LIFECYCLE:
    assigned --(receive)--> received --(deduct* / return)--> received (remaining reduced) | returned

    remaining_quantity only ever decreases. Rows are kept for audit even when
    returned or fully deducted.
    """
    __tablename__ = "stock_assignments"
    __table_args__ = (
        db.UniqueConstraint("sequence", name="uq_stock_assignments_sequence"),
        db.Index("ix_stock_assignments_fifo", "employee_id", "product_id", "status", "assigned_at", "sequence"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sequence = db.Column(db.Integer, nullable=False)

    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    remaining_quantity = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=ASSIGNMENT_ASSIGNED, index=True)

    assigned_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    returned_at = db.Column(db.DateTime(timezone=True), nullable=True)

    assigned_by_user_id = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    employee = db.relationship("Employee", backref=db.backref("stock_assignments", lazy=True))
    product = db.relationship("Product", backref=db.backref("stock_assignments", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sequence": self.sequence,
            "employee_id": self.employee_id,
            "employee_name": self.employee.name if self.employee else None,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "remaining_quantity": self.remaining_quantity,
            "status": self.status,
            "assigned_at": to_utc_z(self.assigned_at),
            "received_at": to_utc_z(self.received_at),
            "returned_at": to_utc_z(self.returned_at),
            "assigned_by_user_id": self.assigned_by_user_id,
            "notes": self.notes,
        }


class Sequence(db.Model):
    """
    Named atomic counters.

    Backs ledger/assignment sequence numbers and human-readable document
    numbers (INV-000001, EMP-000001, PO-000001).
    """
    __tablename__ = "sequences"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_sequences_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(32), nullable=False)
    next_value = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "next_value": self.next_value,
            "updated_at": to_utc_z(self.updated_at),
        }
