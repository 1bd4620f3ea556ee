# Overview: Service-layer operations for the stock ledger; append-only event store.

from __future__ import annotations

from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import Product, StockEvent
from ..models.ledger import EVENT_SIGNS, EVENT_ADJUSTMENT, EVENT_ASSIGNMENT_DEDUCTION
from ..time_utils import normalize_datetime
from ..validation import ValidationError
from .exceptions import ProductNotFoundError
from .sequence_service import next_sequence_value, SEQ_STOCK_EVENT
"""
Stock Ledger Invariants (authoritative)

- Append-only: events are never updated or deleted. Corrections are new
  ADJUSTMENT / SALE_REVERSAL / ASSIGNMENT_RETURN events.
- Every event carries a dedicated sequence number; replay order is
  (occurred_at, sequence), oldest first.
- quantity_delta sign is fixed by kind; only ADJUSTMENT is signed by the caller.
- Events are written inside the same DB transaction as the source document
  they record. No commit happens here.
"""


def _resolve_delta(kind: str, quantity: int | None, quantity_delta: int | None) -> tuple[int, int]:
    if kind not in EVENT_SIGNS:
        raise ValidationError(f"Unknown stock event kind: {kind}")

    if kind == EVENT_ADJUSTMENT:
        if quantity_delta is None or quantity_delta == 0:
            raise ValidationError("quantity_delta must be non-zero for ADJUSTMENT")
        return abs(quantity_delta), quantity_delta

    if quantity is None or quantity <= 0:
        raise ValidationError(f"quantity must be > 0 for {kind}")

    delta = EVENT_SIGNS[kind] * quantity
    if quantity_delta is not None and quantity_delta != delta:
        raise ValidationError(f"quantity_delta {quantity_delta} does not match {kind} of {quantity}")
    return quantity, delta


def append_stock_event(
    *,
    product_id: int,
    kind: str,
    quantity: int | None = None,
    quantity_delta: int | None = None,
    occurred_at: Optional[datetime] = None,
    source_type: str | None = None,
    source_id: int | None = None,
    employee_id: int | None = None,
    assignment_id: int | None = None,
    note: Optional[str] = None,
) -> StockEvent:
    """
    Append one event to the ledger and return it (flushed, not committed).

    - No domain checks beyond sign/shape; callers run the validation gate first.
    - No deletes/updates of existing events.
    """
    if db.session.get(Product, product_id) is None:
        raise ProductNotFoundError(product_id)

    quantity, delta = _resolve_delta(kind, quantity, quantity_delta)

    ev = StockEvent(
        sequence=next_sequence_value(SEQ_STOCK_EVENT),
        product_id=product_id,
        kind=kind,
        quantity=quantity,
        quantity_delta=delta,
        occurred_at=normalize_datetime(occurred_at),
        source_type=source_type,
        source_id=source_id,
        employee_id=employee_id,
        assignment_id=assignment_id,
        note=note,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def events_for(product_id: int, since: Optional[datetime] = None, *, kinds=None) -> list[StockEvent]:
    """
    Ledger events for a product, oldest first.

    since is inclusive: occurred_at >= since.
    """
    q = db.session.query(StockEvent).filter(StockEvent.product_id == product_id)
    if since is not None:
        q = q.filter(StockEvent.occurred_at >= since)
    if kinds:
        q = q.filter(StockEvent.kind.in_(list(kinds)))
    return q.order_by(StockEvent.occurred_at.asc(), StockEvent.sequence.asc()).all()


def deduction_events_for_assignment(assignment_id: int) -> list[StockEvent]:
    return (
        db.session.query(StockEvent)
        .filter_by(assignment_id=assignment_id, kind=EVENT_ASSIGNMENT_DEDUCTION)
        .order_by(StockEvent.sequence.asc())
        .all()
    )
