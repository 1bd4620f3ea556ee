# Overview: Service-layer operations for named sequences; ledger ordering and document numbers.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Sequence
from .concurrency import SequenceConflictError


# Sequence names
SEQ_STOCK_EVENT = "stock_event"
SEQ_STOCK_ASSIGNMENT = "stock_assignment"
SEQ_SALE = "sale"
SEQ_EMPLOYEE_SALE = "employee_sale"
SEQ_PURCHASE_ORDER = "purchase_order"


class SequenceError(Exception):
    """Raised when sequence operations fail."""
    pass


def next_sequence_value(name: str) -> int:
    """
    Atomically allocate the next value of a named sequence.

    The increment is a single UPDATE so concurrent callers serialize on the
    sequence row. Must run inside the caller's transaction (no commit here).
    """
    if not name:
        raise SequenceError("sequence name is required")

    stmt = (
        update(Sequence)
        .where(Sequence.name == name)
        .values(next_value=Sequence.next_value + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(Sequence.next_value)
            .filter_by(name=name)
            .scalar()
        )
        return current - 1

    seq = Sequence(name=name, next_value=2)
    db.session.add(seq)
    try:
        db.session.flush()
    except IntegrityError as exc:
        # Another transaction created the row first; the whole unit of work
        # is rolled back and retried by run_with_retry.
        db.session.rollback()
        raise SequenceConflictError(f"sequence {name} created concurrently") from exc
    return 1


def next_document_number(*, name: str, prefix: str, pad: int = 6) -> str:
    """Allocate a human-readable document number, e.g. INV-000042."""
    value = next_sequence_value(name)
    return f"{prefix}-{str(value).zfill(pad)}"
