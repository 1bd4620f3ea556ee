# Overview: Service-layer stock derivation; computes authoritative stock from the ledger.

from __future__ import annotations

from dataclasses import dataclass, asdict, field
from datetime import datetime
from typing import Iterable

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import StockEvent, StockAssignment
from ..models.ledger import (
    EVENT_PURCHASE_RECEIPT,
    EVENT_SALE,
    EVENT_SALE_REVERSAL,
    EVENT_DEPOSIT,
    EVENT_REFILL,
    EVENT_CYLINDER_RETURN,
    EVENT_ASSIGNMENT_ISSUE,
    EVENT_ASSIGNMENT_RETURN,
    EVENT_ASSIGNMENT_DEDUCTION,
    EVENT_ADJUSTMENT,
    ASSIGNMENT_ASSIGNED,
    ASSIGNMENT_RECEIVED,
)
from ..time_utils import utcnow, to_utc_z
from .catalog_service import ensure_product
"""
Stock Calculation Invariants (authoritative)

- Stock is ledger-derived: SUM(quantity_delta) over the product's events.
- The sum is order independent; replaying the same event set always yields
  the same integer.
- A negative result is never clamped. It means the ledger is inconsistent
  (a bug or a write that bypassed the guard) and is reported as a diagnostic.
- Product.current_stock is NOT read here.
"""


@dataclass
class StockBreakdown:
    product_id: int
    product_name: str
    received_from_purchases: int = 0
    sold: int = 0
    employee_sold: int = 0
    deposits: int = 0
    refills: int = 0
    cylinder_returns: int = 0
    assigned_issued: int = 0
    assigned_returned: int = 0
    assigned_outstanding: int = 0
    adjustments: int = 0
    calculated_stock: int = 0
    cached_stock: int | None = 0
    event_count: int = 0
    diagnostics: list[str] = field(default_factory=list)
    as_of: datetime | None = None

    @property
    def returned(self) -> int:
        return self.cylinder_returns + self.assigned_returned

    @property
    def is_consistent(self) -> bool | None:
        # the cached counter only describes "now"; historical views have nothing to compare
        if self.cached_stock is None:
            return None
        return self.cached_stock == self.calculated_stock

    def to_dict(self) -> dict:
        data = asdict(self)
        data["as_of"] = to_utc_z(self.as_of)
        data["returned"] = self.returned
        data["is_consistent"] = self.is_consistent
        return data


def replay(events: Iterable) -> int:
    """Sum signed deltas of an arbitrary event sequence."""
    return sum(int(ev.quantity_delta) for ev in events)


def _report_negative(product_id: int, value: int) -> str:
    message = f"calculated stock for product {product_id} is negative ({value}); ledger is inconsistent"
    current_app.logger.warning(message)
    return message


def calculate_stock(product_id: int, as_of: datetime | None = None) -> int:
    """
    Calculate stock for a product from the ledger.

    as_of is inclusive: occurred_at <= as_of.
    """
    ensure_product(product_id)

    q = db.session.query(
        func.coalesce(func.sum(StockEvent.quantity_delta), 0)
    ).filter(StockEvent.product_id == product_id)
    if as_of is not None:
        q = q.filter(StockEvent.occurred_at <= as_of)

    value = int(q.scalar() or 0)
    if value < 0:
        _report_negative(product_id, value)
    return value


def assigned_outstanding(product_id: int, as_of: datetime | None = None) -> int:
    """
    Units held by employees (assigned or received, not yet sold or returned).

    With as_of, only assignments issued on or before it are counted; their
    remaining quantity is still the current one.
    """
    q = db.session.query(
        func.coalesce(func.sum(StockAssignment.remaining_quantity), 0)
    ).filter(
        StockAssignment.product_id == product_id,
        StockAssignment.status.in_([ASSIGNMENT_ASSIGNED, ASSIGNMENT_RECEIVED]),
    )
    if as_of is not None:
        q = q.filter(StockAssignment.assigned_at <= as_of)
    return int(q.scalar() or 0)


def get_stock_breakdown(product_id: int, as_of: datetime | None = None) -> StockBreakdown:
    """Decompose a product's stock by event kind instead of collapsing to one integer."""
    product = ensure_product(product_id)

    q = db.session.query(
        StockEvent.kind,
        func.coalesce(func.sum(StockEvent.quantity), 0).label("units"),
        func.coalesce(func.sum(StockEvent.quantity_delta), 0).label("delta"),
        func.count(StockEvent.id).label("events"),
    ).filter(StockEvent.product_id == product_id)
    if as_of is not None:
        q = q.filter(StockEvent.occurred_at <= as_of)
    rows = q.group_by(StockEvent.kind).all()

    units = {row.kind: int(row.units) for row in rows}
    deltas = {row.kind: int(row.delta) for row in rows}

    breakdown = StockBreakdown(
        product_id=product.id,
        product_name=product.name,
        received_from_purchases=units.get(EVENT_PURCHASE_RECEIPT, 0),
        sold=units.get(EVENT_SALE, 0) - units.get(EVENT_SALE_REVERSAL, 0),
        employee_sold=units.get(EVENT_ASSIGNMENT_DEDUCTION, 0),
        deposits=units.get(EVENT_DEPOSIT, 0),
        refills=units.get(EVENT_REFILL, 0),
        cylinder_returns=units.get(EVENT_CYLINDER_RETURN, 0),
        assigned_issued=units.get(EVENT_ASSIGNMENT_ISSUE, 0),
        assigned_returned=units.get(EVENT_ASSIGNMENT_RETURN, 0),
        assigned_outstanding=assigned_outstanding(product.id, as_of),
        adjustments=deltas.get(EVENT_ADJUSTMENT, 0),
        calculated_stock=sum(deltas.values()),
        cached_stock=product.current_stock if as_of is None else None,
        event_count=sum(int(row.events) for row in rows),
        as_of=as_of or utcnow(),
    )

    if breakdown.calculated_stock < 0:
        breakdown.diagnostics.append(_report_negative(product.id, breakdown.calculated_stock))
    if breakdown.is_consistent is False:
        breakdown.diagnostics.append(
            f"cached stock {breakdown.cached_stock} differs from ledger stock {breakdown.calculated_stock}"
        )
    return breakdown
