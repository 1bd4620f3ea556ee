# Overview: Service-layer stock operations; every stock-moving document goes through here.

"""
Stock Operations

WHY: Each business document that moves stock (purchase receipt, sale,
cylinder transaction, employee sale, manual adjustment) follows the same
path, so the ledger stays the single source of truth:

    guard(products) -> gate (live ledger stock) -> document + ledger events
    in one transaction -> commit -> best-effort counter refresh

Callers pass already validated patches (routes run validate_payload and the
enforce_rules_* checks). Existence checks raise NotFoundError before any
write.
"""

from __future__ import annotations

from ..extensions import db
from ..models import (
    PurchaseOrder,
    Sale,
    SaleLine,
    CylinderTransaction,
    EmployeeSale,
    EmployeeSaleLine,
)
from ..models.documents import (
    PO_STATUS_PENDING,
    PO_STATUS_RECEIVED,
    SALE_STATUS_POSTED,
    SALE_STATUS_VOIDED,
    PAYMENT_METHODS,
    CYLINDER_DEPOSIT,
    CYLINDER_REFILL,
    CYLINDER_RETURN,
    CYLINDER_TRANSACTION_TYPES,
)
from ..models.ledger import (
    EVENT_PURCHASE_RECEIPT,
    EVENT_SALE,
    EVENT_SALE_REVERSAL,
    EVENT_DEPOSIT,
    EVENT_REFILL,
    EVENT_CYLINDER_RETURN,
    EVENT_ADJUSTMENT,
)
from ..time_utils import utcnow
from ..validation import ValidationError, MAX_QUANTITY, parse_positive_quantity
from .assignment_service import (
    available_assigned,
    deduct_from_assignments,
    shortfall_policy,
    SHORTFALL_POLICY_REJECT,
)
from .catalog_service import ensure_customer, ensure_employee, ensure_product, ensure_supplier
from .concurrency import lock_for_update, product_guard, run_with_retry
from .exceptions import InsufficientStockError, NotFoundError, StockStateError
from .ledger_service import append_stock_event
from .reconciliation_service import refresh_cached_stock
from .sequence_service import (
    next_document_number,
    SEQ_SALE,
    SEQ_EMPLOYEE_SALE,
    SEQ_PURCHASE_ORDER,
)
from .validation_gate import require_available


CYLINDER_EVENT_KINDS = {
    CYLINDER_DEPOSIT: EVENT_DEPOSIT,
    CYLINDER_REFILL: EVENT_REFILL,
    CYLINDER_RETURN: EVENT_CYLINDER_RETURN,
}


def _totals_by_product(items: list[dict]) -> dict[int, int]:
    totals: dict[int, int] = {}
    for item in items:
        totals[item["product_id"]] = totals.get(item["product_id"], 0) + item["quantity"]
    return totals


def _check_payment_method(method: str | None, allowed) -> str:
    method = (method or "cash").strip().lower()
    if method not in allowed:
        raise ValidationError(f"payment_method must be one of: {', '.join(allowed)}")
    return method


# =============================================================================
# PURCHASE ORDERS
# =============================================================================

def create_purchase_order(patch: dict, *, created_by_user_id: int | None = None) -> PurchaseOrder:
    """Create a pending PO. Stock moves only when it is received."""
    ensure_supplier(patch["supplier_id"])
    product = ensure_product(patch["product_id"], require_active=True)

    quantity = parse_positive_quantity(patch["quantity"])
    unit_price = patch.get("unit_price_cents")
    if unit_price is None:
        unit_price = product.cost_price_cents

    def _op() -> PurchaseOrder:
        po = PurchaseOrder(
            po_number=next_document_number(name=SEQ_PURCHASE_ORDER, prefix="PO"),
            supplier_id=patch["supplier_id"],
            product_id=product.id,
            purchase_type=patch.get("purchase_type") or product.category,
            purchase_date=patch.get("purchase_date") or utcnow(),
            quantity=quantity,
            unit_price_cents=unit_price,
            total_amount_cents=unit_price * quantity,
            status=PO_STATUS_PENDING,
            notes=patch.get("notes"),
            created_by_user_id=created_by_user_id,
        )
        db.session.add(po)
        db.session.commit()
        return po

    return run_with_retry(_op)


def receive_purchase_order(po_id: int) -> PurchaseOrder:
    """pending -> received; appends one PURCHASE_RECEIPT event."""
    po = db.session.get(PurchaseOrder, po_id)
    if po is None:
        raise NotFoundError(f"Purchase order not found: {po_id}", details={"purchase_order_id": po_id})
    product_id = po.product_id

    def _op() -> PurchaseOrder:
        po = lock_for_update(db.session.query(PurchaseOrder).filter_by(id=po_id)).first()
        if po.status == PO_STATUS_RECEIVED:
            raise StockStateError(
                f"Purchase order {po.po_number} already received",
                details={"purchase_order_id": po.id, "status": po.status},
            )

        ensure_product(po.product_id, lock=True)
        append_stock_event(
            product_id=po.product_id,
            kind=EVENT_PURCHASE_RECEIPT,
            quantity=po.quantity,
            source_type="purchase_order",
            source_id=po.id,
            note=f"PO {po.po_number} received",
        )
        po.status = PO_STATUS_RECEIVED
        po.received_at = utcnow()
        db.session.commit()
        return po

    with product_guard(product_id):
        po = run_with_retry(_op)
        refresh_cached_stock(product_id)
    return po


def list_purchase_orders(*, status: str | None = None) -> list[PurchaseOrder]:
    q = db.session.query(PurchaseOrder)
    if status:
        q = q.filter(PurchaseOrder.status == status)
    return q.order_by(PurchaseOrder.id.desc()).all()


# =============================================================================
# DIRECT SALES
# =============================================================================

def record_sale(
    *,
    customer_id: int,
    items: list[dict],
    payment_method: str | None = None,
    received_amount_cents: int | None = None,
    notes: str | None = None,
) -> Sale:
    """
    Post a multi-line sale.

    Every product is gate-checked against its total requested quantity
    before anything is written; one SALE event is appended per line.
    """
    ensure_customer(customer_id)
    method = _check_payment_method(payment_method, PAYMENT_METHODS)
    totals = _totals_by_product(items)
    for product_id in totals:
        ensure_product(product_id, require_active=True)

    def _op() -> Sale:
        products = {}
        for product_id in sorted(totals):
            products[product_id] = ensure_product(product_id, lock=True)
            require_available(product_id, totals[product_id], "sale")

        sale = Sale(
            invoice_number=next_document_number(name=SEQ_SALE, prefix="INV"),
            customer_id=customer_id,
            status=SALE_STATUS_POSTED,
            payment_method=method,
            notes=notes,
        )
        db.session.add(sale)
        db.session.flush()

        total = 0
        for item in items:
            product = products[item["product_id"]]
            unit_price = item.get("unit_price_cents")
            if unit_price is None:
                unit_price = product.least_price_cents
            line = SaleLine(
                sale_id=sale.id,
                product_id=product.id,
                quantity=item["quantity"],
                unit_price_cents=unit_price,
                line_total_cents=unit_price * item["quantity"],
            )
            db.session.add(line)
            total += line.line_total_cents

            append_stock_event(
                product_id=product.id,
                kind=EVENT_SALE,
                quantity=item["quantity"],
                source_type="sale",
                source_id=sale.id,
                note=f"Sale {sale.invoice_number}",
            )

        sale.total_amount_cents = total
        sale.received_amount_cents = total if received_amount_cents is None else received_amount_cents
        sale.payment_status = "cleared" if sale.received_amount_cents >= total else "pending"
        db.session.commit()
        return sale

    with product_guard(*totals):
        sale = run_with_retry(_op)
        refresh_cached_stock(*totals)
    return sale


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError(f"Sale not found: {sale_id}", details={"sale_id": sale_id})
    return sale


def void_sale(sale_id: int, *, reason: str | None = None) -> Sale:
    """
    Void a posted sale by appending SALE_REVERSAL events.

    The sale and its SALE events stay in place.
    """
    sale = get_sale(sale_id)
    product_ids = {line.product_id for line in sale.lines}

    def _op() -> Sale:
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale.status == SALE_STATUS_VOIDED:
            raise StockStateError(
                f"Sale {sale.invoice_number} already voided",
                details={"sale_id": sale.id, "status": sale.status},
            )

        for line in sale.lines:
            append_stock_event(
                product_id=line.product_id,
                kind=EVENT_SALE_REVERSAL,
                quantity=line.quantity,
                source_type="sale",
                source_id=sale.id,
                note=f"Void of {sale.invoice_number}",
            )
        sale.status = SALE_STATUS_VOIDED
        sale.voided_at = utcnow()
        sale.void_reason = reason
        db.session.commit()
        return sale

    with product_guard(*product_ids):
        sale = run_with_retry(_op)
        refresh_cached_stock(*product_ids)
    return sale


# =============================================================================
# CYLINDER TRANSACTIONS
# =============================================================================

def record_cylinder_transaction(kind: str, patch: dict) -> CylinderTransaction:
    """
    Deposit and refill take cylinders out of stock (gate-checked);
    return brings them back.
    """
    if kind not in CYLINDER_TRANSACTION_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(CYLINDER_TRANSACTION_TYPES)}")

    customer_id = patch.get("customer_id")
    supplier_id = patch.get("supplier_id")
    if kind in (CYLINDER_DEPOSIT, CYLINDER_RETURN) and not customer_id:
        raise ValidationError(f"customer_id is required for cylinder {kind}")
    if kind == CYLINDER_REFILL and not (customer_id or supplier_id):
        raise ValidationError("customer_id or supplier_id is required for cylinder refill")

    if customer_id:
        ensure_customer(customer_id)
    if supplier_id:
        ensure_supplier(supplier_id)
    if patch.get("employee_id"):
        ensure_employee(patch["employee_id"])

    product = ensure_product(patch["product_id"], require_active=True)
    product_id = product.id
    quantity = parse_positive_quantity(patch["quantity"])

    def _op() -> CylinderTransaction:
        ensure_product(product_id, lock=True)
        if kind != CYLINDER_RETURN:
            require_available(product_id, quantity, kind)

        fields = dict(patch)
        fields.setdefault("cylinder_size", product.cylinder_type or "large")
        tx = CylinderTransaction(type=kind, **fields)
        db.session.add(tx)
        db.session.flush()

        append_stock_event(
            product_id=product_id,
            kind=CYLINDER_EVENT_KINDS[kind],
            quantity=quantity,
            source_type="cylinder_transaction",
            source_id=tx.id,
            employee_id=tx.employee_id,
            note=tx.notes,
        )
        db.session.commit()
        return tx

    with product_guard(product_id):
        tx = run_with_retry(_op)
        refresh_cached_stock(product_id)
    return tx


# =============================================================================
# EMPLOYEE SALES
# =============================================================================

def record_employee_sale(
    *,
    employee_id: int,
    customer_id: int,
    items: list[dict],
    payment_method: str | None = None,
    notes: str | None = None,
) -> EmployeeSale:
    """
    Record a sale made by a field employee from stock assigned to them.

    Warehouse stock already left at assignment issue, so the allocator only
    draws down the employee's assignments (ASSIGNMENT_DEDUCTION events carry
    a zero delta). Uncovered quantity is a per-line shortfall; with the
    "reject" policy it refuses the whole sale up front.
    """
    ensure_employee(employee_id)
    ensure_customer(customer_id)
    method = _check_payment_method(payment_method, PAYMENT_METHODS)
    totals = _totals_by_product(items)
    for product_id in totals:
        ensure_product(product_id)
    policy = shortfall_policy()

    def _op() -> EmployeeSale:
        if policy == SHORTFALL_POLICY_REJECT:
            missing = []
            for product_id in sorted(totals):
                held = available_assigned(employee_id, product_id)
                if held < totals[product_id]:
                    missing.append({
                        "product_id": product_id,
                        "requested_quantity": totals[product_id],
                        "assigned_available": held,
                        "shortfall": totals[product_id] - held,
                    })
            if missing:
                raise InsufficientStockError(
                    "Employee does not hold enough assigned stock",
                    details={"employee_id": employee_id, "items": missing},
                )

        sale = EmployeeSale(
            invoice_number=next_document_number(name=SEQ_EMPLOYEE_SALE, prefix="EMP"),
            employee_id=employee_id,
            customer_id=customer_id,
            payment_method=method,
            notes=notes,
        )
        db.session.add(sale)
        db.session.flush()

        total = 0
        for item in items:
            product = ensure_product(item["product_id"])
            unit_price = item.get("unit_price_cents")
            if unit_price is None:
                unit_price = product.cost_price_cents

            allocation = deduct_from_assignments(
                employee_id,
                product.id,
                item["quantity"],
                source_type="employee_sale",
                source_id=sale.id,
            )
            line = EmployeeSaleLine(
                employee_sale_id=sale.id,
                product_id=product.id,
                quantity=item["quantity"],
                unit_price_cents=unit_price,
                line_total_cents=unit_price * item["quantity"],
                deducted_quantity=allocation.deducted,
                shortfall_quantity=allocation.shortfall,
            )
            db.session.add(line)
            total += line.line_total_cents

        sale.total_amount_cents = total
        db.session.commit()
        return sale

    with product_guard(*totals):
        return run_with_retry(_op)


def list_employee_sales(*, employee_id: int | None = None) -> list[EmployeeSale]:
    q = db.session.query(EmployeeSale)
    if employee_id is not None:
        q = q.filter(EmployeeSale.employee_id == employee_id)
    return q.order_by(EmployeeSale.id.desc()).all()


# =============================================================================
# ADJUSTMENTS
# =============================================================================

def record_adjustment(product_id: int, quantity_delta: int, *, note: str | None = None):
    """
    Compensating ADJUSTMENT event (stock count corrections).

    A negative adjustment is gate-checked like any other deduction.
    """
    if isinstance(quantity_delta, bool) or not isinstance(quantity_delta, int) or quantity_delta == 0:
        raise ValidationError("quantity_delta must be a non-zero integer")
    if abs(quantity_delta) > MAX_QUANTITY:
        raise ValidationError(f"quantity_delta cannot exceed {MAX_QUANTITY}")
    ensure_product(product_id)

    def _op():
        ensure_product(product_id, lock=True)
        if quantity_delta < 0:
            require_available(product_id, -quantity_delta, "deduct")
        event = append_stock_event(
            product_id=product_id,
            kind=EVENT_ADJUSTMENT,
            quantity_delta=quantity_delta,
            source_type="adjustment",
            note=note,
        )
        db.session.commit()
        return event

    with product_guard(product_id):
        event = run_with_retry(_op)
        refresh_cached_stock(product_id)
    return event
