from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import utcnow, to_utc_z


# =============================================================================
# PURCHASE ORDERS
# =============================================================================

PO_STATUS_PENDING = "pending"
PO_STATUS_RECEIVED = "received"


class PurchaseOrder(db.Model):
    """
    Purchase order from a supplier for a single product.

    Receiving a PO appends a PURCHASE_RECEIPT ledger event; the status moves
    pending -> received exactly once.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("po_number", name="uq_purchase_orders_po_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    po_number = db.Column(db.String(32), nullable=False)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    purchase_type = db.Column(db.String(16), nullable=False)  # gas, cylinder
    purchase_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=PO_STATUS_PENDING, index=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.String(255), nullable=True)
    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    supplier = db.relationship("Supplier", backref=db.backref("purchase_orders", lazy=True))
    product = db.relationship("Product", backref=db.backref("purchase_orders", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "po_number": self.po_number,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.company_name if self.supplier else None,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "purchase_type": self.purchase_type,
            "purchase_date": to_utc_z(self.purchase_date),
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_amount_cents": self.total_amount_cents,
            "status": self.status,
            "received_at": to_utc_z(self.received_at),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


# =============================================================================
# SALES
# =============================================================================

SALE_STATUS_POSTED = "posted"
SALE_STATUS_VOIDED = "voided"

PAYMENT_METHODS = ("cash", "card", "bank_transfer", "credit")


class Sale(db.Model):
    """Direct (counter) sale. Voiding appends SALE_REVERSAL events instead of deleting."""
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("invoice_number", name="uq_sales_invoice_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(32), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_POSTED, index=True)

    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    received_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    payment_status = db.Column(db.String(16), nullable=False, default="cleared")  # cleared, pending, overdue
    notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    lines = db.relationship("SaleLine", backref="sale", lazy=True, order_by="SaleLine.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "status": self.status,
            "total_amount_cents": self.total_amount_cents,
            "received_amount_cents": self.received_amount_cents,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "voided_at": to_utc_z(self.voided_at),
            "void_reason": self.void_reason,
            "lines": [line.to_dict() for line in self.lines],
        }


class SaleLine(db.Model):
    __tablename__ = "sale_lines"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


# =============================================================================
# CYLINDER TRANSACTIONS
# =============================================================================

CYLINDER_DEPOSIT = "deposit"
CYLINDER_REFILL = "refill"
CYLINDER_RETURN = "return"
CYLINDER_TRANSACTION_TYPES = (CYLINDER_DEPOSIT, CYLINDER_REFILL, CYLINDER_RETURN)

CYLINDER_PAYMENT_METHODS = ("cash", "cheque")
CYLINDER_STATUSES = ("pending", "cleared", "overdue")


class CylinderTransaction(db.Model):
    """
    Cylinder deposit / refill / return.

    - deposit: cylinder leaves stock with a customer (deposit paid)
    - refill:  full cylinder consumed from stock
    - return:  customer brings a cylinder back into stock
    """
    __tablename__ = "cylinder_transactions"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(16), nullable=False, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True, index=True)

    cylinder_size = db.Column(db.String(16), nullable=False)  # small, large
    quantity = db.Column(db.Integer, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    cash_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    bank_name = db.Column(db.String(128), nullable=True)
    check_number = db.Column(db.String(64), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending")
    notes = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("cylinder_transactions", lazy=True))
    supplier = db.relationship("Supplier", backref=db.backref("cylinder_transactions", lazy=True))
    product = db.relationship("Product", backref=db.backref("cylinder_transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "customer_id": self.customer_id,
            "supplier_id": self.supplier_id,
            "product_id": self.product_id,
            "employee_id": self.employee_id,
            "cylinder_size": self.cylinder_size,
            "quantity": self.quantity,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "cash_amount_cents": self.cash_amount_cents,
            "bank_name": self.bank_name,
            "check_number": self.check_number,
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


# =============================================================================
# EMPLOYEE SALES
# =============================================================================

class EmployeeSale(db.Model):
    """
    Sale made by a field employee from stock assigned to them.

    Lines record how much was covered by the employee's assignments (deducted)
    and how much was not (shortfall).
    """
    __tablename__ = "employee_sales"
    __table_args__ = (
        db.UniqueConstraint("invoice_number", name="uq_employee_sales_invoice_number"),
        db.Index("ix_employee_sales_employee_created", "employee_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(32), nullable=False)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    payment_status = db.Column(db.String(16), nullable=False, default="paid")  # paid, pending, overdue
    notes = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    employee = db.relationship("Employee", backref=db.backref("sales", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("employee_sales", lazy=True))
    lines = db.relationship("EmployeeSaleLine", backref="employee_sale", lazy=True, order_by="EmployeeSaleLine.id")

    @property
    def shortfall_total(self) -> int:
        return sum(line.shortfall_quantity for line in self.lines)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "employee_id": self.employee_id,
            "customer_id": self.customer_id,
            "total_amount_cents": self.total_amount_cents,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "shortfall_total": self.shortfall_total,
            "lines": [line.to_dict() for line in self.lines],
        }


class EmployeeSaleLine(db.Model):
    __tablename__ = "employee_sale_lines"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    employee_sale_id = db.Column(db.Integer, db.ForeignKey("employee_sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    deducted_quantity = db.Column(db.Integer, nullable=False, default=0)
    shortfall_quantity = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employee_sale_id": self.employee_sale_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "deducted_quantity": self.deducted_quantity,
            "shortfall_quantity": self.shortfall_quantity,
        }
