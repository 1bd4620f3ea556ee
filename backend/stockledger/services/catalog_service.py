# Overview: Service-layer operations for catalog records (products, customers, suppliers, employees).

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, Customer, Supplier, Employee
from ..validation import ConflictError
from .concurrency import lock_for_update
from .exceptions import NotFoundError, ProductNotFoundError


def ensure_product(product_id: int, *, require_active: bool = False, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise ProductNotFoundError(product_id)
    if require_active and not product.is_active:
        raise NotFoundError(f"Product is inactive: {product_id}", details={"product_id": product_id})
    return product


def ensure_exists(model, record_id: int, label: str):
    record = db.session.get(model, record_id)
    if record is None:
        raise NotFoundError(f"{label} not found: {record_id}", details={f"{label.lower()}_id": record_id})
    return record


def ensure_customer(customer_id: int) -> Customer:
    return ensure_exists(Customer, customer_id, "Customer")


def ensure_supplier(supplier_id: int) -> Supplier:
    return ensure_exists(Supplier, supplier_id, "Supplier")


def ensure_employee(employee_id: int) -> Employee:
    return ensure_exists(Employee, employee_id, "Employee")


def create_record(model, patch: dict):
    """Create a catalog record from an already validated patch."""
    record = model(**patch)
    db.session.add(record)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"{model.__tablename__} record conflicts with an existing one")
    return record


def _apply_patch(record, patch: dict):
    for key, value in patch.items():
        setattr(record, key, value)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"{record.__tablename__} record conflicts with an existing one")
    return record


def update_product(product_id: int, patch: dict) -> Product:
    return _apply_patch(ensure_product(product_id), patch)


def update_record(model, record_id: int, label: str, patch: dict):
    """
    Partial update of a customer, supplier or employee.

    There is no hard delete: ledger events and documents keep referencing
    these rows, so they are retired with is_active=False instead.
    """
    return _apply_patch(ensure_exists(model, record_id, label), patch)


def list_records(model, *, page: int | None = None, per_page: int | None = None, order_by=None) -> dict:
    """
    Listing with optional pagination.

    Args:
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 20, max 100)

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = db.session.query(model).order_by(*(order_by or (model.id.asc(),)))

    if page is None:
        rows = base_query.all()
        return {
            "items": [r.to_dict() for r in rows],
            "count": len(rows),
        }

    per_page = max(1, min(per_page or 20, 100))
    page = max(1, page)
    total = base_query.count()
    rows = base_query.offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": [r.to_dict() for r in rows],
        "count": len(rows),
        "page": page,
        "per_page": per_page,
        "total": total,
        "pages": (total + per_page - 1) // per_page,
    }


def list_products(*, category: str | None = None, page: int | None = None, per_page: int | None = None) -> dict:
    if category is None:
        return list_records(Product, page=page, per_page=per_page, order_by=(Product.name.asc(), Product.id.asc()))

    rows = (
        db.session.query(Product)
        .filter_by(category=category)
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )
    return {"items": [p.to_dict() for p in rows], "count": len(rows)}
