# Overview: Flask API routes for customers, suppliers and employees.

"""
Directory routes.

Records are never hard-deleted: stock events and documents reference them.
Retire one with PUT {"is_active": false}.
"""
from flask import Blueprint, request, jsonify

from ..models import Customer, Supplier, Employee
from ..services import catalog_service, assignment_service
from ..validation import ModelValidationPolicy, validate_payload
from .responses import KNOWN_ERRORS, error_response, internal_error

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "address", "is_active"},
    required_on_create={"name"},
)

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"company_name", "contact_person", "email", "phone", "address", "is_active"},
    required_on_create={"company_name"},
)

EMPLOYEE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "is_active"},
    required_on_create={"name"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")
suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")
employees_bp = Blueprint("employees", __name__, url_prefix="/api/employees")


def _create(model, policy):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=model, payload=payload, policy=policy, partial=False)
        record = catalog_service.create_record(model, patch)
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception as e:
        return internal_error(f"Failed to create {model.__tablename__} record", e)
    return jsonify(record.to_dict()), 201


def _list(model):
    try:
        page = catalog_service.list_records(
            model,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except Exception as e:
        return internal_error(f"Failed to list {model.__tablename__}", e)
    return jsonify(page)


def _get(model, record_id: int, label: str):
    try:
        record = catalog_service.ensure_exists(model, record_id, label)
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception as e:
        return internal_error(f"Failed to load {label.lower()}", e)
    return jsonify(record.to_dict())


def _update(model, record_id: int, label: str, policy):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=model, payload=payload, policy=policy, partial=True)
        record = catalog_service.update_record(model, record_id, label, patch)
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception as e:
        return internal_error(f"Failed to update {label.lower()}", e)
    return jsonify(record.to_dict())


@customers_bp.get("")
def list_customers():
    return _list(Customer)


@customers_bp.post("")
def create_customer():
    return _create(Customer, CUSTOMER_POLICY)


@customers_bp.get("/<int:customer_id>")
def get_customer(customer_id: int):
    return _get(Customer, customer_id, "Customer")


@customers_bp.put("/<int:customer_id>")
def update_customer(customer_id: int):
    return _update(Customer, customer_id, "Customer", CUSTOMER_POLICY)


@suppliers_bp.get("")
def list_suppliers():
    return _list(Supplier)


@suppliers_bp.post("")
def create_supplier():
    return _create(Supplier, SUPPLIER_POLICY)


@suppliers_bp.get("/<int:supplier_id>")
def get_supplier(supplier_id: int):
    return _get(Supplier, supplier_id, "Supplier")


@suppliers_bp.put("/<int:supplier_id>")
def update_supplier(supplier_id: int):
    return _update(Supplier, supplier_id, "Supplier", SUPPLIER_POLICY)


@employees_bp.get("")
def list_employees():
    return _list(Employee)


@employees_bp.post("")
def create_employee():
    return _create(Employee, EMPLOYEE_POLICY)


@employees_bp.get("/<int:employee_id>")
def get_employee(employee_id: int):
    return _get(Employee, employee_id, "Employee")


@employees_bp.put("/<int:employee_id>")
def update_employee(employee_id: int):
    return _update(Employee, employee_id, "Employee", EMPLOYEE_POLICY)


@employees_bp.get("/<int:employee_id>/stock")
def get_employee_stock(employee_id: int):
    """Units the employee currently holds, per product."""
    try:
        held = assignment_service.employee_held_stock(employee_id)
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception as e:
        return internal_error("Failed to load employee stock", e)
    return jsonify({"employee_id": employee_id, "items": held})
