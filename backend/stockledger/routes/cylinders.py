# Overview: Flask API routes for cylinder deposits, refills and returns.

from flask import Blueprint, request, jsonify

from ..models import CylinderTransaction
from ..services import operations_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_cylinder_transaction,
)
from .responses import KNOWN_ERRORS, error_response, internal_error

CYLINDER_POLICY = ModelValidationPolicy(
    writable_fields={
        "customer_id",
        "supplier_id",
        "product_id",
        "employee_id",
        "cylinder_size",
        "quantity",
        "amount_cents",
        "payment_method",
        "cash_amount_cents",
        "bank_name",
        "check_number",
        "status",
        "notes",
    },
    required_on_create={"product_id", "quantity"},
)

cylinders_bp = Blueprint("cylinders", __name__, url_prefix="/api/cylinders")


def _record(kind: str):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=CylinderTransaction, payload=payload, policy=CYLINDER_POLICY, partial=False)
        enforce_rules_cylinder_transaction(patch)
        tx = operations_service.record_cylinder_transaction(kind, patch)
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception as e:
        return internal_error(f"Failed to record cylinder {kind}", e)

    return jsonify({"success": True, "transaction": tx.to_dict()}), 201


@cylinders_bp.post("/deposit")
def deposit():
    return _record("deposit")


@cylinders_bp.post("/refill")
def refill():
    return _record("refill")


@cylinders_bp.post("/return")
def return_cylinder():
    return _record("return")
