# Overview: Flask API routes for employee stock assignments (issue, receive, return).

from flask import Blueprint, request, jsonify

from ..models import StockAssignment
from ..services import assignment_service, ledger_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_assignment,
    parse_optional_id,
)
from .responses import KNOWN_ERRORS, error_response, internal_error

ASSIGNMENT_POLICY = ModelValidationPolicy(
    writable_fields={"employee_id", "product_id", "quantity", "assigned_by_user_id", "notes"},
    required_on_create={"employee_id", "product_id", "quantity"},
)

assignments_bp = Blueprint("assignments", __name__, url_prefix="/api/stock-assignments")


@assignments_bp.get("")
def list_assignments():
    """
    Query params (all optional): employee_id, product_id, status
    """
    try:
        rows = assignment_service.list_assignments(
            employee_id=parse_optional_id(request.args.get("employee_id"), "employee_id"),
            product_id=parse_optional_id(request.args.get("product_id"), "product_id"),
            status=request.args.get("status"),
        )
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception as e:
        return internal_error("Failed to list stock assignments", e)
    return jsonify({"items": [a.to_dict() for a in rows], "count": len(rows)})


@assignments_bp.post("")
def create_assignment():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=StockAssignment, payload=payload, policy=ASSIGNMENT_POLICY, partial=False)
        enforce_rules_assignment(patch)
        assignment = assignment_service.create_assignment(**patch)
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception as e:
        return internal_error("Failed to create stock assignment", e)

    return jsonify({"success": True, "assignment": assignment.to_dict()}), 201


@assignments_bp.get("/<int:assignment_id>")
def get_assignment(assignment_id: int):
    """Assignment plus the deductions drawn against it."""
    try:
        assignment = assignment_service.get_assignment(assignment_id)
        deductions = ledger_service.deduction_events_for_assignment(assignment.id)
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception as e:
        return internal_error("Failed to load stock assignment", e)

    return jsonify({
        "assignment": assignment.to_dict(),
        "deductions": [ev.to_dict() for ev in deductions],
    })


@assignments_bp.put("/<int:assignment_id>/receive")
def receive_assignment(assignment_id: int):
    try:
        assignment = assignment_service.receive_assignment(assignment_id)
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception as e:
        return internal_error("Failed to receive stock assignment", e)
    return jsonify({"success": True, "assignment": assignment.to_dict()})


@assignments_bp.put("/<int:assignment_id>/return")
def return_assignment(assignment_id: int):
    try:
        assignment = assignment_service.return_assignment(assignment_id)
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception as e:
        return internal_error("Failed to return stock assignment", e)
    return jsonify({"success": True, "assignment": assignment.to_dict()})
