# Overview: Flask API routes for sales made by field employees from assigned stock.

from flask import Blueprint, request, jsonify

from ..services import operations_service
from ..validation import parse_id, parse_optional_id, parse_line_items
from .responses import KNOWN_ERRORS, error_response, internal_error


employee_sales_bp = Blueprint("employee_sales", __name__, url_prefix="/api/employee-sales")


@employee_sales_bp.get("")
def list_employee_sales():
    try:
        employee_id = parse_optional_id(request.args.get("employee_id"), "employee_id")
        sales = operations_service.list_employee_sales(employee_id=employee_id)
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception as e:
        return internal_error("Failed to list employee sales", e)
    return jsonify({"items": [s.to_dict() for s in sales], "count": len(sales)})


@employee_sales_bp.post("")
def create_employee_sale():
    """
    Body: {"employee_id", "customer_id", "items": [...], "payment_method", "notes"}

    Lines not covered by the employee's received assignments come back with
    shortfall_quantity > 0 (or the sale is refused under the reject policy).
    """
    data = request.get_json(silent=True) or {}

    try:
        sale = operations_service.record_employee_sale(
            employee_id=parse_id(data.get("employee_id"), "employee_id"),
            customer_id=parse_id(data.get("customer_id"), "customer_id"),
            items=parse_line_items(data.get("items")),
            payment_method=data.get("payment_method"),
            notes=data.get("notes"),
        )
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception as e:
        return internal_error("Failed to record employee sale", e)

    return jsonify({"success": True, "sale": sale.to_dict()}), 201
