# Overview: Flask API routes for direct sales; parses input and returns JSON responses.

# backend/stockledger/routes/sales.py
"""
Direct sales.

A sale is posted in one call (lines + stock deduction). Voiding never
deletes: it appends SALE_REVERSAL events for every line.
"""
from flask import Blueprint, request, jsonify

from ..services import operations_service
from ..validation import parse_cents, parse_id, parse_line_items
from .responses import KNOWN_ERRORS, error_response, internal_error


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
def create_sale_route():
    """
    Body:
    {
      "customer_id": int,
      "items": [{"product_id": int, "quantity": int, "unit_price_cents": int?}],
      "payment_method": "cash" | "card" | "bank_transfer" | "credit",
      "received_amount_cents": int?,
      "notes": str?
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        received = data.get("received_amount_cents")
        if received is not None:
            received = parse_cents(received, "received_amount_cents")

        sale = operations_service.record_sale(
            customer_id=parse_id(data.get("customer_id"), "customer_id"),
            items=parse_line_items(data.get("items")),
            payment_method=data.get("payment_method"),
            received_amount_cents=received,
            notes=data.get("notes"),
        )
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception as e:
        return internal_error("Failed to record sale", e)

    return jsonify({"success": True, "sale": sale.to_dict()}), 201


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        sale = operations_service.get_sale(sale_id)
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception as e:
        return internal_error("Failed to load sale", e)
    return jsonify({"sale": sale.to_dict()})


@sales_bp.post("/<int:sale_id>/void")
def void_sale_route(sale_id: int):
    data = request.get_json(silent=True) or {}

    try:
        sale = operations_service.void_sale(sale_id, reason=data.get("reason"))
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception as e:
        return internal_error("Failed to void sale", e)

    return jsonify({"success": True, "sale": sale.to_dict()})
