# Overview: Flask API routes for purchase orders; receiving a PO adds stock to the ledger.

from flask import Blueprint, request, jsonify

from ..models import PurchaseOrder
from ..services import operations_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_purchase_order,
)
from .responses import KNOWN_ERRORS, error_response, internal_error

PURCHASE_ORDER_POLICY = ModelValidationPolicy(
    writable_fields={"supplier_id", "product_id", "purchase_type", "purchase_date", "quantity", "unit_price_cents", "notes"},
    required_on_create={"supplier_id", "product_id", "quantity"},
)

purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.get("")
def list_purchase_orders():
    try:
        orders = operations_service.list_purchase_orders(status=request.args.get("status"))
    except Exception as e:
        return internal_error("Failed to list purchase orders", e)
    return jsonify({"items": [po.to_dict() for po in orders], "count": len(orders)})


@purchase_orders_bp.post("")
def create_purchase_order():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=PurchaseOrder, payload=payload, policy=PURCHASE_ORDER_POLICY, partial=False)
        enforce_rules_purchase_order(patch)
        po = operations_service.create_purchase_order(patch)
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception as e:
        return internal_error("Failed to create purchase order", e)

    return jsonify(po.to_dict()), 201


@purchase_orders_bp.post("/<int:po_id>/receive")
def receive_purchase_order(po_id: int):
    """Mark received and append PURCHASE_RECEIPT. Receiving twice is a 409."""
    try:
        po = operations_service.receive_purchase_order(po_id)
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception as e:
        return internal_error("Failed to receive purchase order", e)

    return jsonify({"success": True, "purchase_order": po.to_dict()})
