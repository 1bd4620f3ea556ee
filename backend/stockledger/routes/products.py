# Overview: Flask API routes for the product catalog; parses input and returns JSON responses.

# backend/stockledger/routes/products.py
"""
Product catalog routes.

current_stock is never writable here: it is the cached counter maintained
from the stock ledger and corrected by /api/stock/sync.
"""
from flask import Blueprint, request, jsonify

from ..models import Product
from ..services import catalog_service, stock_calculator
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
)
from .responses import KNOWN_ERRORS, error_response, internal_error

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category", "cylinder_type", "cost_price_cents", "least_price_cents", "is_active"},
    required_on_create={"name", "category"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    List products with optional pagination.

    Query params:
    - category: gas | cylinder (optional)
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    try:
        page = catalog_service.list_products(
            category=request.args.get("category"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except Exception as e:
        return internal_error("Failed to list products", e)
    return jsonify(page)


@products_bp.post("")
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = catalog_service.create_record(Product, patch)
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception as e:
        return internal_error("Failed to create product", e)

    return jsonify(product.to_dict()), 201


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    """Product with both the cached counter and the live ledger value."""
    try:
        product = catalog_service.ensure_product(product_id)
        data = product.to_dict()
        data["calculated_stock"] = stock_calculator.calculate_stock(product.id)
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception as e:
        return internal_error("Failed to load product", e)
    return jsonify(data)


@products_bp.put("/<int:product_id>")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        product = catalog_service.ensure_product(product_id)
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        merged = {"category": product.category, "cylinder_type": product.cylinder_type, **patch}
        enforce_rules_product(merged)
        product = catalog_service.update_product(product_id, patch)
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception as e:
        return internal_error("Failed to update product", e)

    return jsonify(product.to_dict())
