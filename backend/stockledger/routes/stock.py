# Overview: Flask API routes for stock synchronization, validation and ledger inspection.

# backend/stockledger/routes/stock.py
"""
Stock sync / inspection routes.

POST /api/stock/sync with {"action": ...} or GET /api/stock/sync?action=...
(GET defaults to sync-all). Actions:
- sync-all:        recompute and overwrite the cached counter for every product
- sync-product:    same for one product (product_id)
- validate-stock:  gate check (product_id, quantity, operation)
- get-breakdown:   per-kind decomposition of a product's stock
- calculate-stock: ledger stock only, nothing written
- find-drift:      products whose cached counter disagrees with the ledger

Time semantics:
- since / as_of accept ISO-8601 with Z/offsets; both are inclusive.
"""
from flask import Blueprint, request, jsonify

from ..services import reconciliation_service, stock_calculator, validation_gate, ledger_service
from ..services import operations_service
from ..services.catalog_service import ensure_product
from ..time_utils import parse_iso_datetime, to_utc_z, utcnow
from ..validation import ValidationError, parse_id
from .responses import KNOWN_ERRORS, error_response, internal_error


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")

SYNC_ACTIONS = ("sync-all", "sync-product", "validate-stock", "get-breakdown", "calculate-stock", "find-drift")


def _product_id(params: dict) -> int:
    # camelCase alias kept for older clients
    raw = params.get("product_id", params.get("productId"))
    return parse_id(raw, "product_id")


def _as_of(params: dict):
    raw = params.get("as_of")
    if not raw:
        return None
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError("as_of must be an ISO-8601 datetime")


def _run_action(action: str, params: dict):
    if action == "sync-all":
        summary = reconciliation_service.sync_all()
        return {"message": "Stock synchronization completed", **summary.to_dict()}

    if action == "sync-product":
        result = reconciliation_service.sync_product(_product_id(params))
        return {"result": result.to_dict()}

    if action == "validate-stock":
        validation = validation_gate.validate_stock_operation(
            _product_id(params),
            params.get("quantity"),
            params.get("operation") or "deduct",
        )
        return {"validation": validation.to_dict()}

    if action == "get-breakdown":
        breakdown = stock_calculator.get_stock_breakdown(_product_id(params), _as_of(params))
        return {"breakdown": breakdown.to_dict()}

    if action == "calculate-stock":
        product = ensure_product(_product_id(params))
        as_of = _as_of(params)
        return {
            "product_id": product.id,
            "product_name": product.name,
            "calculated_stock": stock_calculator.calculate_stock(product.id, as_of),
            "cached_stock": product.current_stock,
            "as_of": to_utc_z(as_of or utcnow()),
        }

    if action == "find-drift":
        drifted = reconciliation_service.find_drift()
        return {"count": len(drifted), "drift": [r.to_dict() for r in drifted]}

    raise ValidationError(f"Invalid action. Use one of: {', '.join(SYNC_ACTIONS)}")


def _sync(action: str, params: dict):
    try:
        body = _run_action(action, params)
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception as e:
        return internal_error(f"Stock sync action {action} failed", e)
    return jsonify({"success": True, "action": action, **body})


@stock_bp.post("/sync")
def sync_post():
    payload = request.get_json(silent=True) or {}
    return _sync(payload.get("action") or "", payload)


@stock_bp.get("/sync")
def sync_get():
    params = request.args.to_dict()
    params.setdefault("operation", "check")
    return _sync(params.get("action") or "sync-all", params)


@stock_bp.get("/<int:product_id>/events")
def list_events(product_id: int):
    """
    Ledger events for a product, oldest first.

    Query params:
    - since: ISO-8601 (optional, inclusive)
    """
    try:
        ensure_product(product_id)
        since = None
        if request.args.get("since"):
            try:
                since = parse_iso_datetime(request.args["since"])
            except ValueError:
                raise ValidationError("since must be an ISO-8601 datetime")
        events = ledger_service.events_for(product_id, since)
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception as e:
        return internal_error("Failed to load stock events", e)

    return jsonify({
        "product_id": product_id,
        "count": len(events),
        "events": [ev.to_dict() for ev in events],
    })


@stock_bp.post("/<int:product_id>/adjust")
def adjust_stock(product_id: int):
    """Append a compensating ADJUSTMENT. Body: {"quantity_delta": int, "note": str}."""
    payload = request.get_json(silent=True) or {}
    try:
        event = operations_service.record_adjustment(
            product_id,
            payload.get("quantity_delta"),
            note=payload.get("note"),
        )
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception as e:
        return internal_error("Failed to adjust stock", e)

    return jsonify({"success": True, "event": event.to_dict()}), 201
