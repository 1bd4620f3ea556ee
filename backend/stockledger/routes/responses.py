# Overview: Shared JSON error responses for the API blueprints.

from flask import current_app, jsonify

from ..services.exceptions import StockError
from ..validation import ValidationError, ConflictError


def error_response(exc: Exception):
    """Map a known business error onto its HTTP status."""
    if isinstance(exc, StockError):
        return jsonify({"success": False, "error": str(exc), "details": exc.details}), exc.status_code
    if isinstance(exc, ConflictError):
        return jsonify({"success": False, "error": str(exc)}), 409
    if isinstance(exc, ValidationError):
        return jsonify({"success": False, "error": str(exc)}), 400
    raise exc


def internal_error(message: str, exc: Exception):
    current_app.logger.exception(message)
    return jsonify({"success": False, "error": "Internal server error", "details": str(exc)}), 500


KNOWN_ERRORS = (StockError, ValidationError, ConflictError)
