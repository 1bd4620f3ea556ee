# Overview: Pre-flight stock checks; answers whether an operation can proceed without driving stock negative.

from __future__ import annotations

from dataclasses import dataclass, asdict

from ..validation import ValidationError, parse_positive_quantity
from .exceptions import InsufficientStockError
from .stock_calculator import calculate_stock
from .catalog_service import ensure_product


OPERATION_DEDUCT = "deduct"
OPERATION_RECEIVE = "receive"
OPERATION_RETURN = "return"

# Operation names used by the consumers map onto deduct / additive checks.
DEDUCT_OPERATIONS = {OPERATION_DEDUCT, "sale", "refill", "deposit", "assignment", "check"}
ADDITIVE_OPERATIONS = {OPERATION_RECEIVE, OPERATION_RETURN}

REASON_INSUFFICIENT_STOCK = "InsufficientStock"


@dataclass
class StockValidation:
    product_id: int
    product_name: str
    operation: str
    requested_quantity: int
    available_quantity: int
    allowed: bool
    shortfall: int = 0
    reason: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def validate_stock_operation(product_id: int, quantity, operation: str = OPERATION_DEDUCT) -> StockValidation:
    """
    Check whether `operation` of `quantity` units can proceed.

    Reads the live ledger value, never the cached Product.current_stock.
    Pure read: appends nothing and changes nothing.
    """
    op = (operation or OPERATION_DEDUCT).strip().lower()
    if op not in DEDUCT_OPERATIONS and op not in ADDITIVE_OPERATIONS:
        raise ValidationError(
            f"operation must be one of: {', '.join(sorted(DEDUCT_OPERATIONS | ADDITIVE_OPERATIONS))}"
        )

    requested = parse_positive_quantity(quantity)
    product = ensure_product(product_id)
    available = calculate_stock(product.id)

    if op in ADDITIVE_OPERATIONS:
        return StockValidation(
            product_id=product.id,
            product_name=product.name,
            operation=op,
            requested_quantity=requested,
            available_quantity=available,
            allowed=True,
        )

    allowed = requested <= available
    return StockValidation(
        product_id=product.id,
        product_name=product.name,
        operation=op,
        requested_quantity=requested,
        available_quantity=available,
        allowed=allowed,
        shortfall=0 if allowed else requested - max(available, 0),
        reason=None if allowed else REASON_INSUFFICIENT_STOCK,
    )


def require_available(product_id: int, quantity, operation: str = OPERATION_DEDUCT) -> StockValidation:
    """validate_stock_operation that raises InsufficientStockError when not allowed."""
    result = validate_stock_operation(product_id, quantity, operation)
    if not result.allowed:
        raise InsufficientStockError(
            f"Insufficient stock for {result.product_name}. "
            f"Available: {result.available_quantity}, Requested: {result.requested_quantity}",
            details=result.to_dict(),
        )
    return result
