# Overview: Pytest coverage for pre-flight stock validation.

import pytest

from stockledger.models import StockEvent
from stockledger.services.exceptions import InsufficientStockError, ProductNotFoundError
from stockledger.services.operations_service import record_sale
from stockledger.services.validation_gate import (
    validate_stock_operation,
    require_available,
    REASON_INSUFFICIENT_STOCK,
)
from stockledger.validation import ValidationError

from conftest import receive_stock


class TestValidateStockOperation:

    def test_within_stock_allowed(self, db_session, gas_product):
        receive_stock(gas_product.id, 10)
        result = validate_stock_operation(gas_product.id, 10, "sale")
        assert result.allowed
        assert result.shortfall == 0
        assert result.reason is None

    def test_over_stock_rejected(self, db_session, gas_product):
        receive_stock(gas_product.id, 10)
        result = validate_stock_operation(gas_product.id, 50, "deduct")

        assert not result.allowed
        assert result.reason == REASON_INSUFFICIENT_STOCK
        assert result.available_quantity == 10
        assert result.requested_quantity == 50
        assert result.shortfall == 40

    def test_additive_operations_always_allowed(self, db_session, gas_product):
        assert validate_stock_operation(gas_product.id, 5, "receive").allowed
        assert validate_stock_operation(gas_product.id, 5, "return").allowed

    def test_check_maps_to_deduct(self, db_session, gas_product):
        assert not validate_stock_operation(gas_product.id, 1, "check").allowed

    @pytest.mark.parametrize("quantity", [0, -3, "abc", 1.5, None])
    def test_quantity_must_be_positive_integer(self, db_session, gas_product, quantity):
        with pytest.raises(ValidationError):
            validate_stock_operation(gas_product.id, quantity, "deduct")

    def test_unknown_operation(self, db_session, gas_product):
        with pytest.raises(ValidationError):
            validate_stock_operation(gas_product.id, 1, "teleport")

    def test_unknown_product(self, db_session):
        with pytest.raises(ProductNotFoundError):
            validate_stock_operation(99999, 1, "deduct")

    def test_gate_is_read_only(self, db_session, gas_product):
        receive_stock(gas_product.id, 10)
        before = db_session.query(StockEvent).count()
        validate_stock_operation(gas_product.id, 50, "deduct")
        assert db_session.query(StockEvent).count() == before


class TestNegativeStockGuard:
    """A deduction larger than stock is refused before anything is written."""

    def test_require_available_raises_with_details(self, db_session, gas_product):
        receive_stock(gas_product.id, 10)
        with pytest.raises(InsufficientStockError) as exc:
            require_available(gas_product.id, 50, "sale")
        assert exc.value.details["shortfall"] == 40

    def test_sale_rejected_and_no_event_appended(self, db_session, gas_product, customer):
        receive_stock(gas_product.id, 10)
        before = db_session.query(StockEvent).count()

        with pytest.raises(InsufficientStockError):
            record_sale(customer_id=customer.id, items=[{"product_id": gas_product.id, "quantity": 50}])

        assert db_session.query(StockEvent).count() == before
