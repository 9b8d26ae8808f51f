"""
Tests for storefront and operation models.
"""

from decimal import Decimal

import pytest

from iap_bridge.models.operations import OperationResult, PendingOperation
from iap_bridge.models.storefront import (
    OperationKind,
    Payment,
    Product,
    ProductsResponse,
    TransactionState,
)


class TestProduct:
    """Tests for Product validation."""

    def test_valid_product(self):
        product = Product("com.fakegame.extra_lives", Decimal("0.99"), "USD")

        assert product.product_id == "com.fakegame.extra_lives"
        assert product.price == Decimal("0.99")
        assert product.locale == "en_US"

    def test_missing_product_id(self):
        with pytest.raises(ValueError, match="Product ID required"):
            Product("", Decimal("0.99"), "USD")

    def test_negative_price(self):
        with pytest.raises(ValueError, match="Price cannot be negative"):
            Product("p", Decimal("-1"), "USD")

    def test_invalid_currency(self):
        with pytest.raises(ValueError, match="Invalid currency code"):
            Product("p", Decimal("1"), "US")

    def test_immutable(self):
        product = Product("p", Decimal("1"), "USD")
        with pytest.raises(AttributeError):
            product.price = Decimal("2")  # type: ignore[misc]


class TestPayment:
    """Tests for Payment."""

    def test_for_product(self):
        product = Product("p", Decimal("1"), "USD")
        payment = Payment.for_product(product)

        assert payment.product_id == "p"
        assert payment.quantity == 1

    def test_invalid_quantity(self):
        with pytest.raises(ValueError, match="Quantity must be positive"):
            Payment("p", quantity=0)


class TestTransactionState:
    """Tests for TransactionState."""

    @pytest.mark.parametrize(
        "state,terminal",
        [
            (TransactionState.PURCHASING, False),
            (TransactionState.DEFERRED, False),
            (TransactionState.PURCHASED, True),
            (TransactionState.FAILED, True),
            (TransactionState.RESTORED, True),
        ],
    )
    def test_is_terminal(self, state, terminal):
        assert state.is_terminal is terminal


class TestProductsResponse:
    def test_defaults_empty(self):
        response = ProductsResponse()
        assert response.products == ()
        assert response.invalid_product_ids == ()


class TestOperationResult:
    """Tests for OperationResult."""

    def test_success_unwraps_value(self):
        result = OperationResult.success([1, 2])
        assert result.ok
        assert result.unwrap() == [1, 2]

    def test_success_with_false_value(self):
        result = OperationResult.success(False)
        assert result.ok
        assert result.unwrap() is False

    def test_failure_raises_error(self):
        error = RuntimeError("boom")
        result = OperationResult.failure(error)

        assert not result.ok
        with pytest.raises(RuntimeError) as exc_info:
            result.unwrap()
        assert exc_info.value is error


class TestPendingOperation:
    """Tests for the settle-once guard."""

    def test_claim_once(self):
        operation = PendingOperation(kind=OperationKind.PURCHASE, handler=lambda r: None)

        assert operation.claim() is True
        assert operation.claim() is False
        assert operation.settled

    def test_request_ids_are_unique(self):
        first = PendingOperation(kind=OperationKind.PRODUCTS, handler=lambda r: None)
        second = PendingOperation(kind=OperationKind.PRODUCTS, handler=lambda r: None)

        assert first.request_id != second.request_id
        assert not first.abandoned
