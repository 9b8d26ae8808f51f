"""
Storefront domain models - Immutable dataclasses for the payment queue protocol.

NO DICTIONARIES - All data uses strongly typed models.

These mirror what the storefront hands back: catalog entries, payments
submitted to the queue, and the transactions the queue reports on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from iap_bridge.exceptions import StorefrontError


class TransactionState(str, Enum):
    """Lifecycle state of a payment transaction."""

    PURCHASING = "purchasing"
    PURCHASED = "purchased"
    FAILED = "failed"
    RESTORED = "restored"
    DEFERRED = "deferred"  # e.g. waiting for parental approval

    @property
    def is_terminal(self) -> bool:
        """Terminal states must be finished exactly once."""
        return self in (
            TransactionState.PURCHASED,
            TransactionState.FAILED,
            TransactionState.RESTORED,
        )


class StorefrontErrorCode(str, Enum):
    """Error codes reported by the storefront queue."""

    UNKNOWN = "unknown"
    CLIENT_INVALID = "client_invalid"
    PAYMENT_CANCELLED = "payment_cancelled"
    PAYMENT_INVALID = "payment_invalid"
    PAYMENT_NOT_ALLOWED = "payment_not_allowed"
    PRODUCT_NOT_AVAILABLE = "product_not_available"
    NETWORK_FAILURE = "network_failure"


class OperationKind(str, Enum):
    """Kinds of request that hold a pending slot in the observer."""

    PRODUCTS = "products"
    PURCHASE = "purchase"
    RESTORE = "restore"


@dataclass(frozen=True)
class Product:
    """Catalog entry returned by the storefront."""

    product_id: str
    price: Decimal
    currency_code: str
    locale: str = "en_US"
    title: str = ""
    description: str = ""

    def __post_init__(self) -> None:
        """Validate product fields."""
        if not self.product_id:
            raise ValueError("Product ID required")
        if self.price < 0:
            raise ValueError(f"Price cannot be negative: {self.price}")
        if len(self.currency_code) != 3:
            raise ValueError(f"Invalid currency code: {self.currency_code}")


@dataclass(frozen=True)
class Payment:
    """Payment request submitted to the queue."""

    product_id: str
    quantity: int = 1

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError(f"Quantity must be positive: {self.quantity}")

    @classmethod
    def for_product(cls, product: Product, quantity: int = 1) -> "Payment":
        return cls(product_id=product.product_id, quantity=quantity)


@dataclass(frozen=True)
class Transaction:
    """Transaction record reported by the payment queue.

    One transaction exists per purchase attempt or per restored
    historical purchase.
    """

    transaction_id: str
    product_id: str
    state: TransactionState
    error: StorefrontError | None = None
    original_transaction_id: str | None = None  # Set on restored transactions


@dataclass(frozen=True)
class ProductsResponse:
    """Catalog response for one products request."""

    products: tuple[Product, ...] = ()
    invalid_product_ids: tuple[str, ...] = field(default_factory=tuple)
