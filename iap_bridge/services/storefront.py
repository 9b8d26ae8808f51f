"""
Storefront Protocols - Narrow interfaces to the external storefront.

NO DICTIONARIES - All data uses strongly typed models.

Command side: PaymentQueue and ProductCatalog accept requests.
Event side: PaymentTransactionObserver and ProductsRequestDelegate receive
outcomes, on whatever thread the storefront delivers them.
"""

from collections.abc import Sequence
from typing import Protocol

from iap_bridge.exceptions import StorefrontError
from iap_bridge.models.storefront import Payment, ProductsResponse, Transaction


class PaymentTransactionObserver(Protocol):
    """Receives transaction updates and restoration-pass signals."""

    def transactions_updated(self, transactions: Sequence[Transaction]) -> None:
        """Called with one or more transactions whose state changed."""
        ...

    def restore_completed_transactions_finished(self) -> None:
        """Called once every restorable transaction has been delivered."""
        ...

    def restore_completed_transactions_failed(self, error: StorefrontError) -> None:
        """Called when a restoration pass could not complete."""
        ...


class ProductsRequestDelegate(Protocol):
    """Receives the outcome of a catalog request."""

    def products_received(self, request_id: str, response: ProductsResponse) -> None:
        ...

    def product_request_failed(self, request_id: str, error: Exception) -> None:
        ...


class PaymentQueue(Protocol):
    """
    Storefront payment queue.

    Transactions reported to observers stay in the queue, and are
    redelivered, until finish_transaction() is called for them.
    """

    def add_observer(self, observer: PaymentTransactionObserver) -> None:
        ...

    def remove_observer(self, observer: PaymentTransactionObserver) -> None:
        ...

    def add(self, payment: Payment) -> None:
        """Submit a payment. The outcome arrives as transaction updates."""
        ...

    def restore_completed_transactions(self) -> None:
        """Start a restoration pass over previously purchased items."""
        ...

    def finish_transaction(self, transaction: Transaction) -> None:
        """Acknowledge a transaction so it is not redelivered."""
        ...

    def can_make_payments(self) -> bool:
        """Local capability check (e.g. parental controls). No network call."""
        ...


class ProductCatalog(Protocol):
    """Storefront catalog service."""

    def request_products(
        self,
        request_id: str,
        product_ids: frozenset[str],
        delegate: ProductsRequestDelegate,
    ) -> None:
        """Start a products request; the delegate is called with the outcome."""
        ...
