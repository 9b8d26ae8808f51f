"""
Purchase Service - Awaitable request/response facade over the TransactionObserver.

Each call creates a one-shot future that the observer's handler resolves,
possibly from a storefront thread.

Cancellation contract: a timeout or task cancellation only stops the
caller from waiting. The storefront transaction is never cancelled; the
observer marks the operation abandoned and its slot stays occupied until
the storefront delivers the terminal event. Purchases completed after the
caller left go to the unfinished transaction listener. An outcome that
reached the handler before the timeout fired is still returned.
"""

import asyncio
from collections.abc import Callable
from typing import Any

from structlog import get_logger

from iap_bridge.exceptions import NoProductIdentifiersFoundError, PaymentCancelledError
from iap_bridge.models.operations import Handler, OperationResult
from iap_bridge.models.storefront import OperationKind, Product
from iap_bridge.observability.logging import log_context
from iap_bridge.observability.metrics import track_operation
from iap_bridge.observability.tracing import trace_operation
from iap_bridge.services.pricing import format_price
from iap_bridge.services.product_ids import ProductIdentifierSource
from iap_bridge.services.transaction_observer import TransactionObserver

logger = get_logger(__name__)


def _resolve(future: asyncio.Future, result: OperationResult) -> None:
    if not future.done():
        future.set_result(result)


class PurchaseService:
    """Awaitable in-app purchase operations."""

    def __init__(
        self,
        observer: TransactionObserver,
        product_ids: ProductIdentifierSource,
    ) -> None:
        self.observer = observer
        self.product_ids = product_ids

    def start_observing(self) -> None:
        self.observer.start_observing()

    def stop_observing(self) -> None:
        self.observer.stop_observing()

    def can_make_payments(self) -> bool:
        return self.observer.can_make_payments()

    def get_price_formatted(self, product: Product) -> str:
        return format_price(product)

    async def _await_outcome(
        self,
        kind: OperationKind,
        start: Callable[[Handler], str | None],
        timeout: float | None,
    ) -> Any:
        """Start an observer operation and wait for its single outcome."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future[OperationResult] = loop.create_future()
        # Set by the handler before the future is resolved on the loop
        delivered: list[OperationResult] = []

        def handler(result: OperationResult) -> None:
            delivered.append(result)
            try:
                loop.call_soon_threadsafe(_resolve, future, result)
            except RuntimeError:
                logger.warning("outcome_dropped_loop_closed", operation=kind.value, ok=result.ok)

        request_id = start(handler)
        try:
            if timeout is None:
                result = await future
            else:
                result = await asyncio.wait_for(future, timeout)
        except TimeoutError:
            if delivered:
                logger.info("outcome_arrived_at_timeout", operation=kind.value)
                return delivered[0].unwrap()
            if request_id is not None:
                self.observer.abandon(kind, request_id)
            raise
        except asyncio.CancelledError:
            # A purchase settled before the cancellation is handed off by abandon()
            if request_id is not None:
                self.observer.abandon(kind, request_id)
            raise
        return result.unwrap()

    async def fetch_products(self, timeout: float | None = None) -> list[Product]:
        """
        Fetch catalog entries for the bundled product identifiers.

        Raises:
            NoProductIdentifiersFoundError: Identifier list missing, unreadable or empty
            NoProductsFoundError: Catalog returned zero products
            ProductRequestFailedError: Catalog request failed
            OperationInProgressError: Another fetch is still waiting
        """
        with (
            track_operation(OperationKind.PRODUCTS.value),
            trace_operation("iap.fetch_products"),
            log_context(operation=OperationKind.PRODUCTS.value),
        ):
            product_ids = self.product_ids.get_product_ids()
            if not product_ids:
                logger.warning("fetch_products_without_identifiers")
                raise NoProductIdentifiersFoundError()

            products: list[Product] = await self._await_outcome(
                OperationKind.PRODUCTS,
                lambda handler: self.observer.get_products(product_ids, handler),
                timeout,
            )
            return products

    async def buy(self, product: Product, timeout: float | None = None) -> bool:
        """
        Purchase `product`. Returns True once the storefront reports it purchased.

        Raises:
            PaymentCancelledError: Payments disabled, or the user cancelled
            StorefrontError: Any other storefront failure, unwrapped
            OperationInProgressError: Another purchase is still waiting
        """
        with (
            track_operation(OperationKind.PURCHASE.value),
            trace_operation("iap.buy", product_id=product.product_id),
            log_context(operation=OperationKind.PURCHASE.value, product_id=product.product_id),
        ):
            if not self.observer.can_make_payments():
                logger.warning("payments_disabled", product_id=product.product_id)
                raise PaymentCancelledError()

            purchased: bool = await self._await_outcome(
                OperationKind.PURCHASE,
                lambda handler: self.observer.buy(product, handler),
                timeout,
            )
            return purchased

    async def restore_purchases(self, timeout: float | None = None) -> bool:
        """
        Restore previously purchased items.

        Returns True if at least one transaction was restored, False if
        there was nothing to restore.
        """
        with (
            track_operation(OperationKind.RESTORE.value) as tracker,
            trace_operation("iap.restore_purchases") as span,
            log_context(operation=OperationKind.RESTORE.value),
        ):
            restored: bool = await self._await_outcome(
                OperationKind.RESTORE,
                self.observer.restore_purchases,
                timeout,
            )
            tracker.set_outcome("restored" if restored else "nothing_to_restore")
            span.set_attribute("restored", restored)
            return restored
