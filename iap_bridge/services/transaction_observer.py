"""
Transaction Observer - Sole integration point with the storefront queue.

Converts the storefront's event stream (transaction updates, restoration
pass signals and catalog callbacks) into single-shot handler invocations.

Guarantees:
- At most one pending operation per kind; a second one fails fast.
- Each pending operation is settled at most once.
- Each terminal transaction is acted on once and always finished,
  including redeliveries.

Storefront callbacks may arrive on any thread. One lock guards the
pending slots, the restoration counter and the handled transaction ids.
Handlers run outside the lock. Handled ids are kept in a bounded,
oldest-first cache; redeliveries only concern recent transactions.
"""

import threading
from collections import OrderedDict
from collections.abc import Callable, Sequence

from structlog import get_logger

from iap_bridge.config import settings
from iap_bridge.exceptions import (
    NoProductIdentifiersFoundError,
    NoProductsFoundError,
    NotObservingError,
    OperationInProgressError,
    PaymentCancelledError,
    ProductRequestFailedError,
    StorefrontError,
)
from iap_bridge.models.operations import Handler, OperationResult, PendingOperation
from iap_bridge.models.storefront import (
    OperationKind,
    Payment,
    Product,
    ProductsResponse,
    StorefrontErrorCode,
    Transaction,
    TransactionState,
)
from iap_bridge.observability.metrics import metrics
from iap_bridge.services.storefront import PaymentQueue, ProductCatalog

logger = get_logger(__name__)

TransactionListener = Callable[[Transaction], None]


class TransactionObserver:
    """
    Payment queue observer and products request delegate.

    Construct once at process start with the storefront dependencies and
    share the instance; call start_observing() before buying or restoring.
    """

    def __init__(
        self,
        queue: PaymentQueue,
        catalog: ProductCatalog,
        unfinished_transaction_listener: TransactionListener | None = None,
        handled_transaction_cache_size: int | None = None,
    ) -> None:
        """
        Initialize the observer.

        Args:
            queue: Storefront payment queue
            catalog: Storefront catalog service
            unfinished_transaction_listener: Receives purchased transactions
                that no waiting caller claimed (interrupted purchases from an
                earlier session, or purchases whose caller stopped waiting)
            handled_transaction_cache_size: How many recently handled
                transaction ids to remember (defaults to settings)
        """
        self.queue = queue
        self.catalog = catalog
        self.unfinished_transaction_listener = unfinished_transaction_listener

        self._lock = threading.RLock()
        self._observing = False
        self._pending: dict[OperationKind, PendingOperation] = {}
        self._restored_count = 0
        self._settled: dict[OperationKind, PendingOperation] = {}
        self._handled_transaction_ids: OrderedDict[str, None] = OrderedDict()
        self._handled_transaction_cache_size = (
            handled_transaction_cache_size or settings.handled_transaction_cache_size
        )

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    @property
    def is_observing(self) -> bool:
        return self._observing

    def start_observing(self) -> None:
        """Register with the payment queue. Idempotent."""
        with self._lock:
            if self._observing:
                return
            self._observing = True
        self.queue.add_observer(self)
        logger.info("transaction_observer_started")

    def stop_observing(self) -> None:
        """Deregister from the payment queue. Idempotent."""
        with self._lock:
            if not self._observing:
                return
            self._observing = False
        self.queue.remove_observer(self)
        logger.info("transaction_observer_stopped")

    def can_make_payments(self) -> bool:
        return self.queue.can_make_payments()

    def is_pending(self, kind: OperationKind) -> bool:
        with self._lock:
            return kind in self._pending

    # ------------------------------------------------------------------
    # Pending slot bookkeeping
    # ------------------------------------------------------------------

    def _begin(
        self,
        kind: OperationKind,
        handler: Handler,
        product_id: str | None = None,
    ) -> PendingOperation:
        with self._lock:
            current = self._pending.get(kind)
            if current is not None:
                logger.warning(
                    "operation_already_in_progress",
                    operation=kind.value,
                    request_id=current.request_id,
                    abandoned=current.abandoned,
                )
                raise OperationInProgressError(kind)
            operation = PendingOperation(kind=kind, handler=handler, product_id=product_id)
            self._pending[kind] = operation
            return operation

    def _release(self, operation: PendingOperation) -> None:
        with self._lock:
            if self._pending.get(operation.kind) is operation:
                del self._pending[operation.kind]

    def _settle(
        self,
        kind: OperationKind,
        result: OperationResult,
        request_id: str | None = None,
        product_id: str | None = None,
        transaction: Transaction | None = None,
    ) -> PendingOperation | None:
        """
        Deliver a result to the pending operation of `kind`.

        Returns the settled operation, or None when nothing matched
        (no pending slot, a stale request id, or a different product).
        """
        with self._lock:
            operation = self._pending.get(kind)
            if operation is None:
                logger.info("outcome_without_pending_operation", operation=kind.value)
                return None
            if request_id is not None and operation.request_id != request_id:
                logger.info(
                    "outcome_for_stale_request",
                    operation=kind.value,
                    request_id=request_id,
                    pending_request_id=operation.request_id,
                )
                return None
            if product_id is not None and operation.product_id not in (None, product_id):
                logger.info(
                    "outcome_for_other_product",
                    operation=kind.value,
                    product_id=product_id,
                    pending_product_id=operation.product_id,
                )
                return None
            if not operation.claim():
                return None
            operation.transaction = transaction
            del self._pending[kind]
            self._settled[kind] = operation

        if operation.abandoned:
            logger.warning(
                "orphaned_outcome",
                operation=kind.value,
                request_id=operation.request_id,
                ok=result.ok,
            )
            metrics.record_orphan(kind.value)

        try:
            operation.handler(result)
        except Exception:
            logger.exception(
                "operation_handler_failed",
                operation=kind.value,
                request_id=operation.request_id,
            )
        return operation

    def abandon(self, kind: OperationKind, request_id: str) -> None:
        """
        Record that the caller stopped waiting.

        The storefront operation itself continues; the slot stays occupied
        until its terminal event arrives. If the operation was already
        settled by a purchase the caller never received, that transaction
        goes to the unfinished transaction listener instead.
        """
        with self._lock:
            operation = self._pending.get(kind)
            if operation is not None and operation.request_id == request_id:
                operation.abandoned = True
                handoff = None
            else:
                handoff = self._take_settled_transaction(kind, request_id)
                if handoff is None:
                    return

        if handoff is None:
            logger.warning("operation_abandoned", operation=kind.value, request_id=request_id)
            return

        logger.warning(
            "orphaned_outcome",
            operation=kind.value,
            request_id=request_id,
            transaction_id=handoff.transaction_id,
        )
        metrics.record_orphan(kind.value)
        self._forward_unfinished(handoff)

    def _take_settled_transaction(self, kind: OperationKind, request_id: str) -> Transaction | None:
        # Caller must hold the lock
        operation = self._settled.get(kind)
        if (
            operation is None
            or operation.request_id != request_id
            or operation.abandoned
            or operation.handed_off
            or operation.transaction is None
        ):
            return None
        operation.handed_off = True
        return operation.transaction

    def _remember(self, transaction_id: str) -> bool:
        """Record a handled transaction id. Returns True on first delivery."""
        # Caller must hold the lock
        if transaction_id in self._handled_transaction_ids:
            self._handled_transaction_ids.move_to_end(transaction_id)
            return False
        self._handled_transaction_ids[transaction_id] = None
        while len(self._handled_transaction_ids) > self._handled_transaction_cache_size:
            self._handled_transaction_ids.popitem(last=False)
        return True

    def _require_observing(self) -> None:
        if not self._observing:
            raise NotObservingError()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def get_products(self, product_ids: Sequence[str], handler: Handler) -> str | None:
        """
        Request catalog entries for `product_ids`.

        Returns the request id, or None when the handler was already
        invoked because there was nothing to request.
        """
        if not product_ids:
            handler(OperationResult.failure(NoProductIdentifiersFoundError()))
            return None

        operation = self._begin(OperationKind.PRODUCTS, handler)
        logger.info(
            "products_request_started",
            request_id=operation.request_id,
            count=len(product_ids),
        )
        try:
            self.catalog.request_products(operation.request_id, frozenset(product_ids), self)
        except Exception as exc:
            self.product_request_failed(operation.request_id, exc)
        return operation.request_id

    def buy(self, product: Product, handler: Handler) -> str:
        """Submit a payment for `product`. The outcome arrives as transaction updates."""
        self._require_observing()
        operation = self._begin(OperationKind.PURCHASE, handler, product_id=product.product_id)
        logger.info(
            "purchase_submitted",
            request_id=operation.request_id,
            product_id=product.product_id,
        )
        try:
            self.queue.add(Payment.for_product(product))
        except StorefrontError as exc:
            self._settle(OperationKind.PURCHASE, OperationResult.failure(exc))
        except Exception:
            self._release(operation)
            raise
        return operation.request_id

    def restore_purchases(self, handler: Handler) -> str:
        """Start a restoration pass. Resolves True if anything was restored."""
        self._require_observing()
        with self._lock:
            operation = self._begin(OperationKind.RESTORE, handler)
            self._restored_count = 0
        logger.info("restore_started", request_id=operation.request_id)
        try:
            self.queue.restore_completed_transactions()
        except StorefrontError as exc:
            self.restore_completed_transactions_failed(exc)
        except Exception:
            self._release(operation)
            raise
        return operation.request_id

    # ------------------------------------------------------------------
    # PaymentTransactionObserver
    # ------------------------------------------------------------------

    def transactions_updated(self, transactions: Sequence[Transaction]) -> None:
        for transaction in transactions:
            metrics.record_transaction(transaction.state.value)

            if not transaction.state.is_terminal:
                # purchasing / deferred: wait for redelivery in a terminal state
                logger.debug(
                    "transaction_not_terminal",
                    transaction_id=transaction.transaction_id,
                    state=transaction.state.value,
                )
                continue

            with self._lock:
                first_delivery = self._remember(transaction.transaction_id)
                if first_delivery and transaction.state == TransactionState.RESTORED:
                    self._restored_count += 1

            try:
                if not first_delivery:
                    logger.info(
                        "transaction_redelivered",
                        transaction_id=transaction.transaction_id,
                        state=transaction.state.value,
                    )
                elif transaction.state == TransactionState.PURCHASED:
                    self._handle_purchased(transaction)
                elif transaction.state == TransactionState.FAILED:
                    self._handle_failed(transaction)
                else:
                    logger.info(
                        "transaction_restored",
                        transaction_id=transaction.transaction_id,
                        product_id=transaction.product_id,
                    )
            finally:
                self._finish(transaction)

    def _finish(self, transaction: Transaction) -> None:
        self.queue.finish_transaction(transaction)
        metrics.record_finished()
        logger.debug(
            "transaction_finished",
            transaction_id=transaction.transaction_id,
            state=transaction.state.value,
        )

    def _handle_purchased(self, transaction: Transaction) -> None:
        operation = self._settle(
            OperationKind.PURCHASE,
            OperationResult.success(True),
            product_id=transaction.product_id,
            transaction=transaction,
        )
        logger.info(
            "transaction_purchased",
            transaction_id=transaction.transaction_id,
            product_id=transaction.product_id,
            claimed=operation is not None and not operation.abandoned,
        )
        if operation is None or operation.abandoned:
            self._forward_unfinished(transaction)

    def _handle_failed(self, transaction: Transaction) -> None:
        error = transaction.error or StorefrontError(
            StorefrontErrorCode.UNKNOWN, "Transaction failed without an error"
        )
        if error.is_cancelled:
            outcome: Exception = PaymentCancelledError()
            logger.info(
                "transaction_cancelled",
                transaction_id=transaction.transaction_id,
                product_id=transaction.product_id,
            )
        else:
            outcome = error
            logger.warning(
                "transaction_failed",
                transaction_id=transaction.transaction_id,
                product_id=transaction.product_id,
                code=error.code.value,
                error=error.description,
            )
        self._settle(
            OperationKind.PURCHASE,
            OperationResult.failure(outcome),
            product_id=transaction.product_id,
        )

    def _forward_unfinished(self, transaction: Transaction) -> None:
        if self.unfinished_transaction_listener is None:
            logger.warning(
                "unclaimed_transaction_dropped",
                transaction_id=transaction.transaction_id,
                product_id=transaction.product_id,
            )
            return
        try:
            self.unfinished_transaction_listener(transaction)
        except Exception:
            logger.exception(
                "unfinished_transaction_listener_failed",
                transaction_id=transaction.transaction_id,
            )

    def restore_completed_transactions_finished(self) -> None:
        with self._lock:
            restored = self._restored_count
        if restored == 0:
            logger.info("restore_finished_nothing_to_restore")
        else:
            logger.info("restore_finished", restored=restored)
        self._settle(OperationKind.RESTORE, OperationResult.success(restored > 0))

    def restore_completed_transactions_failed(self, error: StorefrontError) -> None:
        if error.is_cancelled:
            logger.info("restore_cancelled")
            outcome: Exception = PaymentCancelledError()
        else:
            logger.warning("restore_failed", code=error.code.value, error=error.description)
            outcome = error
        self._settle(OperationKind.RESTORE, OperationResult.failure(outcome))

    # ------------------------------------------------------------------
    # ProductsRequestDelegate
    # ------------------------------------------------------------------

    def products_received(self, request_id: str, response: ProductsResponse) -> None:
        if response.invalid_product_ids:
            logger.warning(
                "invalid_product_ids",
                request_id=request_id,
                product_ids=list(response.invalid_product_ids),
            )

        result: OperationResult[list[Product]]
        if response.products:
            logger.info("products_received", request_id=request_id, count=len(response.products))
            result = OperationResult.success(list(response.products))
        else:
            logger.warning("no_products_found", request_id=request_id)
            result = OperationResult.failure(NoProductsFoundError())
        self._settle(OperationKind.PRODUCTS, result, request_id=request_id)

    def product_request_failed(self, request_id: str, error: Exception) -> None:
        logger.warning("product_request_failed", request_id=request_id, error=str(error))
        failure = ProductRequestFailedError()
        failure.__cause__ = error
        self._settle(OperationKind.PRODUCTS, OperationResult.failure(failure), request_id=request_id)
