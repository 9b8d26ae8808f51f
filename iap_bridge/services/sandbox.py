"""
Sandbox Storefront - In-memory payment queue and catalog.

Simulates the storefront protocol for local runs and tests: every call
is recorded, events can be emitted by hand, and `auto_complete` makes the
queue answer purchases and restorations on its own. With
`deliver_on_thread=True` events arrive on a background thread, as they
do with a real storefront.
"""

import itertools
import threading
from collections.abc import Callable, Iterable, Sequence

from structlog import get_logger

from iap_bridge.exceptions import StorefrontError
from iap_bridge.models.storefront import (
    Payment,
    Product,
    ProductsResponse,
    Transaction,
    TransactionState,
)
from iap_bridge.services.storefront import PaymentTransactionObserver, ProductsRequestDelegate

logger = get_logger(__name__)


def _dispatch(fn: Callable[[], None], on_thread: bool) -> None:
    if on_thread:
        threading.Thread(target=fn, daemon=True).start()
    else:
        fn()


class SandboxPaymentQueue:
    """
    In-memory PaymentQueue.

    Unfinished transactions are kept and redelivered to observers that
    register later, like a real queue does after an app restart.
    """

    def __init__(
        self,
        payments_allowed: bool = True,
        owned_product_ids: Iterable[str] = (),
        auto_complete: bool = False,
        deliver_on_thread: bool = False,
    ) -> None:
        self.payments_allowed = payments_allowed
        self.owned_product_ids: list[str] = list(owned_product_ids)
        self.auto_complete = auto_complete
        self.deliver_on_thread = deliver_on_thread

        self.observers: list[PaymentTransactionObserver] = []
        self.added_payments: list[Payment] = []
        self.finished_transactions: list[Transaction] = []
        self.restore_requests = 0
        self.can_make_payments_calls = 0

        self._lock = threading.Lock()
        self._unfinished: dict[str, Transaction] = {}
        self._ids = itertools.count(1)

    def next_transaction_id(self) -> str:
        return f"sandbox-{next(self._ids)}"

    # PaymentQueue

    def add_observer(self, observer: PaymentTransactionObserver) -> None:
        with self._lock:
            if observer in self.observers:
                return
            self.observers.append(observer)
            pending = list(self._unfinished.values())
        if pending:
            logger.info("sandbox_redelivering_unfinished", count=len(pending))
            _dispatch(lambda: observer.transactions_updated(pending), self.deliver_on_thread)

    def remove_observer(self, observer: PaymentTransactionObserver) -> None:
        with self._lock:
            if observer in self.observers:
                self.observers.remove(observer)

    def add(self, payment: Payment) -> None:
        with self._lock:
            self.added_payments.append(payment)
        if self.auto_complete:
            transaction_id = self.next_transaction_id()
            self.deliver(
                Transaction(transaction_id, payment.product_id, TransactionState.PURCHASING),
                Transaction(transaction_id, payment.product_id, TransactionState.PURCHASED),
            )
            with self._lock:
                if payment.product_id not in self.owned_product_ids:
                    self.owned_product_ids.append(payment.product_id)

    def restore_completed_transactions(self) -> None:
        with self._lock:
            self.restore_requests += 1
            owned = list(self.owned_product_ids)
        if not self.auto_complete:
            return
        batch = self._track(
            [
                Transaction(
                    self.next_transaction_id(),
                    product_id,
                    TransactionState.RESTORED,
                    original_transaction_id=f"original-{product_id}",
                )
                for product_id in owned
            ]
        )

        # Restored transactions always precede the pass-finished signal
        def emit() -> None:
            for observer in self._observers():
                if batch:
                    observer.transactions_updated(batch)
                observer.restore_completed_transactions_finished()

        _dispatch(emit, self.deliver_on_thread)

    def finish_transaction(self, transaction: Transaction) -> None:
        with self._lock:
            self.finished_transactions.append(transaction)
            self._unfinished.pop(transaction.transaction_id, None)

    def can_make_payments(self) -> bool:
        self.can_make_payments_calls += 1
        return self.payments_allowed

    # Event emission

    def _observers(self) -> list[PaymentTransactionObserver]:
        with self._lock:
            return list(self.observers)

    def _track(self, transactions: Sequence[Transaction]) -> list[Transaction]:
        with self._lock:
            for transaction in transactions:
                if transaction.state.is_terminal:
                    self._unfinished[transaction.transaction_id] = transaction
                else:
                    self._unfinished.pop(transaction.transaction_id, None)
        return list(transactions)

    def deliver(self, *transactions: Transaction) -> None:
        """Report transaction updates to every observer."""
        if not transactions:
            return
        batch = self._track(transactions)

        def emit() -> None:
            for observer in self._observers():
                observer.transactions_updated(batch)

        _dispatch(emit, self.deliver_on_thread)

    def finish_restore(self) -> None:
        def emit() -> None:
            for observer in self._observers():
                observer.restore_completed_transactions_finished()

        _dispatch(emit, self.deliver_on_thread)

    def fail_restore(self, error: StorefrontError) -> None:
        def emit() -> None:
            for observer in self._observers():
                observer.restore_completed_transactions_failed(error)

        _dispatch(emit, self.deliver_on_thread)

    def unfinished_transactions(self) -> list[Transaction]:
        with self._lock:
            return list(self._unfinished.values())


class SandboxProductCatalog:
    """In-memory ProductCatalog answering with a fixed product list."""

    def __init__(
        self,
        products: Sequence[Product] = (),
        failure: Exception | None = None,
        auto_respond: bool = True,
        deliver_on_thread: bool = False,
    ) -> None:
        self.products = list(products)
        self.failure = failure
        self.auto_respond = auto_respond
        self.deliver_on_thread = deliver_on_thread
        self.requests: list[tuple[str, frozenset[str]]] = []
        self._delegates: dict[str, ProductsRequestDelegate] = {}

    def request_products(
        self,
        request_id: str,
        product_ids: frozenset[str],
        delegate: ProductsRequestDelegate,
    ) -> None:
        self.requests.append((request_id, product_ids))
        self._delegates[request_id] = delegate
        if self.auto_respond:
            if self.failure is not None:
                self.fail(request_id, self.failure)
            else:
                self.respond(request_id)

    def respond(self, request_id: str, products: Sequence[Product] | None = None) -> None:
        """Answer a recorded request; defaults to the catalog's matching products."""
        _, requested = next(r for r in self.requests if r[0] == request_id)
        delegate = self._delegates[request_id]
        if products is None:
            products = [p for p in self.products if p.product_id in requested]
        known = {p.product_id for p in products}
        response = ProductsResponse(
            products=tuple(products),
            invalid_product_ids=tuple(sorted(requested - known)),
        )
        _dispatch(lambda: delegate.products_received(request_id, response), self.deliver_on_thread)

    def fail(self, request_id: str, error: Exception) -> None:
        delegate = self._delegates[request_id]
        _dispatch(lambda: delegate.product_request_failed(request_id, error), self.deliver_on_thread)
