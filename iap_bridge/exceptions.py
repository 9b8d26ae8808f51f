"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.

Every IAPError carries a fixed, non-empty description that is used both
for logging and for the message shown to the player.
"""

from iap_bridge.models.storefront import OperationKind, StorefrontErrorCode


class IAPError(Exception):
    """Base exception for all in-app purchase errors."""

    description = "In-App Purchase error."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.description)


class NoProductIdentifiersFoundError(IAPError):
    """Raised when the bundled product identifier list is missing or unreadable."""

    description = "No In-App Purchase product identifiers were found."


class NoProductsFoundError(IAPError):
    """Raised when the catalog responds with zero products."""

    description = "No In-App Purchases were found."


class ProductRequestFailedError(IAPError):
    """Raised when the catalog request itself fails."""

    description = "Unable to fetch available In-App Purchase products at the moment."


class PaymentCancelledError(IAPError):
    """Raised when the user cancels, or payments are disabled on the device."""

    description = "In-App Purchase process was cancelled."


class OperationInProgressError(IAPError):
    """Raised when an operation of the same kind is still waiting for its outcome."""

    description = "Another In-App Purchase operation of this kind is already in progress."

    def __init__(self, kind: OperationKind) -> None:
        self.kind = kind
        super().__init__(f"{self.description} ({kind.value})")


class NotObservingError(IAPError):
    """Raised when purchasing before the observer is registered with the queue."""

    description = "The transaction observer is not registered with the payment queue."


class StorefrontError(Exception):
    """Error reported by the storefront queue.

    Passed through to callers verbatim, never wrapped.
    """

    def __init__(self, code: StorefrontErrorCode, message: str = "") -> None:
        self.code = code
        self.message = message or code.value.replace("_", " ")
        super().__init__(self.message)

    @property
    def is_cancelled(self) -> bool:
        """True when the user cancelled the payment."""
        return self.code == StorefrontErrorCode.PAYMENT_CANCELLED

    @property
    def description(self) -> str:
        return self.message
