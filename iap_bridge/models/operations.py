"""
Operation models - One-shot outcomes and the single-flight pending slot.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar
from uuid import uuid4

from iap_bridge.models.storefront import OperationKind, Transaction

T = TypeVar("T")


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Outcome of one observer operation: either a value or an error."""

    value: T | None = None
    error: BaseException | None = None

    @classmethod
    def success(cls, value: T) -> "OperationResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: BaseException) -> "OperationResult[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value or raise the error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


Handler = Callable[[OperationResult[T]], None]


@dataclass
class PendingOperation(Generic[T]):
    """
    Single-flight slot for one outstanding operation.

    The handler runs at most once. `abandoned` is set when the caller
    stopped waiting; the slot is still released only by the storefront's
    terminal event. `transaction` is the purchase that settled it, kept so a
    caller that leaves after settlement can still hand it off once.
    """

    kind: OperationKind
    handler: Handler[T]
    product_id: str | None = None
    request_id: str = field(default_factory=lambda: uuid4().hex)
    settled: bool = False
    abandoned: bool = False
    transaction: Transaction | None = None
    handed_off: bool = False

    def claim(self) -> bool:
        """Mark as settled. Returns False if it was already settled."""
        if self.settled:
            return False
        self.settled = True
        return True
