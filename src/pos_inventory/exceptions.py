"""Errors raised by the inventory ledger and its sync gateway."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Shortfall:
    """One order line that could not be covered by available stock."""

    product_id: str
    variant_id: str | None
    requested: int
    available: int

    @property
    def shortfall(self) -> int:
        return max(0, self.requested - self.available)

    def describe(self) -> str:
        variant = f" (variant {self.variant_id})" if self.variant_id else ""
        return f"{self.product_id}{variant}: {self.available} available, {self.requested} requested"


class InventoryError(Exception):
    """Base class for all inventory errors."""


class InsufficientStock(InventoryError):
    """Reservation rejected because available stock is too low.

    Recoverable: inform the operator, do not retry automatically.
    """

    def __init__(self, shortfalls: list[Shortfall]) -> None:
        self.shortfalls = list(shortfalls)
        super().__init__("Insufficient stock: " + "; ".join(s.describe() for s in self.shortfalls))


class UnknownProduct(InventoryError):
    """The referenced product/variant has no stock record. Refresh and retry."""

    def __init__(self, product_id: str, variant_id: str | None = None) -> None:
        self.product_id = product_id
        self.variant_id = variant_id
        variant = f" variant {variant_id}" if variant_id else ""
        super().__init__(f"No stock record for product {product_id}{variant}")


class NotInitialized(InventoryError):
    """The tenant session has not loaded its stock yet."""


class SessionClosed(InventoryError):
    """The tenant session was closed and can no longer be used."""


class RemoteError(InventoryError):
    """Base class for failures reported across the sync gateway.

    ``confirmation_id`` is set when the failure happened while confirming
    an order, so the caller can retry with the same id.
    """

    confirmation_id: str | None = None


class RemoteUnavailable(RemoteError):
    """The remote store could not be reached or did not answer in time.

    Transient: callers may retry with backoff.
    """


class RemoteNotFound(RemoteError):
    """The remote store has no document for the referenced product/variant."""


class Conflict(RemoteError):
    """The remote totals were insufficient at confirmation time.

    Reconcile (re-read authoritative stock) before retrying.
    """

    def __init__(self, message: str, shortfalls: list[Shortfall] | None = None) -> None:
        self.shortfalls = list(shortfalls or [])
        super().__init__(message)
