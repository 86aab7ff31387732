"""Sync gateway port (abstract interface).

Defines the contract every remote stock store adapter must implement, so
a tenant session can run against the in-memory FakeSyncGateway (dev/test)
or the Protean-backed ProteanSyncGateway without changing the ledger.
"""

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

import structlog

from pos_inventory.stock.record import OrderLine, StockKey

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RemoteStock:
    """Authoritative quantity of one product or variant."""

    product_id: str
    total_stock: int
    variant_id: str | None = None
    name: str | None = None
    # Set when the change was made by confirm_order
    confirmation_id: str | None = field(default=None, compare=False)

    @property
    def key(self) -> StockKey:
        return StockKey(self.product_id, self.variant_id)


RecountCallback = Callable[[RemoteStock], None]


class RemoteChangeFeed:
    """Per-tenant watchers that adapters push recounts to."""

    def __init__(self) -> None:
        self._watchers: dict[str, list[RecountCallback]] = {}
        self._lock = threading.Lock()

    def watch(self, tenant_id: str, callback: RecountCallback) -> Callable[[], None]:
        with self._lock:
            self._watchers.setdefault(tenant_id, []).append(callback)

        def unwatch() -> None:
            with self._lock:
                callbacks = self._watchers.get(tenant_id, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unwatch

    def push(self, tenant_id: str, changes: Iterable[RemoteStock]) -> None:
        with self._lock:
            callbacks = list(self._watchers.get(tenant_id, []))
        for change in changes:
            for callback in callbacks:
                try:
                    callback(change)
                except Exception:
                    logger.exception(
                        "Recount watcher failed",
                        tenant_id=tenant_id,
                        product_id=change.product_id,
                        variant_id=change.variant_id,
                    )


class SyncGateway(ABC):
    """Abstract remote stock store."""

    @abstractmethod
    def load_all(self, tenant_id: str) -> list[RemoteStock]:
        """Return every stock document of the tenant.

        Raises RemoteUnavailable when the store cannot be reached.
        """
        ...

    @abstractmethod
    def persist_quantity(
        self,
        tenant_id: str,
        product_id: str,
        variant_id: str | None,
        total_stock: int,
    ) -> RemoteStock:
        """Overwrite one document's quantity and return it.

        Raises RemoteUnavailable or RemoteNotFound.
        """
        ...

    @abstractmethod
    def confirm_order(self, tenant_id: str, lines: list[OrderLine], confirmation_id: str) -> list[RemoteStock]:
        """Durably take the order's quantities out of the remote totals.

        All-or-nothing: either every line is applied and the new totals are
        returned, or nothing is. Raises RemoteUnavailable, or Conflict when
        a remote total is insufficient.

        ``confirmation_id`` is an idempotency key. A confirmation already
        applied is not applied again: the call returns the current totals
        of its documents and pushes nothing. Recounts pushed for an applied
        confirmation carry its id.
        """
        ...

    def watch(self, tenant_id: str, callback: RecountCallback) -> Callable[[], None]:
        """Push recounts of the tenant's documents to ``callback``.

        Returns a callable that stops the feed. Adapters without a change
        feed never call back.
        """
        return lambda: None
