"""Inventory Facade: the single object a restaurant session talks to.

An ``InventoryManager`` owns the stock map of one tenant. It loads the map
from the sync gateway, reserves stock for orders, confirms them remotely,
applies recounts pushed by the gateway and tells subscribers when anything
changed. Remote calls run on a small worker pool so every one of them is
bounded by ``InventorySettings.remote_timeout``; a call that overruns is
reported as ``RemoteUnavailable``.

Order processing favors "reserved locally, unconfirmed remotely" over
silently giving stock back: if confirmation fails, the reservation stays
and the error reaches the caller, who can ``confirm_order`` again with the
error's ``confirmation_id``, ``reconcile`` after a ``Conflict``, or
``release_order``.

``InventoryRegistry`` holds one manager per tenant for processes serving
several restaurants.
"""

import threading
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from uuid import uuid4

import structlog
from protean.exceptions import ValidationError

from pos_inventory.config import InventorySettings
from pos_inventory.exceptions import Conflict, NotInitialized, RemoteError, RemoteUnavailable, SessionClosed
from pos_inventory.gateway.port import RemoteStock, SyncGateway
from pos_inventory.stock.notifier import ChangeNotifier, Subscription
from pos_inventory.stock.record import OrderLine, StockKey, StockRecord, as_order_lines
from pos_inventory.stock.reservation import ReservationEngine
from pos_inventory.stock.store import StockStore

logger = structlog.get_logger(__name__)


def _entries(stocks: Iterable[RemoteStock]):
    return [(stock.key, stock.total_stock, stock.name) for stock in stocks]


class InventoryManager:
    def __init__(
        self,
        tenant_id: str,
        gateway: SyncGateway,
        settings: InventorySettings | None = None,
    ) -> None:
        if not tenant_id:
            raise ValidationError({"tenant_id": ["Tenant id is required"]})
        self.tenant_id = str(tenant_id)
        self.gateway = gateway
        self.settings = settings or InventorySettings()

        self._store = StockStore()
        self._notifier = ChangeNotifier()
        self._engine = ReservationEngine(self._store, self._notifier)
        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.remote_workers,
            thread_name_prefix=f"inventory-{self.tenant_id}",
        )
        self._unwatch: Callable[[], None] | None = None
        self._initialized = False
        self._closed = False
        self._lifecycle_lock = threading.Lock()
        self._confirm_lock = threading.Lock()
        self._log = logger.bind(tenant_id=self.tenant_id)

    def __enter__(self) -> "InventoryManager":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_closed(self) -> bool:
        return self._closed

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def initialize(self) -> int:
        """Load the tenant's stock from the gateway and start the recount feed.

        Reservations never survive a load: every record starts with nothing
        ordered. Calling it again reloads. Returns the number of records.
        """
        self._ensure_open()
        stocks = self._remote("load_all", self.gateway.load_all, self.tenant_id)
        count = self._store.load(_entries(stocks))

        with self._lifecycle_lock:
            if self._unwatch is None:
                self._unwatch = self.gateway.watch(self.tenant_id, self.apply_recount)
            self._initialized = True

        self._log.info("Inventory initialized", records=count)
        self._notifier.publish()
        return count

    def close(self) -> None:
        """End the session: stop the feed, drop observers and the stock map."""
        with self._lifecycle_lock:
            if self._closed:
                return
            self._closed = True
            self._initialized = False
            unwatch, self._unwatch = self._unwatch, None

        if unwatch is not None:
            unwatch()
        self._notifier.clear()
        self._store.clear()
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._log.info("Inventory session closed")

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def get_all_stock(self) -> Mapping[StockKey, StockRecord]:
        return self._store.snapshot()

    def get_product_stock(self, product_id: str, variant_id: str | None = None) -> StockRecord | None:
        return self._store.get(product_id, variant_id)

    def get_available_stock(self, product_id: str, variant_id: str | None = None) -> int | None:
        """Available units, or None when nothing is known about the product."""
        record = self._store.get(product_id, variant_id)
        return record.available_stock if record else None

    def is_available(self, product_id: str, variant_id: str | None = None, quantity: int = 1) -> bool:
        """Whether ``quantity`` units can be ordered. Unknown products are not available."""
        record = self._store.get(product_id, variant_id)
        return record is not None and record.available_stock >= quantity

    # -------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------
    def update_total_stock(self, product_id: str, variant_id: str | None, new_quantity: int) -> StockRecord:
        """Persist an operator's stock edit, then adopt it locally.

        If the gateway fails, the local record is left as it was.
        """
        self._ensure_ready()
        if isinstance(new_quantity, bool) or not isinstance(new_quantity, int) or new_quantity < 0:
            raise ValidationError({"new_quantity": ["Stock must be a non-negative integer"]})
        key = StockKey.of(product_id, variant_id)

        try:
            stock = self._remote(
                "persist_quantity",
                self.gateway.persist_quantity,
                self.tenant_id,
                key.product_id,
                key.variant_id,
                new_quantity,
            )
        except RemoteError as exc:
            self._log.warning(
                "Stock edit not persisted",
                product_id=key.product_id,
                variant_id=key.variant_id,
                new_quantity=new_quantity,
                error=str(exc),
            )
            raise

        record = self._store.set(key.product_id, key.variant_id, stock.total_stock, stock.name)
        self._log.info(
            "Stock edited",
            product_id=key.product_id,
            variant_id=key.variant_id,
            total_stock=record.total_stock,
        )
        self._notifier.publish()
        return record

    def process_order(self, lines: Iterable[OrderLine | dict], confirmation_id: str | None = None) -> bool:
        """Reserve the order locally and confirm it with the gateway.

        Raises InsufficientStock/UnknownProduct with nothing reserved, or a
        RemoteError with the reservation kept in place. The error carries the
        ``confirmation_id`` to retry ``confirm_order`` with.
        """
        lines = self.reserve_order(lines)
        self.confirm_order(lines, confirmation_id)
        return True

    def reserve_order(self, lines: Iterable[OrderLine | dict]) -> list[OrderLine]:
        """Reserve an order locally without confirming it. Returns the normalized lines."""
        self._ensure_ready()
        lines = as_order_lines(lines)
        self._engine.reserve(lines)
        return lines

    def confirm_order(self, lines: Iterable[OrderLine | dict], confirmation_id: str | None = None) -> str:
        """Confirm already-reserved lines with the gateway and settle them locally.

        ``confirmation_id`` is the gateway's idempotency key; a new one is
        drawn when none is given. Retrying with the id of a confirmation
        that failed with RemoteUnavailable never takes the stock twice, even
        if the first attempt went through after all. Returns the id.

        Confirmations of one session run one at a time so the totals they
        report are applied in the order the gateway produced them.
        """
        self._ensure_ready()
        lines = as_order_lines(lines)
        confirmation_id = confirmation_id or str(uuid4())
        with self._confirm_lock:
            self._engine.begin_confirmation(confirmation_id, lines)
            try:
                stocks = self._remote(
                    "confirm_order",
                    self.gateway.confirm_order,
                    self.tenant_id,
                    lines,
                    confirmation_id,
                )
            except RemoteError as exc:
                if isinstance(exc, Conflict):
                    # Nothing was applied remotely
                    self._engine.forget(confirmation_id)
                exc.confirmation_id = confirmation_id
                self._log.warning(
                    "Order reserved but not confirmed",
                    confirmation_id=confirmation_id,
                    lines=len(lines),
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                raise

            self._engine.settle(confirmation_id, {stock.key: stock.total_stock for stock in stocks})
        self._log.info(
            "Order confirmed",
            confirmation_id=confirmation_id,
            lines=len(lines),
            units=sum(line.quantity for line in lines),
        )
        return confirmation_id

    def release_order(self, lines: Iterable[OrderLine | dict], confirmation_id: str | None = None) -> int:
        """Give back the reservation of an order that will not be confirmed.

        Pass the ``confirmation_id`` of a failed confirmation so a late
        recount for it is no longer matched against the released lines.
        """
        self._ensure_ready()
        self._engine.forget(confirmation_id)
        return self._engine.release(lines)

    def reconcile(self) -> tuple[int, int]:
        """Re-read the remote totals, keeping local reservations.

        Records the remote no longer has are dropped. Returns
        ``(updated, removed)``.
        """
        self._ensure_ready()
        stocks = self._remote("load_all", self.gateway.load_all, self.tenant_id)
        updated, removed = self._store.reconcile(_entries(stocks))
        self._log.info("Inventory reconciled", updated=updated, removed=removed)
        self._notifier.publish()
        return updated, removed

    def apply_recount(self, stock: RemoteStock) -> StockRecord | None:
        """Adopt an authoritative total pushed by the gateway."""
        if self._closed:
            return None
        return self._engine.apply_recount(stock)

    # -------------------------------------------------------------------
    # Change notifications
    # -------------------------------------------------------------------
    def add_listener(self, listener: Callable[[], None]) -> Subscription:
        self._ensure_open()
        return self._notifier.subscribe(listener)

    def remove_listener(self, subscription: Subscription) -> bool:
        return self._notifier.unsubscribe(subscription)

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosed(f"Inventory session for tenant {self.tenant_id} is closed")

    def _ensure_ready(self) -> None:
        self._ensure_open()
        if not self._initialized:
            raise NotInitialized(f"Inventory for tenant {self.tenant_id} has not been initialized")

    def _remote(self, operation: str, call, *args):
        """Run a gateway call, waiting at most ``remote_timeout`` seconds."""
        timeout = self.settings.remote_timeout
        future = self._executor.submit(call, *args)
        try:
            return future.result(timeout=timeout)
        except FuturesTimeout as exc:
            future.cancel()
            self._log.warning("Remote call timed out", operation=operation, timeout=timeout)
            raise RemoteUnavailable(f"{operation} did not complete within {timeout}s") from exc


class InventoryRegistry:
    """One InventoryManager per tenant, created on first use."""

    def __init__(self, gateway: SyncGateway, settings: InventorySettings | None = None) -> None:
        self.gateway = gateway
        self.settings = settings or InventorySettings()
        self._managers: dict[str, InventoryManager] = {}
        self._lock = threading.Lock()
        self._opening: dict[str, threading.Lock] = {}

    def __contains__(self, tenant_id: str) -> bool:
        return str(tenant_id) in self._managers

    def open(self, tenant_id: str) -> InventoryManager:
        """Return the tenant's session, creating and initializing it if needed.

        Only callers opening the same tenant wait for its initial load.
        """
        tenant_id = str(tenant_id)
        with self._lock:
            manager = self._managers.get(tenant_id)
            if manager is not None:
                return manager
            opening = self._opening.setdefault(tenant_id, threading.Lock())

        with opening:
            with self._lock:
                manager = self._managers.get(tenant_id)
            if manager is not None:
                return manager

            manager = InventoryManager(tenant_id, self.gateway, self.settings)
            try:
                manager.initialize()
            except Exception:
                manager.close()
                raise
            with self._lock:
                self._managers[tenant_id] = manager
                self._opening.pop(tenant_id, None)
            return manager

    def get(self, tenant_id: str) -> InventoryManager | None:
        return self._managers.get(str(tenant_id))

    def close(self, tenant_id: str) -> bool:
        with self._lock:
            manager = self._managers.pop(str(tenant_id), None)
        if manager is None:
            return False
        manager.close()
        return True

    def close_all(self) -> None:
        with self._lock:
            managers, self._managers = list(self._managers.values()), {}
        for manager in managers:
            manager.close()
