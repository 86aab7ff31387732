"""Reservation Engine: all-or-nothing reservation of an order's lines.

A reservation runs in two passes under the store lock:

1. Check: every line must find a record with enough available stock.
   Any failure aborts before anything is written, reporting every
   offending line.
2. Commit: each line goes through ``StockStore.adjust_ordered``, which
   re-validates atomically. If a later line now fails (several lines for
   the same product can each pass the check but not together), the lines
   already applied are reversed so the store ends exactly where it began.

Confirmation is tracked per confirmation id. Between ``begin_confirmation``
and ``settle`` the quantities sent to the gateway stay reserved; a recount
the gateway pushes for that confirmation takes them out of
ordered_quantity while adopting the new total, so an order is never
counted both in the total and in the reservations.

Observers are told once per completed operation, after the lock is released.
"""

from collections.abc import Iterable, Mapping

import structlog

from pos_inventory.exceptions import InsufficientStock, Shortfall, UnknownProduct
from pos_inventory.gateway.port import RemoteStock
from pos_inventory.stock.notifier import ChangeNotifier
from pos_inventory.stock.record import OrderLine, StockKey, StockRecord, as_order_lines
from pos_inventory.stock.store import StockStore

logger = structlog.get_logger(__name__)


class ReservationEngine:
    def __init__(self, store: StockStore, notifier: ChangeNotifier) -> None:
        self.store = store
        self.notifier = notifier
        # confirmation_id -> quantities per key not yet settled
        self._in_flight: dict[str, dict[StockKey, int]] = {}

    def reserve(self, lines: Iterable[OrderLine | dict]) -> bool:
        """Reserve every line or none. Raises ``InsufficientStock`` or ``UnknownProduct``."""
        lines = as_order_lines(lines)

        with self.store.locked():
            shortfalls = []
            for line in lines:
                record = self.store.get(line.product_id, line.variant_id)
                if record is None:
                    raise UnknownProduct(line.product_id, line.variant_id)
                if record.available_stock < line.quantity:
                    shortfalls.append(
                        Shortfall(
                            product_id=line.product_id,
                            variant_id=line.variant_id,
                            requested=line.quantity,
                            available=record.available_stock,
                        )
                    )
            if shortfalls:
                logger.warning(
                    "Reservation rejected",
                    lines=len(lines),
                    shortfalls=[s.describe() for s in shortfalls],
                )
                raise InsufficientStock(shortfalls)

            applied: list[OrderLine] = []
            try:
                for line in lines:
                    self.store.adjust_ordered(line.product_id, line.variant_id, line.quantity)
                    applied.append(line)
            except InsufficientStock as exc:
                for line in reversed(applied):
                    self.store.adjust_ordered(line.product_id, line.variant_id, -line.quantity)
                logger.warning(
                    "Reservation rolled back",
                    applied=len(applied),
                    shortfalls=[s.describe() for s in exc.shortfalls],
                )
                raise

        logger.info("Reserved stock", lines=len(lines), units=sum(line.quantity for line in lines))
        self.notifier.publish()
        return True

    def release(self, lines: Iterable[OrderLine | dict]) -> int:
        """Give back reserved quantities. Returns the number of units released.

        Never fails on quantities: at most what is currently ordered is
        released. Lines whose record has disappeared are skipped with a
        warning.
        """
        lines = as_order_lines(lines)
        released = 0

        with self.store.locked():
            for line in lines:
                record = self.store.get(line.product_id, line.variant_id)
                if record is None:
                    logger.warning(
                        "Release skipped for unknown stock record",
                        product_id=line.product_id,
                        variant_id=line.variant_id,
                        quantity=line.quantity,
                    )
                    continue
                quantity = min(line.quantity, record.ordered_quantity)
                if quantity:
                    self.store.adjust_ordered(line.product_id, line.variant_id, -quantity)
                    released += quantity

        if released:
            logger.info("Released reserved stock", lines=len(lines), units=released)
            self.notifier.publish()
        return released

    # -------------------------------------------------------------------
    # Confirmation
    # -------------------------------------------------------------------
    def begin_confirmation(self, confirmation_id: str, lines: Iterable[OrderLine | dict]) -> None:
        """Note that reserved lines are being confirmed under ``confirmation_id``.

        A retry of the same id keeps what is already noted, including lines
        a recount has settled in the meantime.
        """
        lines = as_order_lines(lines)
        with self.store.locked():
            if confirmation_id in self._in_flight:
                return
            pending: dict[StockKey, int] = {}
            for line in lines:
                pending[line.key] = pending.get(line.key, 0) + line.quantity
            self._in_flight[confirmation_id] = pending

    def forget(self, confirmation_id: str | None) -> None:
        """Drop a confirmation that will not be settled (rejected, or released)."""
        with self.store.locked():
            self._in_flight.pop(confirmation_id, None)

    def apply_recount(self, stock: RemoteStock) -> StockRecord:
        """Adopt a total pushed by the gateway.

        A recount produced by a confirmation still in flight already has the
        order taken out, so the confirmed quantity leaves ordered_quantity in
        the same step.
        """
        with self.store.locked():
            pending = self._in_flight.get(stock.confirmation_id) if stock.confirmation_id else None
            quantity = pending.pop(stock.key, 0) if pending is not None else 0
            record = None
            if quantity:
                record = self.store.settle(stock.product_id, stock.variant_id, quantity, stock.total_stock)
            if record is None:
                record = self.store.set(stock.product_id, stock.variant_id, stock.total_stock, stock.name)

        logger.debug(
            "Recount applied",
            product_id=stock.product_id,
            variant_id=stock.variant_id,
            total_stock=stock.total_stock,
            confirmed=quantity,
        )
        self.notifier.publish()
        return record

    def settle(self, confirmation_id: str, totals: Mapping[StockKey, int]) -> int:
        """Apply a successful confirmation.

        ``totals`` maps ``StockKey`` to the remote total after confirmation.
        Quantities still in flight leave ordered_quantity; a line the remote
        did not report is settled by subtracting its quantity from the local
        total. Returns the number of records updated.
        """
        settled = 0

        with self.store.locked():
            pending = self._in_flight.pop(confirmation_id, {})
            for key in {**pending, **totals}:
                record = self.store.get(key.product_id, key.variant_id)
                if record is None:
                    logger.warning(
                        "Settle skipped for unknown stock record",
                        product_id=key.product_id,
                        variant_id=key.variant_id,
                    )
                    continue
                quantity = pending.get(key, 0)
                total = totals.get(key, max(0, record.total_stock - quantity))
                self.store.settle(key.product_id, key.variant_id, quantity, total)
                settled += 1

        if settled:
            self.notifier.publish()
        return settled
