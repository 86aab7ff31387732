"""Stock Store: the in-memory stock map of one tenant session.

Records are immutable ``StockRecord`` values; every write swaps the record
for a new one under a single re-entrant lock, so ``adjust_ordered`` and
``set`` are atomic with respect to each other and ``snapshot`` hands out a
view no later write can disturb. No business policy lives here.
"""

import threading
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from types import MappingProxyType

from protean.exceptions import ValidationError

from pos_inventory.exceptions import InsufficientStock, Shortfall, UnknownProduct
from pos_inventory.stock.record import StockKey, StockRecord


def _check_total(total_stock) -> int:
    if isinstance(total_stock, bool) or not isinstance(total_stock, int) or total_stock < 0:
        raise ValidationError({"total_stock": ["Total stock must be a non-negative integer"]})
    return total_stock


class StockStore:
    def __init__(self) -> None:
        self._records: dict[StockKey, StockRecord] = {}
        self._lock = threading.RLock()

    @contextmanager
    def locked(self) -> Iterator["StockStore"]:
        """Hold the store lock across several primitives.

        The lock is re-entrant, so the primitives can still be called inside.
        """
        with self._lock:
            yield self

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: StockKey) -> bool:
        return key in self._records

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get(self, product_id: str, variant_id: str | None = None) -> StockRecord | None:
        """Return the record, or None when the product/variant is unknown."""
        if not product_id:
            return None
        return self._records.get(StockKey(str(product_id), str(variant_id) if variant_id else None))

    def snapshot(self) -> Mapping[StockKey, StockRecord]:
        with self._lock:
            return MappingProxyType(dict(self._records))

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------
    def set(
        self,
        product_id: str,
        variant_id: str | None = None,
        total_stock: int = 0,
        name: str | None = None,
    ) -> StockRecord:
        """Replace total_stock, creating the record with nothing ordered if absent."""
        key = StockKey.of(product_id, variant_id)
        total_stock = _check_total(total_stock)
        with self._lock:
            current = self._records.get(key)
            if current is None:
                record = StockRecord(key.product_id, key.variant_id, total_stock, 0, name)
            else:
                record = current.with_total(total_stock, name)
            self._records[key] = record
            return record

    def adjust_ordered(self, product_id: str, variant_id: str | None, delta: int) -> int:
        """Apply ``delta`` to ordered_quantity and return the new value.

        Positive deltas reserve, negative deltas release. A reservation that
        would push ordered_quantity above total_stock, or a release below 0,
        raises ``InsufficientStock`` and leaves the record untouched.
        """
        key = StockKey.of(product_id, variant_id)
        with self._lock:
            current = self._records.get(key)
            if current is None:
                raise UnknownProduct(key.product_id, key.variant_id)

            new_ordered = current.ordered_quantity + delta
            if new_ordered < 0 or (delta > 0 and new_ordered > current.total_stock):
                raise InsufficientStock(
                    [
                        Shortfall(
                            product_id=key.product_id,
                            variant_id=key.variant_id,
                            requested=abs(delta),
                            available=current.available_stock if delta > 0 else current.ordered_quantity,
                        )
                    ]
                )

            self._records[key] = current.with_ordered(new_ordered)
            return new_ordered

    def settle(self, product_id: str, variant_id: str | None, quantity: int, total_stock: int) -> StockRecord | None:
        """Record a confirmed order line.

        ``total_stock`` is the remote total after confirmation; the confirmed
        quantity leaves ordered_quantity (never below 0). Returns None when
        the record is gone.
        """
        key = StockKey.of(product_id, variant_id)
        total_stock = _check_total(total_stock)
        with self._lock:
            current = self._records.get(key)
            if current is None:
                return None
            record = current.with_total(total_stock).with_ordered(max(0, current.ordered_quantity - quantity))
            self._records[key] = record
            return record

    def load(self, entries: Iterable[tuple[StockKey, int, str | None]]) -> int:
        """Replace the whole map with fresh records, nothing ordered."""
        fresh = {
            key: StockRecord(key.product_id, key.variant_id, _check_total(total), 0, name)
            for key, total, name in entries
        }
        with self._lock:
            self._records = fresh
        return len(fresh)

    def reconcile(self, entries: Iterable[tuple[StockKey, int, str | None]]) -> tuple[int, int]:
        """Adopt remote totals, keep local reservations, drop vanished records.

        Returns ``(updated, removed)``.
        """
        remote = {key: (_check_total(total), name) for key, total, name in entries}
        with self._lock:
            removed = [key for key in self._records if key not in remote]
            for key in removed:
                del self._records[key]
            for key, (total, name) in remote.items():
                current = self._records.get(key)
                if current is None:
                    self._records[key] = StockRecord(key.product_id, key.variant_id, total, 0, name)
                else:
                    self._records[key] = current.with_total(total, name)
        return len(remote), len(removed)

    def clear(self) -> None:
        with self._lock:
            self._records = {}
