"""Configurable fake sync gateway for development and testing.

Keeps stock documents in memory and behaves like the real store: confirming
an order is all-or-nothing and raises Conflict when a total is too low,
persisting a quantity for an unknown document raises RemoteNotFound. It can
also be told to fail or to stall, to exercise the ledger's error paths:

    gateway.configure(failure="unavailable")   # every call fails
    gateway.configure(failure="conflict")      # confirm_order conflicts
    gateway.configure(failure="not_found")     # persist_quantity misses
    gateway.configure(delay=2.0)               # every call stalls

A confirmation id that was already applied is answered with the current
totals of its documents and nothing is decremented again.
"""

import threading
import time
from dataclasses import replace

from pos_inventory.exceptions import Conflict, RemoteNotFound, RemoteUnavailable, Shortfall
from pos_inventory.gateway.port import RecountCallback, RemoteChangeFeed, RemoteStock, SyncGateway
from pos_inventory.stock.record import OrderLine, StockKey

FAILURE_MODES = ("unavailable", "conflict", "not_found")


class FakeSyncGateway(SyncGateway):
    """In-memory remote stock store."""

    def __init__(self) -> None:
        self.documents: dict[tuple[str, StockKey], RemoteStock] = {}
        self.failure: str | None = None
        self.delay: float = 0.0
        self.calls: list[dict] = []
        self.confirmations: dict[tuple[str, str], list[StockKey]] = {}
        self._feed = RemoteChangeFeed()
        self._lock = threading.Lock()

    def configure(self, failure: str | None = None, delay: float = 0.0) -> None:
        """Configure gateway behavior at runtime."""
        if failure is not None and failure not in FAILURE_MODES:
            raise ValueError(f"Unknown failure mode: {failure}")
        self.failure = failure
        self.delay = delay

    def seed(self, tenant_id, product_id, total_stock, variant_id=None, name=None) -> RemoteStock:
        """Create or overwrite a document without going through the failure modes."""
        stock = RemoteStock(
            product_id=str(product_id),
            total_stock=total_stock,
            variant_id=str(variant_id) if variant_id else None,
            name=name,
        )
        with self._lock:
            self.documents[(tenant_id, stock.key)] = stock
        return stock

    def total_for(self, tenant_id, product_id, variant_id=None) -> int | None:
        stock = self.documents.get((tenant_id, StockKey(product_id, variant_id)))
        return stock.total_stock if stock else None

    def _enter(self, call: dict) -> None:
        self.calls.append(call)
        if self.delay:
            time.sleep(self.delay)
        if self.failure == "unavailable":
            raise RemoteUnavailable(f"Fake store unavailable during {call['method']}")

    def load_all(self, tenant_id: str) -> list[RemoteStock]:
        self._enter({"method": "load_all", "tenant_id": tenant_id})
        with self._lock:
            return [stock for (tenant, _), stock in self.documents.items() if tenant == tenant_id]

    def persist_quantity(self, tenant_id, product_id, variant_id, total_stock) -> RemoteStock:
        self._enter(
            {
                "method": "persist_quantity",
                "tenant_id": tenant_id,
                "product_id": product_id,
                "variant_id": variant_id,
                "total_stock": total_stock,
            }
        )
        key = StockKey(product_id, variant_id)
        with self._lock:
            current = self.documents.get((tenant_id, key))
            if current is None or self.failure == "not_found":
                raise RemoteNotFound(f"No stock document for {key}")
            updated = RemoteStock(key.product_id, total_stock, key.variant_id, current.name)
            self.documents[(tenant_id, key)] = updated

        self._feed.push(tenant_id, [updated])
        return updated

    def confirm_order(self, tenant_id, lines: list[OrderLine], confirmation_id: str) -> list[RemoteStock]:
        self._enter(
            {
                "method": "confirm_order",
                "tenant_id": tenant_id,
                "confirmation_id": confirmation_id,
                "lines": [(line.product_id, line.variant_id, line.quantity) for line in lines],
            }
        )
        with self._lock:
            applied = self.confirmations.get((tenant_id, confirmation_id))
            if applied is not None:
                return [
                    replace(self.documents[(tenant_id, key)], confirmation_id=confirmation_id)
                    for key in applied
                    if (tenant_id, key) in self.documents
                ]

            if self.failure == "conflict":
                raise Conflict("Fake store rejected the confirmation")

            requested: dict[StockKey, int] = {}
            for line in lines:
                requested[line.key] = requested.get(line.key, 0) + line.quantity

            shortfalls = []
            for key, quantity in requested.items():
                current = self.documents.get((tenant_id, key))
                available = current.total_stock if current else 0
                if available < quantity:
                    shortfalls.append(Shortfall(key.product_id, key.variant_id, quantity, available))
            if shortfalls:
                raise Conflict("Remote stock is insufficient for the order", shortfalls)

            updated = []
            for key, quantity in requested.items():
                current = self.documents[(tenant_id, key)]
                stock = replace(current, total_stock=current.total_stock - quantity, confirmation_id=confirmation_id)
                self.documents[(tenant_id, key)] = replace(stock, confirmation_id=None)
                updated.append(stock)
            self.confirmations[(tenant_id, confirmation_id)] = list(requested)

        self._feed.push(tenant_id, updated)
        return updated

    def watch(self, tenant_id: str, callback: RecountCallback):
        return self._feed.watch(tenant_id, callback)
