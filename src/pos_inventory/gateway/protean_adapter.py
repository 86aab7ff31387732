"""Sync gateway backed by StockDocument aggregates in the Protean domain.

Whatever providers the domain is configured with (in-memory by default)
act as the remote document store. Calls push their own domain context, so
the gateway can be used from worker threads.
"""

import threading

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from pos_inventory.domain import inventory
from pos_inventory.exceptions import Conflict, RemoteNotFound, Shortfall
from pos_inventory.gateway.port import RecountCallback, RemoteChangeFeed, RemoteStock, SyncGateway
from pos_inventory.stock.document import (
    StockConfirmation,
    StockDocument,
    build_confirmation_key,
    build_document_key,
)
from pos_inventory.stock.record import OrderLine, StockKey

logger = structlog.get_logger(__name__)

PAGE_SIZE = 100


def _to_remote(document: StockDocument, confirmation_id=None) -> RemoteStock:
    return RemoteStock(
        product_id=str(document.product_id),
        total_stock=document.quantity or 0,
        variant_id=str(document.variant_id) if document.variant_id else None,
        name=document.name,
        confirmation_id=confirmation_id,
    )


class ProteanSyncGateway(SyncGateway):
    def __init__(self, domain=None) -> None:
        self.domain = domain or inventory
        self._feed = RemoteChangeFeed()
        # Serializes read-check-write sequences against the document store
        self._lock = threading.Lock()

    def register_stock(self, tenant_id, product_id, quantity=0, variant_id=None, name=None) -> RemoteStock:
        """Create (or overwrite) the stock document of a product or variant."""
        with self._lock, self.domain.domain_context():
            document = StockDocument.create(
                restaurant_id=tenant_id,
                product_id=product_id,
                quantity=quantity,
                variant_id=variant_id,
                name=name,
            )
            current_domain.repository_for(StockDocument).add(document)
            stock = _to_remote(document)

        logger.info(
            "Registered stock document",
            tenant_id=str(tenant_id),
            product_id=str(product_id),
            variant_id=variant_id,
            quantity=quantity,
        )
        self._feed.push(tenant_id, [stock])
        return stock

    def load_all(self, tenant_id: str) -> list[RemoteStock]:
        """Read every document of the tenant, page by page."""
        with self.domain.domain_context():
            query = (
                current_domain.repository_for(StockDocument)
                ._dao.query.filter(restaurant_id=str(tenant_id))
                .order_by("document_key")
            )
            stocks = []
            offset = 0
            while True:
                page = query.offset(offset).limit(PAGE_SIZE).all()
                stocks.extend(_to_remote(document) for document in page.items)
                offset += PAGE_SIZE
                if len(page.items) < PAGE_SIZE:
                    return stocks

    def persist_quantity(self, tenant_id, product_id, variant_id, total_stock) -> RemoteStock:
        with self._lock, self.domain.domain_context():
            repo = current_domain.repository_for(StockDocument)
            try:
                document = repo.get(build_document_key(tenant_id, product_id, variant_id))
            except ObjectNotFoundError as exc:
                raise RemoteNotFound(f"No stock document for {StockKey(product_id, variant_id)}") from exc

            document.set_quantity(total_stock)
            repo.add(document)
            stock = _to_remote(document)

        self._feed.push(tenant_id, [stock])
        return stock

    def confirm_order(self, tenant_id, lines: list[OrderLine], confirmation_id: str) -> list[RemoteStock]:
        requested: dict[StockKey, int] = {}
        for line in lines:
            requested[line.key] = requested.get(line.key, 0) + line.quantity

        with self._lock, self.domain.domain_context():
            repo = current_domain.repository_for(StockDocument)
            confirmations = current_domain.repository_for(StockConfirmation)

            try:
                applied = confirmations.get(build_confirmation_key(tenant_id, confirmation_id))
            except ObjectNotFoundError:
                applied = None
            if applied is not None:
                logger.info(
                    "Confirmation already applied",
                    tenant_id=str(tenant_id),
                    confirmation_id=confirmation_id,
                )
                replayed = []
                for document_key in applied.confirmed_keys():
                    try:
                        replayed.append(_to_remote(repo.get(document_key), confirmation_id))
                    except ObjectNotFoundError:
                        continue
                return replayed

            # Check every document before writing any of them
            documents = {}
            shortfalls = []
            for key, quantity in requested.items():
                try:
                    document = repo.get(build_document_key(tenant_id, key.product_id, key.variant_id))
                except ObjectNotFoundError:
                    shortfalls.append(Shortfall(key.product_id, key.variant_id, quantity, 0))
                    continue
                if document.quantity < quantity:
                    shortfalls.append(Shortfall(key.product_id, key.variant_id, quantity, document.quantity))
                documents[key] = document

            if shortfalls:
                logger.warning(
                    "Order confirmation conflicts with remote stock",
                    tenant_id=str(tenant_id),
                    confirmation_id=confirmation_id,
                    shortfalls=[s.describe() for s in shortfalls],
                )
                raise Conflict("Remote stock is insufficient for the order", shortfalls)

            updated = []
            for key, document in documents.items():
                try:
                    document.decrement(requested[key])
                except ValidationError as exc:
                    raise Conflict(str(exc.messages)) from exc
                repo.add(document)
                updated.append(_to_remote(document, confirmation_id))
            confirmations.add(
                StockConfirmation.record(
                    tenant_id,
                    confirmation_id,
                    [document.document_key for document in documents.values()],
                )
            )

        self._feed.push(tenant_id, updated)
        return updated

    def watch(self, tenant_id: str, callback: RecountCallback):
        return self._feed.watch(tenant_id, callback)
