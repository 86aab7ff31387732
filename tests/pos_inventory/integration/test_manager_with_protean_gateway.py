"""A tenant session running against the Protean-backed gateway."""

import pytest
from pos_inventory.config import InventorySettings
from pos_inventory.exceptions import Conflict, InsufficientStock
from pos_inventory.gateway.protean_adapter import PAGE_SIZE
from pos_inventory.manager import InventoryManager
from pos_inventory.stock.document import StockDocument, build_document_key
from pos_inventory.stock.record import OrderLine, StockKey
from protean.utils.globals import current_domain


@pytest.fixture
def manager(gateway, tenant_id):
    manager = InventoryManager(tenant_id, gateway, InventorySettings(remote_timeout=5.0))
    manager.initialize()
    yield manager
    manager.close()


def test_initialize_loads_documents(manager):
    assert set(manager.get_all_stock()) == {StockKey("burger"), StockKey("fries"), StockKey("soda", "large")}
    assert manager.get_product_stock("soda", "large").name == "Soda - Large"


def test_order_is_confirmed_in_the_document_store(manager, gateway, tenant_id):
    manager.process_order([OrderLine("burger", 4)])

    record = manager.get_product_stock("burger")
    assert (record.total_stock, record.ordered_quantity) == (6, 0)
    remote = {stock.key: stock.total_stock for stock in gateway.load_all(tenant_id)}
    assert remote[StockKey("burger")] == 6


def test_insufficient_stock_never_reaches_the_store(manager, gateway, tenant_id):
    with pytest.raises(InsufficientStock):
        manager.process_order([OrderLine("fries", 5)])
    remote = {stock.key: stock.total_stock for stock in gateway.load_all(tenant_id)}
    assert remote[StockKey("fries")] == 4


def test_conflict_then_reconcile(manager, gateway, tenant_id):
    # Stock was sold elsewhere without this session noticing
    repo = current_domain.repository_for(StockDocument)
    document = repo.get(build_document_key(tenant_id, "burger"))
    document.set_quantity(1)
    repo.add(document)

    with pytest.raises(Conflict):
        manager.process_order([OrderLine("burger", 3)])
    assert manager.get_product_stock("burger").ordered_quantity == 3

    manager.reconcile()
    manager.release_order([OrderLine("burger", 3)])
    assert manager.get_available_stock("burger") == 1


def test_stock_edit_is_persisted(manager, gateway, tenant_id):
    manager.update_total_stock("fries", None, 20)
    remote = {stock.key: stock.total_stock for stock in gateway.load_all(tenant_id)}
    assert remote[StockKey("fries")] == 20
    assert manager.get_available_stock("fries") == 20


def test_recount_from_another_session(manager, gateway, tenant_id):
    with InventoryManager(tenant_id, gateway) as other:
        other.initialize()
        other.update_total_stock("burger", None, 42)
    assert manager.get_product_stock("burger").total_stock == 42


def test_initialize_loads_every_page(gateway, tenant_id):
    for index in range(PAGE_SIZE + 20):
        gateway.register_stock(tenant_id, f"item-{index:03d}", 2)

    with InventoryManager(tenant_id, gateway) as manager:
        assert manager.initialize() == PAGE_SIZE + 23
        assert manager.get_available_stock(f"item-{PAGE_SIZE + 19:03d}") == 2


def test_confirming_a_confirmed_order_again_changes_nothing(manager, gateway, tenant_id):
    lines = [OrderLine("burger", 4)]
    manager.process_order(lines, confirmation_id="order-1")
    assert manager.confirm_order(lines, "order-1") == "order-1"

    remote = {stock.key: stock.total_stock for stock in gateway.load_all(tenant_id)}
    assert remote[StockKey("burger")] == 6
    record = manager.get_product_stock("burger")
    assert (record.total_stock, record.ordered_quantity) == (6, 0)
