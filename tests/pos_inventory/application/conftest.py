import pytest
from pos_inventory.config import InventorySettings
from pos_inventory.gateway.fake_adapter import FakeSyncGateway
from pos_inventory.manager import InventoryManager

TENANT_ID = "rest-001"


@pytest.fixture()
def tenant_id():
    return TENANT_ID


@pytest.fixture()
def gateway(tenant_id):
    gateway = FakeSyncGateway()
    gateway.seed(tenant_id, "burger", 10, name="Burger")
    gateway.seed(tenant_id, "fries", 4, name="Fries")
    gateway.seed(tenant_id, "soda", 6, variant_id="large", name="Soda - Large")
    gateway.seed(tenant_id, "soda", 8, variant_id="small", name="Soda - Small")
    gateway.seed("rest-002", "burger", 99, name="Burger")
    return gateway


@pytest.fixture()
def settings():
    return InventorySettings(remote_timeout=2.0, remote_workers=2)


@pytest.fixture()
def manager(tenant_id, gateway, settings):
    manager = InventoryManager(tenant_id, gateway, settings)
    manager.initialize()
    yield manager
    manager.close()
