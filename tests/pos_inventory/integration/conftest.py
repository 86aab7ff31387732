import pytest
from protean.integrations.pytest import DomainFixture
from protean.utils.globals import current_domain

TENANT_ID = "rest-001"


@pytest.fixture(scope="session")
def inventory_bed():
    from pos_inventory.domain import inventory

    bed = DomainFixture(inventory)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(inventory_bed):
    with inventory_bed.domain_context():
        yield
        for _, provider in current_domain.providers.items():
            provider._data_reset()


@pytest.fixture
def tenant_id():
    return TENANT_ID


@pytest.fixture
def gateway(inventory_bed, tenant_id):
    from pos_inventory.gateway.protean_adapter import ProteanSyncGateway

    gateway = ProteanSyncGateway()
    gateway.register_stock(tenant_id, "burger", 10, name="Burger")
    gateway.register_stock(tenant_id, "fries", 4, name="Fries")
    gateway.register_stock(tenant_id, "soda", 6, variant_id="large", name="Soda - Large")
    gateway.register_stock("rest-002", "burger", 99, name="Burger")
    return gateway
