"""Sync gateway factory.

build_gateway() returns the adapter named by the settings (or the
SYNC_GATEWAY_ADAPTER environment variable):
- "fake":    FakeSyncGateway, in-memory, for development and tests
- "protean": ProteanSyncGateway, StockDocument aggregates in the domain
"""

from pos_inventory.config import InventorySettings
from pos_inventory.gateway.fake_adapter import FakeSyncGateway
from pos_inventory.gateway.port import RemoteStock, SyncGateway

__all__ = ["FakeSyncGateway", "RemoteStock", "SyncGateway", "build_gateway"]


def build_gateway(settings: InventorySettings | None = None) -> SyncGateway:
    settings = settings or InventorySettings.from_env()
    adapter = settings.gateway_adapter
    if adapter == "fake":
        return FakeSyncGateway()
    if adapter == "protean":
        from pos_inventory.gateway.protean_adapter import ProteanSyncGateway

        return ProteanSyncGateway()
    raise ValueError(f"Unknown sync gateway adapter: {adapter}")
