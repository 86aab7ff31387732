"""Point-of-sale inventory bounded context: per-tenant stock ledger.

Keeps an in-memory ledger of product/variant stock for each restaurant
session, reserves stock for orders before they are confirmed, and
reconciles against the remote stock documents persisted through Protean.
"""

from protean.domain import Domain

inventory = Domain(name="pos_inventory")
