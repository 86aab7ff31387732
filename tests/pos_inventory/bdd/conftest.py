"""Shared BDD fixtures and step definitions for the inventory ledger."""

import pytest
from pos_inventory.config import InventorySettings
from pos_inventory.exceptions import Conflict, InsufficientStock, RemoteUnavailable
from pos_inventory.gateway.fake_adapter import FakeSyncGateway
from pos_inventory.manager import InventoryManager
from pos_inventory.stock.record import OrderLine
from pytest_bdd import given, parsers, then, when

TENANT_ID = "rest-001"


class Outcome:
    """Result of the last When step: either a value or the error it raised."""

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error

    @classmethod
    def of(cls, call, *args):
        try:
            return cls(result=call(*args))
        except (InsufficientStock, Conflict, RemoteUnavailable) as exc:
            return cls(error=exc)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def gateway():
    return FakeSyncGateway()


@pytest.fixture()
def attempt():
    return Outcome.of


@pytest.fixture()
def notifications():
    return []


@pytest.fixture()
def manager(gateway, notifications):
    manager = InventoryManager(TENANT_ID, gateway, InventorySettings(remote_timeout=2.0))
    manager.add_listener(lambda: notifications.append(1))
    yield manager
    manager.close()


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a restaurant with {qty:d} units of "{product}"'))
def _(gateway, qty, product):
    gateway.seed(TENANT_ID, product, qty, name=product.title())


@given(parsers.cfparse('the restaurant has {qty:d} units of "{product}"'))
def _(gateway, qty, product):
    gateway.seed(TENANT_ID, product, qty, name=product.title())


@given("the inventory is initialized")
def _(manager):
    manager.initialize()


@given("the inventory is reloaded")
def _(manager):
    manager.initialize()


@given("the remote store rejects confirmations")
def _(gateway):
    gateway.configure(failure="conflict")


@given("the remote store is unavailable")
def _(gateway):
    gateway.configure(failure="unavailable")


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('{qty:d} units of "{product}" are reserved'), target_fixture="outcome")
def _(manager, qty, product):
    return Outcome.of(manager.reserve_order, [OrderLine(product, qty)])


@when(parsers.cfparse('{qty:d} units of "{product}" are released'), target_fixture="outcome")
def _(manager, qty, product):
    return Outcome.of(manager.release_order, [OrderLine(product, qty)])


@when(
    parsers.cfparse('an order for {qty1:d} "{product1}" and {qty2:d} "{product2}" is reserved'),
    target_fixture="outcome",
)
def _(manager, qty1, product1, qty2, product2):
    return Outcome.of(manager.reserve_order, [OrderLine(product1, qty1), OrderLine(product2, qty2)])


@when("the inventory is reloaded")
def _(manager):
    manager.initialize()


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the available stock of "{product}" is {qty:d}'))
def _(manager, product, qty):
    assert manager.get_available_stock(product) == qty


@then(parsers.cfparse('the total stock of "{product}" is {qty:d}'))
def _(manager, product, qty):
    assert manager.get_product_stock(product).total_stock == qty


@then(parsers.cfparse('the ordered quantity of "{product}" is {qty:d}'))
def _(manager, product, qty):
    assert manager.get_product_stock(product).ordered_quantity == qty


@then(parsers.cfparse('the remote total of "{product}" is {qty:d}'))
def _(gateway, product, qty):
    assert gateway.total_for(TENANT_ID, product) == qty


@then("the reservation is rejected for insufficient stock")
def _(outcome):
    assert isinstance(outcome.error, InsufficientStock)
