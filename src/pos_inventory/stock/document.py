"""StockDocument aggregate: the remote stock document of a product or variant.

One document per (restaurant, product, variant). Base products carry no
variant_id. This is the source of truth the tenant sessions load from and
confirm orders against.
"""

import json
from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String, Text

from pos_inventory.domain import inventory
from pos_inventory.stock.record import MAIN_VARIANT


def build_document_key(restaurant_id, product_id, variant_id=None):
    return f"{restaurant_id}::{product_id}::{variant_id or MAIN_VARIANT}"


@inventory.aggregate
class StockDocument:
    document_key = Identifier(identifier=True, required=True)  # "restaurant::product::variant|main"
    restaurant_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    name = String(max_length=255)
    quantity = Integer(default=0)
    updated_at = DateTime()

    @classmethod
    def create(cls, restaurant_id, product_id, quantity=0, variant_id=None, name=None):
        if quantity is None or quantity < 0:
            raise ValidationError({"quantity": ["Quantity cannot be negative"]})
        return cls(
            document_key=build_document_key(restaurant_id, product_id, variant_id),
            restaurant_id=str(restaurant_id),
            product_id=str(product_id),
            variant_id=str(variant_id) if variant_id else None,
            name=name,
            quantity=quantity,
            updated_at=datetime.now(UTC),
        )

    def set_quantity(self, quantity):
        """Overwrite the quantity after an operator recount."""
        if quantity is None or quantity < 0:
            raise ValidationError({"quantity": ["Quantity cannot be negative"]})
        self.quantity = quantity
        self.updated_at = datetime.now(UTC)

    def decrement(self, quantity):
        """Take sold units out of the document."""
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})
        if quantity > self.quantity:
            raise ValidationError(
                {"quantity": [f"Insufficient stock: {self.quantity} available, {quantity} requested"]}
            )
        self.quantity = self.quantity - quantity
        self.updated_at = datetime.now(UTC)


def build_confirmation_key(restaurant_id, confirmation_id):
    return f"{restaurant_id}::{confirmation_id}"


@inventory.aggregate
class StockConfirmation:
    """Record of an order confirmation applied to the stock documents.

    Keeps confirm_order idempotent: a replayed confirmation id finds its
    record and is not applied twice.
    """

    confirmation_key = Identifier(identifier=True, required=True)  # "restaurant::confirmation"
    restaurant_id = Identifier(required=True)
    confirmation_id = Identifier(required=True)
    document_keys = Text(required=True)  # JSON: list of document keys
    confirmed_at = DateTime()

    @classmethod
    def record(cls, restaurant_id, confirmation_id, document_keys):
        return cls(
            confirmation_key=build_confirmation_key(restaurant_id, confirmation_id),
            restaurant_id=str(restaurant_id),
            confirmation_id=str(confirmation_id),
            document_keys=json.dumps(list(document_keys)),
            confirmed_at=datetime.now(UTC),
        )

    def confirmed_keys(self) -> list[str]:
        return json.loads(self.document_keys)
