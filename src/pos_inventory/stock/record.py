"""Stock ledger value types.

Stock Level Model (per product, or per product variant):
    total_stock:      last known quantity from the remote store
    ordered_quantity: reserved by local orders not yet confirmed
    available_stock:  total_stock - ordered_quantity, never below 0
"""

from dataclasses import dataclass, field, replace

from protean.exceptions import ValidationError

MAIN_VARIANT = "main"


@dataclass(frozen=True)
class StockKey:
    """Identity of a stock record. ``variant_id=None`` is the base product."""

    product_id: str
    variant_id: str | None = None

    def __str__(self) -> str:
        return f"{self.product_id}::{self.variant_id or MAIN_VARIANT}"

    @classmethod
    def of(cls, product_id: str, variant_id: str | None = None) -> "StockKey":
        if not product_id:
            raise ValidationError({"product_id": ["Product id is required"]})
        return cls(str(product_id), str(variant_id) if variant_id else None)


@dataclass(frozen=True)
class StockRecord:
    product_id: str
    variant_id: str | None = None
    total_stock: int = 0
    ordered_quantity: int = 0
    name: str | None = field(default=None, compare=False)

    @property
    def key(self) -> StockKey:
        return StockKey(self.product_id, self.variant_id)

    @property
    def available_stock(self) -> int:
        # ordered_quantity may briefly exceed total_stock after a lower recount
        return max(0, self.total_stock - self.ordered_quantity)

    def with_total(self, total_stock: int, name: str | None = None) -> "StockRecord":
        return replace(self, total_stock=total_stock, name=name if name is not None else self.name)

    def with_ordered(self, ordered_quantity: int) -> "StockRecord":
        return replace(self, ordered_quantity=ordered_quantity)


@dataclass(frozen=True)
class OrderLine:
    """One line of an order: a quantity of a product or one of its variants."""

    product_id: str
    quantity: int
    variant_id: str | None = None

    def __post_init__(self):
        if not self.product_id:
            raise ValidationError({"product_id": ["Product id is required"]})
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be a positive integer"]})

    @property
    def key(self) -> StockKey:
        return StockKey.of(self.product_id, self.variant_id)

    @classmethod
    def from_dict(cls, data: dict) -> "OrderLine":
        """Build a line from an order item payload (``productId``/``product_id`` spellings)."""
        product_id = data.get("product_id", data.get("productId"))
        variant_id = data.get("variant_id", data.get("variantId"))
        return cls(product_id=product_id, quantity=data.get("quantity"), variant_id=variant_id or None)


def as_order_lines(lines) -> list[OrderLine]:
    """Normalize an order's lines, accepting ``OrderLine`` objects or item dicts."""
    normalized = [line if isinstance(line, OrderLine) else OrderLine.from_dict(line) for line in lines]
    if not normalized:
        raise ValidationError({"lines": ["An order needs at least one line"]})
    return normalized
