# Overview: Value objects and records owned by the inventory ledger engine.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Mapping

from ..time_utils import to_utc_z

"""
Ledger Data Model Invariants (authoritative)

- Prices are integer cents; quantities are integers.
- A SKU is identified by (product_id, canonical option key). The key is the
  tuple of (variant name, option value) pairs sorted by variant name, so
  {Color: Red, Size: L} and {Size: L, Color: Red} are the same SKU.
- Stock layers are append-only. Only remaining_quantity changes after creation,
  and it stays within 0 <= remaining_quantity <= initial_quantity.
- Depleted layers are kept for historical costing.
- Bills and bill items are immutable once committed.
"""


class BillType(str, Enum):
    PURCHASE = "purchase"
    SALE = "sale"
    RETURN = "return"


class LayerKind(str, Enum):
    RECEIPT = "receipt"          # purchase bill
    RESTOCK = "restock"          # non-defective return
    STANDING_PRICE = "standing"  # price carrier for non-tracked products


PAYMENT_STATUSES = ("paid", "unpaid")

SkuKey = tuple  # tuple[tuple[str, str], ...]


def canonical_key(option_values: Mapping[str, str] | None) -> SkuKey:
    """Sorted (variant name, option value) pairs; entries with a None value are dropped."""
    if not option_values:
        return ()
    pairs = [
        (str(name), str(value))
        for name, value in option_values.items()
        if value is not None
    ]
    return tuple(sorted(pairs))


def sku_identifier(product_name: str, key: SkuKey) -> str:
    """Human-readable SKU name, e.g. "T-Shirt (Red, Large)"."""
    if not product_name:
        return "Unknown Product"
    values = [value for _, value in key]
    if not values:
        return product_name
    return f"{product_name} ({', '.join(values)})"


@dataclass
class ProductOption:
    id: str
    value: str

    def to_dict(self) -> dict:
        return {"id": self.id, "value": self.value}


@dataclass
class ProductVariant:
    id: str
    name: str
    options: list[ProductOption] = field(default_factory=list)

    def option_values(self) -> list[str]:
        return [o.value for o in self.options]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "options": [o.to_dict() for o in self.options],
        }


@dataclass
class StockLayer:
    """One discrete receipt event for a SKU, optionally scoped to a store."""

    id: str
    bill_id: str
    received_at: datetime
    initial_quantity: int
    remaining_quantity: int
    unit_cost_cents: int
    unit_sell_price_cents: int
    store_id: str | None = None
    kind: LayerKind = LayerKind.RECEIPT

    @property
    def is_depleted(self) -> bool:
        return self.remaining_quantity <= 0

    @property
    def remaining_value_cents(self) -> int:
        return self.remaining_quantity * self.unit_cost_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bill_id": self.bill_id,
            "received_at": to_utc_z(self.received_at),
            "initial_quantity": self.initial_quantity,
            "remaining_quantity": self.remaining_quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "unit_sell_price_cents": self.unit_sell_price_cents,
            "store_id": self.store_id,
            "kind": self.kind.value,
        }


@dataclass
class Sku:
    id: str
    product_id: str
    option_values: dict[str, str]
    identifier: str
    layers: list[StockLayer] = field(default_factory=list)

    @property
    def key(self) -> SkuKey:
        return canonical_key(self.option_values)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "option_values": dict(self.option_values),
            "identifier": self.identifier,
            "layers": [layer.to_dict() for layer in self.layers],
        }


@dataclass
class Product:
    id: str
    name: str
    track_quantity: bool = True
    category: str | None = None
    sku_code: str | None = None
    description: str | None = None
    variants: list[ProductVariant] = field(default_factory=list)
    skus: list[Sku] = field(default_factory=list)

    def find_sku(self, key: SkuKey) -> Sku | None:
        for sku in self.skus:
            if sku.key == key:
                return sku
        return None

    def get_sku(self, sku_id: str) -> Sku | None:
        for sku in self.skus:
            if sku.id == sku_id:
                return sku
        return None

    def get_variant(self, name: str) -> ProductVariant | None:
        for variant in self.variants:
            if variant.name == name:
                return variant
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "track_quantity": self.track_quantity,
            "sku_code": self.sku_code,
            "description": self.description,
            "variants": [v.to_dict() for v in self.variants],
            "skus": [s.to_dict() for s in self.skus],
        }


@dataclass(frozen=True)
class LayerDraw:
    """Quantity taken from one layer by a sale line."""

    layer_id: str
    quantity: int
    unit_cost_cents: int

    def to_dict(self) -> dict:
        return {
            "layer_id": self.layer_id,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
        }


@dataclass(frozen=True)
class BillItem:
    id: str
    product_id: str
    sku_id: str
    product_name: str
    option_values: Mapping[str, str]
    quantity: int
    unit_cost_cents: int
    unit_sell_price_cents: int
    cogs_cents: int
    is_defective: bool = False
    layer_draws: tuple[LayerDraw, ...] = ()

    @property
    def revenue_cents(self) -> int:
        return self.unit_sell_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "sku_id": self.sku_id,
            "product_name": self.product_name,
            "option_values": dict(self.option_values),
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "unit_sell_price_cents": self.unit_sell_price_cents,
            "cogs_cents": self.cogs_cents,
            "is_defective": self.is_defective,
            "layer_draws": [d.to_dict() for d in self.layer_draws],
        }


@dataclass(frozen=True)
class Bill:
    id: str
    type: BillType
    created_at: datetime
    items: tuple[BillItem, ...]
    total_amount_cents: int
    counterparty_name: str | None = None
    counterparty_phone: str | None = None
    notes: str | None = None
    payment_status: str | None = None
    store_id: str | None = None
    staff_id: str | None = None

    def references_product(self, product_id: str) -> bool:
        return any(item.product_id == product_id for item in self.items)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
            "total_amount_cents": self.total_amount_cents,
            "counterparty_name": self.counterparty_name,
            "counterparty_phone": self.counterparty_phone,
            "notes": self.notes,
            "payment_status": self.payment_status,
            "store_id": self.store_id,
            "staff_id": self.staff_id,
        }


# ---------------------------------------------------------------------------
# Inbound request structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VariantSpec:
    name: str
    options: tuple[str, ...]


@dataclass(frozen=True)
class NewProduct:
    name: str
    track_quantity: bool = True
    category: str | None = None
    sku_code: str | None = None
    description: str | None = None
    variants: tuple[VariantSpec, ...] = ()
    standing_cost_cents: int | None = None
    standing_sell_price_cents: int | None = None


@dataclass(frozen=True)
class ProductUpdate:
    """Mutable product fields. None leaves a field unchanged."""

    name: str | None = None
    category: str | None = None
    track_quantity: bool | None = None
    sku_code: str | None = None
    description: str | None = None
    variants: tuple[VariantSpec, ...] | None = None
    standing_cost_cents: int | None = None
    standing_sell_price_cents: int | None = None


@dataclass(frozen=True)
class BillItemRequest:
    product_id: str
    quantity: int
    unit_cost_cents: int | None = None
    unit_sell_price_cents: int | None = None
    option_values: Mapping[str, str] | None = None
    is_defective: bool = False


@dataclass(frozen=True)
class BillMetadata:
    counterparty_name: str | None = None
    counterparty_phone: str | None = None
    notes: str | None = None
    payment_status: str | None = None
    store_id: str | None = None
    staff_id: str | None = None
