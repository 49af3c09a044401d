# Overview: Per-SKU cost layers: receipts, FIFO consumption and stock/cost queries.

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Mapping

from ..time_utils import utcnow
from .catalog import Catalog, apply_standing_price, new_id, standing_layer_for
from .entities import LayerKind, Product, Sku, StockLayer
from .errors import InvalidInputError, UnsupportedOperationError

"""
Stock Ledger Invariants (authoritative)

Store scope:
- Every query and mutation takes a store scope. A store id selects the layers
  received into that store; None selects the unscoped bucket (layers received
  without a store). ANY_STORE is the global read-only view over all layers.

Quantities:
- total_stock = SUM(remaining_quantity) over the scoped layers; never negative.
- Non-tracked products have no stock number: total_stock returns None.

FIFO:
- Layers are consumed by received_at ascending; ties keep insertion order
  (Python's sort is stable).
- consume_fifo is all-or-nothing: on shortfall no layer is touched.

Pricing:
- Quoted sell price: oldest layer with remaining stock; if stock is 0, the most
  recently received layer; otherwise None.
- Average cost: quantity-weighted over remaining stock; if stock is 0, over
  initial quantities (historical estimate); otherwise None.
  Unit prices round half-up to the nearest cent.
- Non-tracked products answer both prices from their standing-price layer.
"""

logger = logging.getLogger(__name__)


class _AnyStore:
    def __repr__(self) -> str:
        return "ANY_STORE"


ANY_STORE = _AnyStore()


def round_half_up(numerator: int, denominator: int) -> int:
    """Nearest-integer division for non-negative integers (half-up)."""
    return (numerator + (denominator // 2)) // denominator


def fifo_order(layers: list[StockLayer]) -> list[StockLayer]:
    return sorted(layers, key=lambda layer: layer.received_at)


def scoped_layers(sku: Sku, store_id) -> list[StockLayer]:
    """Quantity-bearing layers of the SKU visible in the given store scope, in insertion order."""
    layers = [layer for layer in sku.layers if layer.kind != LayerKind.STANDING_PRICE]
    if store_id is ANY_STORE:
        return layers
    return [layer for layer in layers if layer.store_id == store_id]


@dataclass(frozen=True)
class FifoDraw:
    """Outcome of walking layers oldest-first for a requested quantity."""

    requested: int
    consumed: tuple[tuple[StockLayer, int], ...]
    cost_total_cents: int
    shortfall: int

    @property
    def fulfilled(self) -> bool:
        return self.shortfall == 0

    @property
    def quantity_taken(self) -> int:
        return sum(qty for _, qty in self.consumed)

    @property
    def average_unit_cost_cents(self) -> int:
        taken = self.quantity_taken
        if taken <= 0:
            return 0
        return round_half_up(self.cost_total_cents, taken)


class StockLedger:
    """Layer bookkeeping for the SKUs of one catalog."""

    def __init__(
        self,
        catalog: Catalog,
        *,
        id_factory: Callable[[], str] = new_id,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.catalog = catalog
        self._new_id = id_factory
        self._clock = clock

    def _product(self, sku: Sku) -> Product:
        return self.catalog.get_product(sku.product_id)

    def _require_tracked(self, sku: Sku, action: str) -> Product:
        product = self._product(sku)
        if not product.track_quantity:
            raise UnsupportedOperationError(
                f"Cannot {action} non-tracked product {product.name}",
                {"product_id": product.id, "sku_id": sku.id},
            )
        return product

    @staticmethod
    def _require_concrete_store(store_id) -> None:
        if store_id is ANY_STORE:
            raise InvalidInputError("A concrete store scope is required for stock mutations")

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def layers(self, sku: Sku, store_id=None) -> list[StockLayer]:
        """Scoped layers in FIFO order, depleted ones included."""
        return fifo_order(scoped_layers(sku, store_id))

    def total_stock(self, sku: Sku, store_id=None) -> int | None:
        if not self._product(sku).track_quantity:
            return None
        return sum(layer.remaining_quantity for layer in scoped_layers(sku, store_id))

    def current_quoted_sell_price(self, sku: Sku, store_id=None) -> int | None:
        if not self._product(sku).track_quantity:
            standing = standing_layer_for(sku, store_id)
            return standing.unit_sell_price_cents if standing else None

        layers = scoped_layers(sku, store_id)
        with_stock = [layer for layer in layers if layer.remaining_quantity > 0]
        if with_stock:
            return fifo_order(with_stock)[0].unit_sell_price_cents
        if layers:
            return fifo_order(layers)[-1].unit_sell_price_cents
        return None

    def average_cost_price(self, sku: Sku, store_id=None) -> int | None:
        if not self._product(sku).track_quantity:
            standing = standing_layer_for(sku, store_id)
            return standing.unit_cost_cents if standing else None

        layers = scoped_layers(sku, store_id)
        units = sum(layer.remaining_quantity for layer in layers)
        if units > 0:
            cost = sum(layer.remaining_value_cents for layer in layers)
            return round_half_up(cost, units)

        initial_units = sum(layer.initial_quantity for layer in layers)
        if initial_units > 0:
            cost = sum(layer.initial_quantity * layer.unit_cost_cents for layer in layers)
            return round_half_up(cost, initial_units)
        return None

    def inventory_value(self, sku: Sku, store_id=None) -> int | None:
        """Exact value of remaining stock at layer cost."""
        if not self._product(sku).track_quantity:
            return None
        return sum(layer.remaining_value_cents for layer in scoped_layers(sku, store_id))

    def summary(self, sku: Sku, store_id=None) -> dict:
        return {
            "sku_id": sku.id,
            "product_id": sku.product_id,
            "identifier": sku.identifier,
            "option_values": dict(sku.option_values),
            "store_id": None if store_id is ANY_STORE else store_id,
            "total_stock": self.total_stock(sku, store_id),
            "current_sell_price_cents": self.current_quoted_sell_price(sku, store_id),
            "average_cost_cents": self.average_cost_price(sku, store_id),
            "inventory_value_cents": self.inventory_value(sku, store_id),
        }

    # -------------------------------------------------------------------------
    # FIFO
    # -------------------------------------------------------------------------

    def plan_fifo(
        self,
        sku: Sku,
        store_id,
        quantity: int,
        reserved: Mapping[str, int] | None = None,
    ) -> FifoDraw:
        """
        Walk scoped layers oldest-first without mutating anything.

        reserved maps layer id -> units already promised to earlier lines of the
        same bill; those units are treated as gone.
        """
        reserved = reserved or {}
        remaining = quantity
        consumed: list[tuple[StockLayer, int]] = []
        cost_total = 0

        for layer in self.layers(sku, store_id):
            if remaining <= 0:
                break
            available = layer.remaining_quantity - reserved.get(layer.id, 0)
            if available <= 0:
                continue
            take = min(remaining, available)
            consumed.append((layer, take))
            cost_total += take * layer.unit_cost_cents
            remaining -= take

        return FifoDraw(
            requested=quantity,
            consumed=tuple(consumed),
            cost_total_cents=cost_total,
            shortfall=max(remaining, 0),
        )

    @staticmethod
    def apply_draw(draw: FifoDraw) -> None:
        for layer, qty in draw.consumed:
            layer.remaining_quantity -= qty

    def consume_fifo(self, sku: Sku, store_id, quantity: int) -> FifoDraw:
        """Take quantity from the oldest layers. On shortfall, nothing is mutated."""
        self._require_tracked(sku, "consume stock of")
        self._require_concrete_store(store_id)
        if quantity <= 0:
            raise InvalidInputError("quantity must be > 0", {"quantity": quantity})

        draw = self.plan_fifo(sku, store_id, quantity)
        if not draw.fulfilled:
            logger.info(
                "FIFO shortfall sku=%s store=%s requested=%d shortfall=%d",
                sku.id, store_id, quantity, draw.shortfall,
            )
            return draw

        self.apply_draw(draw)
        logger.debug(
            "FIFO consumed sku=%s store=%s qty=%d layers=%d cost_cents=%d",
            sku.id, store_id, quantity, len(draw.consumed), draw.cost_total_cents,
        )
        return draw

    # -------------------------------------------------------------------------
    # Receipts
    # -------------------------------------------------------------------------

    def _append_layer(
        self,
        *,
        sku: Sku,
        store_id,
        quantity: int,
        unit_cost_cents: int,
        unit_sell_price_cents: int,
        bill_id: str,
        kind: LayerKind,
        received_at: datetime | None,
    ) -> StockLayer:
        self._require_tracked(sku, "receive stock for")
        self._require_concrete_store(store_id)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidInputError("quantity must be a positive integer", {"quantity": quantity})
        if unit_cost_cents < 0 or unit_sell_price_cents < 0:
            raise InvalidInputError("prices must be >= 0")

        layer = StockLayer(
            id=self._new_id(),
            bill_id=bill_id,
            received_at=received_at or self._clock(),
            initial_quantity=quantity,
            remaining_quantity=quantity,
            unit_cost_cents=unit_cost_cents,
            unit_sell_price_cents=unit_sell_price_cents,
            store_id=store_id,
            kind=kind,
        )
        sku.layers.append(layer)
        logger.debug(
            "Layer %s sku=%s store=%s qty=%d cost_cents=%d bill=%s",
            kind.value, sku.id, store_id, quantity, unit_cost_cents, bill_id,
        )
        return layer

    def receive(
        self,
        sku: Sku,
        store_id,
        quantity: int,
        unit_cost_cents: int,
        unit_sell_price_cents: int,
        bill_id: str,
        *,
        received_at: datetime | None = None,
    ) -> StockLayer:
        return self._append_layer(
            sku=sku,
            store_id=store_id,
            quantity=quantity,
            unit_cost_cents=unit_cost_cents,
            unit_sell_price_cents=unit_sell_price_cents,
            bill_id=bill_id,
            kind=LayerKind.RECEIPT,
            received_at=received_at,
        )

    def restock(
        self,
        sku: Sku,
        store_id,
        quantity: int,
        unit_cost_cents: int,
        unit_sell_price_cents: int,
        bill_id: str,
        *,
        received_at: datetime | None = None,
    ) -> StockLayer:
        """Return-driven receipt; same mechanics as receive, kept distinct for audit."""
        return self._append_layer(
            sku=sku,
            store_id=store_id,
            quantity=quantity,
            unit_cost_cents=unit_cost_cents,
            unit_sell_price_cents=unit_sell_price_cents,
            bill_id=bill_id,
            kind=LayerKind.RESTOCK,
            received_at=received_at,
        )

    def set_standing_price(
        self,
        sku: Sku,
        store_id,
        *,
        cost_cents: int | None = None,
        sell_price_cents: int | None = None,
    ) -> StockLayer:
        product = self._product(sku)
        if product.track_quantity:
            raise UnsupportedOperationError(
                "Standing prices only apply to non-tracked products",
                {"product_id": product.id, "sku_id": sku.id},
            )
        self._require_concrete_store(store_id)
        return apply_standing_price(
            sku,
            store_id,
            cost_cents=cost_cents,
            sell_price_cents=sell_price_cents,
            received_at=self._clock(),
            layer_id=self._new_id(),
        )
