# Overview: Bill commit protocol (simulate, then apply) and bill deletion with rollback.

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable

from ..time_utils import utcnow
from .catalog import Catalog, new_id
from .entities import (
    PAYMENT_STATUSES,
    Bill,
    BillItem,
    BillItemRequest,
    BillMetadata,
    BillType,
    LayerDraw,
    LayerKind,
    Product,
    Sku,
    SkuKey,
    StockLayer,
    canonical_key,
    sku_identifier,
)
from .errors import (
    InsufficientStockError,
    InvalidInputError,
    LedgerError,
    NotFoundError,
    UnsupportedOperationError,
)
from .stock import FifoDraw, StockLedger

"""
Transaction Processor Invariants (authoritative)

Commit protocol:
1. Simulate: every line is validated and planned against the current ledger
   without touching it. SKUs that do not exist yet are only planned.
   Repeated sale lines for one SKU reserve layer units from each other.
2. Apply: only when every line planned successfully are SKUs created and
   receive / FIFO consumption / restock performed, and the Bill appended.
Any failure in step 1 raises a LedgerError whose details name the failing
item_index; the ledger is left exactly as it was.

Line semantics:
- purchase: tracked products only; appends a RECEIPT layer at the given cost.
- sale: tracked products consume FIFO layers (no partial fulfilment); the
  realized unit cost is the weighted average of the layers consumed.
  Non-tracked products cost at their standing price.
- return: cost recognized at the current average cost. Non-defective tracked
  items are restocked as a RESTOCK layer at that cost; defective items and
  non-tracked products leave stock untouched.

Totals:
- purchase: SUM(unit_cost * qty); sale/return: SUM(unit_sell_price * qty).

Deletion:
- Deleting a bill rolls its ledger effects back: layers it created are removed
  (only while untouched) and sale draws are restored to the exact layers.
  If any effect can no longer be reversed, the delete is refused as a whole.
"""

logger = logging.getLogger(__name__)

BILL_PREFIXES = {
    BillType.PURCHASE: "P",
    BillType.SALE: "S",
    BillType.RETURN: "R",
}

ACTION_RECEIVE = "receive"
ACTION_CONSUME = "consume"
ACTION_RESTOCK = "restock"
ACTION_NONE = "none"


def coerce_bill_type(value) -> BillType:
    if isinstance(value, BillType):
        return value
    try:
        return BillType(str(value).strip().lower())
    except ValueError:
        raise InvalidInputError(
            f"Unknown bill type {value!r}; expected purchase, sale or return",
            {"type": value},
        ) from None


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass
class PlannedLine:
    index: int
    request: BillItemRequest
    product: Product
    key: SkuKey
    sku: Sku | None
    identifier: str
    action: str
    unit_cost_cents: int
    unit_sell_price_cents: int
    cogs_cents: int
    draw: FifoDraw | None = None


class TransactionProcessor:
    """Commits bills against one catalog/stock ledger pair and keeps the committed bill store."""

    def __init__(
        self,
        catalog: Catalog,
        stock: StockLedger,
        *,
        id_factory: Callable[[], str] = new_id,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.catalog = catalog
        self.stock = stock
        self.bills: dict[str, Bill] = {}
        self.sequences: dict[str, int] = {t.value: 0 for t in BillType}
        self._new_id = id_factory
        self._clock = clock

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_bill(self, bill_id: str) -> Bill:
        bill = self.bills.get(bill_id)
        if bill is None:
            raise NotFoundError(f"Bill {bill_id} not found", {"bill_id": bill_id})
        return bill

    def list_bills(self, limit: int | None = None, bill_type: BillType | None = None) -> list[Bill]:
        """Newest first; commit order breaks timestamp ties."""
        ordered = list(self.bills.values())
        ordered.reverse()
        ordered.sort(key=lambda b: b.created_at, reverse=True)
        if bill_type is not None:
            ordered = [b for b in ordered if b.type == bill_type]
        if limit is not None:
            ordered = ordered[:limit]
        return ordered

    def bills_for_product(self, product_id: str) -> list[Bill]:
        return [b for b in self.list_bills() if b.references_product(product_id)]

    # -------------------------------------------------------------------------
    # Commit
    # -------------------------------------------------------------------------

    def _next_bill_id(self, bill_type: BillType) -> str:
        prefix = BILL_PREFIXES[bill_type]
        seq = self.sequences.get(bill_type.value, 0)
        while True:
            seq += 1
            bill_id = f"{prefix}-{str(seq).zfill(6)}"
            if bill_id not in self.bills:
                break
        self.sequences[bill_type.value] = seq
        return bill_id

    def _validate_request(self, bill_type: BillType, request: BillItemRequest) -> None:
        if not request.product_id:
            raise InvalidInputError("product_id is required")
        if not _is_int(request.quantity) or request.quantity <= 0:
            raise InvalidInputError("quantity must be a positive integer", {"quantity": request.quantity})
        for field_name in ("unit_cost_cents", "unit_sell_price_cents"):
            value = getattr(request, field_name)
            if value is None:
                continue
            if not _is_int(value) or value < 0:
                raise InvalidInputError(f"{field_name} must be an integer >= 0", {field_name: value})
        if bill_type == BillType.PURCHASE and request.unit_cost_cents is None:
            raise InvalidInputError("unit_cost_cents is required for purchase items")
        if request.is_defective and bill_type != BillType.RETURN:
            raise InvalidInputError("Only return items can be marked defective")

    def _plan_line(
        self,
        index: int,
        bill_type: BillType,
        request: BillItemRequest,
        store_id: str | None,
        reserved: dict[str, int],
    ) -> PlannedLine:
        self._validate_request(bill_type, request)

        product = self.catalog.get_product(request.product_id)
        key = canonical_key(request.option_values)
        sku = product.find_sku(key)
        if sku is None:
            self.catalog.validate_selection(product, key, complete=True)
        identifier = sku.identifier if sku else sku_identifier(product.name, key)
        qty = request.quantity

        def quoted_sell() -> int:
            if request.unit_sell_price_cents is not None:
                return request.unit_sell_price_cents
            if sku is None:
                return 0
            return self.stock.current_quoted_sell_price(sku, store_id) or 0

        def average_cost() -> int:
            if sku is None:
                return 0
            return self.stock.average_cost_price(sku, store_id) or 0

        if bill_type == BillType.PURCHASE:
            if not product.track_quantity:
                raise UnsupportedOperationError(
                    f"Cannot purchase stock for non-tracked product {product.name}",
                    {"product_id": product.id},
                )
            cost = request.unit_cost_cents
            return PlannedLine(
                index=index,
                request=request,
                product=product,
                key=key,
                sku=sku,
                identifier=identifier,
                action=ACTION_RECEIVE,
                unit_cost_cents=cost,
                unit_sell_price_cents=request.unit_sell_price_cents or 0,
                cogs_cents=cost * qty,
            )

        if bill_type == BillType.SALE:
            sell = quoted_sell()
            if not product.track_quantity:
                cost = average_cost()
                return PlannedLine(
                    index=index,
                    request=request,
                    product=product,
                    key=key,
                    sku=sku,
                    identifier=identifier,
                    action=ACTION_NONE,
                    unit_cost_cents=cost,
                    unit_sell_price_cents=sell,
                    cogs_cents=cost * qty,
                )

            if sku is None:
                draw = FifoDraw(requested=qty, consumed=(), cost_total_cents=0, shortfall=qty)
            else:
                draw = self.stock.plan_fifo(sku, store_id, qty, reserved)
            if not draw.fulfilled:
                available = qty - draw.shortfall
                raise InsufficientStockError(
                    f"Insufficient stock for {identifier}: requested {qty}, available {available}",
                    {
                        "sku_id": sku.id if sku else None,
                        "store_id": store_id,
                        "requested": qty,
                        "available": available,
                        "shortfall": draw.shortfall,
                    },
                )
            for layer, taken in draw.consumed:
                reserved[layer.id] = reserved.get(layer.id, 0) + taken
            return PlannedLine(
                index=index,
                request=request,
                product=product,
                key=key,
                sku=sku,
                identifier=identifier,
                action=ACTION_CONSUME,
                unit_cost_cents=draw.average_unit_cost_cents,
                unit_sell_price_cents=sell,
                cogs_cents=draw.cost_total_cents,
                draw=draw,
            )

        # return
        cost = average_cost()
        restocks = product.track_quantity and not request.is_defective
        return PlannedLine(
            index=index,
            request=request,
            product=product,
            key=key,
            sku=sku,
            identifier=identifier,
            action=ACTION_RESTOCK if restocks else ACTION_NONE,
            unit_cost_cents=cost,
            unit_sell_price_cents=quoted_sell(),
            cogs_cents=cost * qty,
        )

    def simulate(
        self,
        bill_type: BillType,
        items: Iterable[BillItemRequest],
        store_id: str | None,
    ) -> list[PlannedLine]:
        """Plan every line without mutating the ledger. Raises on the first failing line."""
        reserved: dict[str, int] = {}
        plan: list[PlannedLine] = []
        for index, request in enumerate(items):
            try:
                plan.append(self._plan_line(index, bill_type, request, store_id, reserved))
            except LedgerError as exc:
                exc.details.setdefault("item_index", index)
                exc.details.setdefault("product_id", getattr(request, "product_id", None))
                raise
        return plan

    def _apply(
        self,
        bill_type: BillType,
        plan: list[PlannedLine],
        metadata: BillMetadata,
        created_at: datetime,
    ) -> Bill:
        bill_id = self._next_bill_id(bill_type)
        store_id = metadata.store_id
        created_skus: dict[tuple[str, SkuKey], Sku] = {}
        items: list[BillItem] = []

        for line in plan:
            sku = line.sku or created_skus.get((line.product.id, line.key))
            if sku is None:
                sku = self.catalog.create_sku(line.product, line.key)
                created_skus[(line.product.id, line.key)] = sku

            qty = line.request.quantity
            draws: tuple[LayerDraw, ...] = ()
            if line.action == ACTION_CONSUME:
                self.stock.apply_draw(line.draw)
                draws = tuple(
                    LayerDraw(layer_id=layer.id, quantity=taken, unit_cost_cents=layer.unit_cost_cents)
                    for layer, taken in line.draw.consumed
                )
            elif line.action == ACTION_RECEIVE:
                self.stock.receive(
                    sku, store_id, qty, line.unit_cost_cents, line.unit_sell_price_cents, bill_id,
                    received_at=created_at,
                )
            elif line.action == ACTION_RESTOCK:
                self.stock.restock(
                    sku, store_id, qty, line.unit_cost_cents, line.unit_sell_price_cents, bill_id,
                    received_at=created_at,
                )

            items.append(
                BillItem(
                    id=self._new_id(),
                    product_id=line.product.id,
                    sku_id=sku.id,
                    product_name=sku.identifier,
                    option_values=dict(sku.option_values),
                    quantity=qty,
                    unit_cost_cents=line.unit_cost_cents,
                    unit_sell_price_cents=line.unit_sell_price_cents,
                    cogs_cents=line.cogs_cents,
                    is_defective=bool(line.request.is_defective),
                    layer_draws=draws,
                )
            )

        if bill_type == BillType.PURCHASE:
            total = sum(item.unit_cost_cents * item.quantity for item in items)
        else:
            total = sum(item.unit_sell_price_cents * item.quantity for item in items)

        bill = Bill(
            id=bill_id,
            type=bill_type,
            created_at=created_at,
            items=tuple(items),
            total_amount_cents=total,
            counterparty_name=metadata.counterparty_name,
            counterparty_phone=metadata.counterparty_phone,
            notes=metadata.notes,
            payment_status=metadata.payment_status,
            store_id=store_id,
            staff_id=metadata.staff_id,
        )
        self.bills[bill.id] = bill
        return bill

    def commit_bill(
        self,
        bill_type,
        items: list[BillItemRequest],
        metadata: BillMetadata | None = None,
        *,
        now: datetime | None = None,
    ) -> Bill:
        bill_type = coerce_bill_type(bill_type)
        metadata = metadata or BillMetadata()
        items = list(items or [])
        if not items:
            raise InvalidInputError("A bill needs at least one item")
        if metadata.payment_status is not None and metadata.payment_status not in PAYMENT_STATUSES:
            raise InvalidInputError(
                f"payment_status must be one of {', '.join(PAYMENT_STATUSES)}",
                {"payment_status": metadata.payment_status},
            )

        try:
            plan = self.simulate(bill_type, items, metadata.store_id)
        except LedgerError as exc:
            logger.info(
                "Bill rejected type=%s store=%s item_index=%s reason=%s",
                bill_type.value, metadata.store_id, exc.details.get("item_index"), exc.message,
            )
            raise

        bill = self._apply(bill_type, plan, metadata, now or self._clock())
        logger.info(
            "Bill committed id=%s type=%s store=%s items=%d total_cents=%d",
            bill.id, bill.type.value, bill.store_id, len(bill.items), bill.total_amount_cents,
        )
        return bill

    # -------------------------------------------------------------------------
    # Delete with rollback
    # -------------------------------------------------------------------------

    def _layer_index(self) -> dict[str, tuple[Sku, StockLayer]]:
        index = {}
        for _, sku in self.catalog.iter_skus():
            for layer in sku.layers:
                index[layer.id] = (sku, layer)
        return index

    def delete_bill(self, bill_id: str) -> Bill:
        bill = self.get_bill(bill_id)
        layers = self._layer_index()

        created = [
            (sku, layer)
            for sku, layer in layers.values()
            if layer.bill_id == bill.id and layer.kind in (LayerKind.RECEIPT, LayerKind.RESTOCK)
        ]
        for _, layer in created:
            if layer.remaining_quantity != layer.initial_quantity:
                raise UnsupportedOperationError(
                    f"Cannot delete bill {bill.id}: stock it received has since been consumed",
                    {"bill_id": bill.id, "layer_id": layer.id},
                )

        restore: dict[str, int] = {}
        for item in bill.items:
            for draw in item.layer_draws:
                restore[draw.layer_id] = restore.get(draw.layer_id, 0) + draw.quantity
        for layer_id, qty in restore.items():
            entry = layers.get(layer_id)
            if entry is None:
                raise UnsupportedOperationError(
                    f"Cannot delete bill {bill.id}: consumed layer {layer_id} no longer exists",
                    {"bill_id": bill.id, "layer_id": layer_id},
                )
            layer = entry[1]
            if layer.remaining_quantity + qty > layer.initial_quantity:
                raise UnsupportedOperationError(
                    f"Cannot delete bill {bill.id}: layer {layer_id} cannot take back {qty} units",
                    {"bill_id": bill.id, "layer_id": layer_id},
                )

        for sku, layer in created:
            sku.layers.remove(layer)
        for layer_id, qty in restore.items():
            layers[layer_id][1].remaining_quantity += qty
        del self.bills[bill.id]

        logger.info(
            "Bill deleted id=%s type=%s layers_removed=%d layers_restored=%d",
            bill.id, bill.type.value, len(created), len(restore),
        )
        return bill
