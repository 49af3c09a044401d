# Overview: InventoryLedger facade: one tenant's catalog, stock, bills and reports behind a readers/writer lock.

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable, Mapping

from ..time_utils import utcnow
from . import reporting
from .catalog import new_id
from .entities import (
    Bill,
    BillItemRequest,
    BillMetadata,
    BillType,
    LayerKind,
    NewProduct,
    Product,
    ProductUpdate,
    Sku,
    StockLayer,
)
from .errors import UnsupportedOperationError
from .locking import ReadWriteLock
from .processor import TransactionProcessor, coerce_bill_type
from .serialization import (
    LedgerState,
    RepairReport,
    build_state,
    dump_state,
    empty_state,
    load_state,
    repair_state,
)
from .stock import ANY_STORE, StockLedger

logger = logging.getLogger(__name__)


class InventoryLedger:
    """
    Single-tenant inventory engine.

    Mutations run exclusively under the write lock and either fully succeed or
    raise a LedgerError with no partial effect. Reads share the read lock and
    see a consistent state. Hold `ledger.lock.write()` across several calls to
    make them one unit (the service layer does this to roll back on failed
    persistence).
    """

    def __init__(
        self,
        state: LedgerState | None = None,
        *,
        id_factory: Callable[[], str] = new_id,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._id_factory = id_factory
        self._clock = clock
        self.lock = ReadWriteLock()
        self.last_repair: RepairReport | None = None
        self._install(state or empty_state(id_factory=id_factory, clock=clock))

    def _install(self, state: LedgerState) -> None:
        self.catalog = state.catalog
        self.stock = StockLedger(self.catalog, id_factory=self._id_factory, clock=self._clock)
        self.processor = TransactionProcessor(
            self.catalog, self.stock, id_factory=self._id_factory, clock=self._clock,
        )
        self.processor.bills = dict(state.bills)
        self.processor.sequences.update(state.sequences)

    @classmethod
    def from_snapshot(
        cls,
        raw,
        *,
        id_factory: Callable[[], str] = new_id,
        clock: Callable[[], datetime] = utcnow,
    ) -> "InventoryLedger":
        state, report = load_state(raw, id_factory=id_factory, clock=clock)
        ledger = cls(state, id_factory=id_factory, clock=clock)
        ledger.last_repair = report
        return ledger

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    def snapshot(self) -> dict:
        with self.lock.read():
            return dump_state(self.catalog, self.processor.bills.values(), self.processor.sequences)

    def restore(self, data: dict) -> None:
        """Replace the whole state with a snapshot produced by snapshot()."""
        with self.lock.write():
            self._install(build_state(data, id_factory=self._id_factory, clock=self._clock))

    def reset(self) -> None:
        """Drop every product, bill and bill sequence."""
        with self.lock.write():
            self._install(empty_state(id_factory=self._id_factory, clock=self._clock))
            self.last_repair = None

    def repair(self) -> RepairReport:
        """Run the repair pass over the current state and reinstall the result."""
        with self.lock.write():
            raw = dump_state(self.catalog, self.processor.bills.values(), self.processor.sequences)
            data, report = repair_state(raw, id_factory=self._id_factory)
            if report.fixes:
                self._install(build_state(data, id_factory=self._id_factory, clock=self._clock))
                logger.info("Ledger repair applied fixes=%d", len(report.fixes))
            self.last_repair = report
            return report

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    def add_product(self, spec: NewProduct) -> Product:
        with self.lock.write():
            return self.catalog.add_product(spec)

    def update_product(self, product_id: str, update: ProductUpdate) -> Product:
        with self.lock.write():
            return self.catalog.update_product(product_id, update)

    def delete_product(self, product_id: str) -> Product:
        with self.lock.write():
            product = self.catalog.get_product(product_id)
            referencing = [b.id for b in self.processor.bills.values() if b.references_product(product_id)]
            if referencing:
                raise UnsupportedOperationError(
                    f"Cannot delete {product.name}: referenced by {len(referencing)} bill(s)",
                    {"product_id": product_id, "bill_ids": referencing[:10]},
                )
            if product.track_quantity:
                remaining = sum(self.stock.total_stock(sku, ANY_STORE) or 0 for sku in product.skus)
                if remaining > 0:
                    raise UnsupportedOperationError(
                        f"Cannot delete {product.name}: {remaining} unit(s) still in stock",
                        {"product_id": product_id, "remaining_quantity": remaining},
                    )
            return self.catalog.remove_product(product_id)

    def get_product(self, product_id: str) -> Product:
        with self.lock.read():
            return self.catalog.get_product(product_id)

    def find_product_by_name(self, name: str) -> Product | None:
        with self.lock.read():
            return self.catalog.find_product_by_name(name)

    def list_products(self) -> list[Product]:
        with self.lock.read():
            return self.catalog.list_products()

    def search_products(self, term: str | None) -> list[Product]:
        with self.lock.read():
            return self.catalog.search_products(term)

    def product_dicts(self, term: str | None = None) -> list[dict]:
        """Serialized products, optionally filtered by a search term, taken under the read lock."""
        with self.lock.read():
            products = self.catalog.search_products(term) if term else self.catalog.list_products()
            return [product.to_dict() for product in products]

    def product_detail(self, product_id: str, store_id=ANY_STORE) -> dict:
        """Product fields plus a stock/price summary per SKU for the given scope."""
        with self.lock.read():
            product = self.catalog.get_product(product_id)
            data = product.to_dict()
            data.pop("skus")
            data["skus"] = [self.stock.summary(sku, store_id) for sku in product.skus]
            return data

    def add_category(self, name: str) -> str:
        with self.lock.write():
            return self.catalog.add_category(name)

    def search_categories(self, term: str | None = None) -> list[str]:
        with self.lock.read():
            return self.catalog.search_categories(term)

    def resolve_or_create_sku(self, product_id: str, option_values: Mapping[str, str] | None) -> Sku:
        with self.lock.write():
            return self.catalog.resolve_or_create_sku(product_id, option_values)

    def set_standing_price(
        self,
        sku_id: str,
        store_id: str | None,
        *,
        cost_cents: int | None = None,
        sell_price_cents: int | None = None,
    ) -> StockLayer:
        with self.lock.write():
            _, sku = self.catalog.locate_sku(sku_id)
            return self.stock.set_standing_price(
                sku, store_id, cost_cents=cost_cents, sell_price_cents=sell_price_cents,
            )

    # -------------------------------------------------------------------------
    # Stock queries
    # -------------------------------------------------------------------------

    def sku_summary(self, sku_id: str, store_id=ANY_STORE) -> dict:
        with self.lock.read():
            _, sku = self.catalog.locate_sku(sku_id)
            return self.stock.summary(sku, store_id)

    def sku_layers(self, sku_id: str, store_id=ANY_STORE, *, include_standing: bool = False) -> list[StockLayer]:
        with self.lock.read():
            _, sku = self.catalog.locate_sku(sku_id)
            layers = self.stock.layers(sku, store_id)
            if include_standing:
                layers = layers + [l for l in sku.layers if l.kind == LayerKind.STANDING_PRICE]
            return layers

    def sku_layer_dicts(self, sku_id: str, store_id=ANY_STORE, *, include_standing: bool = False) -> list[dict]:
        with self.lock.read():
            _, sku = self.catalog.locate_sku(sku_id)
            layers = self.stock.layers(sku, store_id)
            if include_standing:
                layers = layers + [l for l in sku.layers if l.kind == LayerKind.STANDING_PRICE]
            return [layer.to_dict() for layer in layers]

    def total_stock(self, sku_id: str, store_id=ANY_STORE) -> int | None:
        with self.lock.read():
            _, sku = self.catalog.locate_sku(sku_id)
            return self.stock.total_stock(sku, store_id)

    def current_quoted_sell_price(self, sku_id: str, store_id=ANY_STORE) -> int | None:
        with self.lock.read():
            _, sku = self.catalog.locate_sku(sku_id)
            return self.stock.current_quoted_sell_price(sku, store_id)

    def average_cost_price(self, sku_id: str, store_id=ANY_STORE) -> int | None:
        with self.lock.read():
            _, sku = self.catalog.locate_sku(sku_id)
            return self.stock.average_cost_price(sku, store_id)

    # -------------------------------------------------------------------------
    # Bills
    # -------------------------------------------------------------------------

    def commit_bill(
        self,
        bill_type,
        items: list[BillItemRequest],
        metadata: BillMetadata | None = None,
        *,
        now: datetime | None = None,
    ) -> Bill:
        with self.lock.write():
            return self.processor.commit_bill(bill_type, items, metadata, now=now)

    def delete_bill(self, bill_id: str) -> Bill:
        with self.lock.write():
            return self.processor.delete_bill(bill_id)

    def get_bill(self, bill_id: str) -> Bill:
        with self.lock.read():
            return self.processor.get_bill(bill_id)

    def recent_bills(self, limit: int | None = None, bill_type=None) -> list[Bill]:
        with self.lock.read():
            if bill_type is not None:
                bill_type = coerce_bill_type(bill_type)
            return self.processor.list_bills(limit=limit, bill_type=bill_type)

    def bills_for_product(self, product_id: str) -> list[Bill]:
        with self.lock.read():
            self.catalog.get_product(product_id)
            return self.processor.bills_for_product(product_id)

    # -------------------------------------------------------------------------
    # Reports
    # -------------------------------------------------------------------------

    def _today(self, today: date | None) -> date:
        return today or self._clock().date()

    def low_stock_count(self, threshold: int, store_id=ANY_STORE) -> int:
        with self.lock.read():
            return reporting.low_stock_count(self.catalog, self.stock, threshold=threshold, store_id=store_id)

    def low_stock_items(self, threshold: int, store_id=ANY_STORE) -> list[dict]:
        with self.lock.read():
            return reporting.low_stock_items(self.catalog, self.stock, threshold=threshold, store_id=store_id)

    def inventory_valuation(self, store_id=ANY_STORE) -> dict:
        with self.lock.read():
            return reporting.inventory_valuation(self.catalog, self.stock, store_id=store_id)

    def daily_sales_and_expenses(self, days: int, today: date | None = None, store_id=ANY_STORE) -> list[dict]:
        with self.lock.read():
            return reporting.daily_sales_and_expenses(
                self.processor.bills.values(), days=days, today=self._today(today), store_id=store_id,
            )

    def top_selling_products_by_revenue(self, limit: int, store_id=ANY_STORE) -> list[dict]:
        with self.lock.read():
            return reporting.top_selling_products_by_revenue(
                self.processor.bills.values(), limit=limit, store_id=store_id,
            )

    def top_profitable_products(self, limit: int, store_id=ANY_STORE) -> list[dict]:
        with self.lock.read():
            return reporting.top_profitable_products(
                self.processor.bills.values(), limit=limit, store_id=store_id,
            )

    def recent_expense_bills_with_coverage(self, limit: int, store_id=ANY_STORE) -> list[dict]:
        with self.lock.read():
            return reporting.recent_expense_bills_with_coverage(
                self.processor.bills.values(), limit=limit, store_id=store_id,
            )

    def expense_summary(self, store_id=ANY_STORE) -> dict:
        with self.lock.read():
            return reporting.expense_summary(self.processor.bills.values(), store_id=store_id)

    def overall_financial_summary(self, store_id=ANY_STORE) -> dict:
        with self.lock.read():
            return reporting.overall_financial_summary(self.processor.bills.values(), store_id=store_id)

    def todays_financial_summary(self, today: date | None = None, store_id=ANY_STORE) -> dict:
        with self.lock.read():
            return reporting.todays_financial_summary(
                self.processor.bills.values(), today=self._today(today), store_id=store_id,
            )

    def summary(self) -> dict:
        """Headline counts used by the CLI and the health of a tenant's ledger."""
        with self.lock.read():
            products = self.catalog.list_products()
            bills = list(self.processor.bills.values())
            return {
                "products": len(products),
                "skus": sum(len(p.skus) for p in products),
                "layers": sum(len(s.layers) for p in products for s in p.skus),
                "bills": {t.value: sum(1 for b in bills if b.type == t) for t in BillType},
                "inventory_value_cents": reporting.inventory_valuation(
                    self.catalog, self.stock, store_id=ANY_STORE,
                )["total_value_cents"],
            }
