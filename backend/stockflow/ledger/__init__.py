# Overview: In-process inventory ledger engine (catalog, FIFO stock layers, bills, reports).

from .engine import InventoryLedger
from .entities import (
    Bill,
    BillItem,
    BillItemRequest,
    BillMetadata,
    BillType,
    LayerDraw,
    LayerKind,
    NewProduct,
    Product,
    ProductUpdate,
    Sku,
    StockLayer,
    VariantSpec,
    canonical_key,
)
from .errors import (
    InsufficientStockError,
    InvalidInputError,
    LedgerError,
    NotFoundError,
    UnsupportedOperationError,
)
from .serialization import SCHEMA_VERSION, RepairReport, dump_state, load_state, repair_state
from .stock import ANY_STORE

__all__ = [
    "ANY_STORE",
    "SCHEMA_VERSION",
    "Bill",
    "BillItem",
    "BillItemRequest",
    "BillMetadata",
    "BillType",
    "InsufficientStockError",
    "InvalidInputError",
    "InventoryLedger",
    "LayerDraw",
    "LayerKind",
    "LedgerError",
    "NewProduct",
    "NotFoundError",
    "Product",
    "ProductUpdate",
    "RepairReport",
    "Sku",
    "StockLayer",
    "UnsupportedOperationError",
    "VariantSpec",
    "canonical_key",
    "dump_state",
    "load_state",
    "repair_state",
]
