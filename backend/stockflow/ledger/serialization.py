# Overview: JSON-compatible ledger snapshots, the load-time repair pass and legacy layout migration.

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable, Iterable

from ..time_utils import EPOCH, from_epoch_millis, parse_iso_datetime, to_utc_z, utcnow
from .catalog import DEFAULT_CATEGORIES, STANDING_PRICE_BILL_ID, Catalog, new_id
from .entities import (
    PAYMENT_STATUSES,
    Bill,
    BillItem,
    BillType,
    LayerDraw,
    LayerKind,
    Product,
    ProductOption,
    ProductVariant,
    Sku,
    StockLayer,
    canonical_key,
    sku_identifier,
)
from .errors import UnsupportedOperationError

"""
Snapshot & Repair Invariants (authoritative)

- dump_state produces plain dicts/lists/str/int/bool/None only, tagged with
  schema_version. Timestamps are ISO-8601 'Z' strings; money is integer cents.
- repair_state never raises on malformed content; it defaults or drops what it
  cannot use and records every change in the RepairReport:
    * layer: remaining_quantity -> 0, initial_quantity -> remaining,
      prices -> 0, received_at -> epoch, missing ids are generated
    * product without variants and without SKUs gets its default SKU;
      non-tracked default SKUs always carry a standing-price layer
    * list fields (products, skus, layers, bills, items, layer_draws) that
      hold anything else are treated as empty
    * products without id or name, bills with a missing, non-text or unknown
      type are dropped
    * bill item quantity that is not a positive integer -> 1
    * default categories are always present
- Running repair on its own output applies no fixes (idempotent).
- A document without schema_version is the legacy camelCase layout
  (productSKUs / stockLayers / trackQuantity, buy/sell bill types, prices in
  major currency units) and is migrated in the same pass.
- Only schema_version 1 is understood; newer documents are refused rather
  than repaired.
"""

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

LEGACY_BILL_TYPES = {"buy": BillType.PURCHASE, "sell": BillType.SALE}
LEGACY_STANDING_BILL_IDS = {STANDING_PRICE_BILL_ID, "hydrated_nontracked_price"}
_BILL_NUMBER = re.compile(r"^([PSR])-(\d+)$")
_PREFIX_TYPES = {"P": BillType.PURCHASE, "S": BillType.SALE, "R": BillType.RETURN}


@dataclass
class RepairReport:
    fixes: list[str] = field(default_factory=list)
    legacy_migrated: bool = False
    fell_back_to_empty: bool = False
    error: str | None = None

    def note(self, message: str) -> None:
        self.fixes.append(message)

    @property
    def changed(self) -> bool:
        return bool(self.fixes) or self.fell_back_to_empty

    def to_dict(self) -> dict:
        return {
            "fixes": list(self.fixes),
            "fix_count": len(self.fixes),
            "legacy_migrated": self.legacy_migrated,
            "fell_back_to_empty": self.fell_back_to_empty,
            "error": self.error,
        }


@dataclass
class LedgerState:
    catalog: Catalog
    bills: dict[str, Bill]
    sequences: dict[str, int]


# -----------------------------------------------------------------------------
# Dump
# -----------------------------------------------------------------------------


def dump_state(catalog: Catalog, bills: Iterable[Bill], sequences: dict[str, int]) -> dict:
    return {
        "schema_version": SCHEMA_VERSION,
        "categories": list(catalog.categories),
        "products": [p.to_dict() for p in catalog.list_products()],
        "bills": [b.to_dict() for b in bills],
        "sequences": {t.value: int(sequences.get(t.value, 0)) for t in BillType},
    }


# -----------------------------------------------------------------------------
# Field coercion helpers
# -----------------------------------------------------------------------------


def _pick(raw: dict, *names):
    for name in names:
        if name in raw:
            return raw[name]
    return None


def _as_int(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _as_cents(value, legacy: bool) -> int | None:
    """Integer cents; legacy documents store prices in major units."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not legacy:
        return _as_int(value)
    try:
        cents = (Decimal(str(value)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None
    return int(cents)


def _as_datetime(value) -> datetime | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return from_epoch_millis(value)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        try:
            return parse_iso_datetime(value)
        except ValueError:
            return None
    return None


def _as_text(value) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _option_map(value) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items() if v is not None}


# -----------------------------------------------------------------------------
# Repair
# -----------------------------------------------------------------------------


class _Repairer:
    def __init__(self, report: RepairReport, legacy: bool, id_factory: Callable[[], str]):
        self.report = report
        self.legacy = legacy
        self.new_id = id_factory

    def fix(self, message: str) -> None:
        self.report.note(message)

    def entries(self, value, where: str) -> list:
        """A list field; anything else is replaced by an empty list."""
        if value is None:
            return []
        if not isinstance(value, list):
            self.fix(f"{where} of type {type(value).__name__} replaced with an empty list")
            return []
        return value

    def categories(self, raw) -> list[str]:
        names: list[str] = []
        seen: set[str] = set()
        for entry in raw if isinstance(raw, list) else []:
            name = _as_text(entry.get("name") if isinstance(entry, dict) else entry)
            if name is None or name.lower() in seen:
                self.fix(f"dropped invalid or duplicate category {entry!r}")
                continue
            seen.add(name.lower())
            names.append(name)
        missing = [c for c in DEFAULT_CATEGORIES if c.lower() not in seen]
        if missing:
            self.fix(f"restored default categories: {', '.join(missing)}")
            names.extend(missing)
        return sorted(names)

    def layer(self, raw, where: str, tracked: bool) -> dict | None:
        if not isinstance(raw, dict):
            self.fix(f"{where}: dropped non-object stock layer")
            return None

        layer_id = _as_text(raw.get("id"))
        if layer_id is None:
            layer_id = self.new_id()
            self.fix(f"{where}: generated missing layer id {layer_id}")
        where = f"{where} layer {layer_id}"

        bill_id = _as_text(_pick(raw, "bill_id", "purchaseBillId"))
        if bill_id is None:
            bill_id = "unknown"
            self.fix(f"{where}: missing bill_id set to 'unknown'")

        received_at = _as_datetime(_pick(raw, "received_at", "purchaseDate"))
        if received_at is None:
            received_at = EPOCH
            self.fix(f"{where}: missing received_at set to epoch")

        remaining = _as_int(_pick(raw, "remaining_quantity", "quantity"))
        if remaining is None or remaining < 0:
            self.fix(f"{where}: invalid remaining_quantity set to 0")
            remaining = 0
        initial = _as_int(_pick(raw, "initial_quantity", "initialQuantity"))
        if initial is None:
            self.fix(f"{where}: missing initial_quantity set to remaining")
            initial = remaining
        elif initial < remaining:
            self.fix(f"{where}: initial_quantity raised to remaining")
            initial = remaining

        prices = {}
        for key, names in (
            ("unit_cost_cents", ("unit_cost_cents", "costPrice")),
            ("unit_sell_price_cents", ("unit_sell_price_cents", "sellPrice")),
        ):
            cents = _as_cents(_pick(raw, *names), self.legacy)
            if cents is None or cents < 0:
                self.fix(f"{where}: invalid {key} set to 0")
                cents = 0
            prices[key] = cents

        try:
            kind = LayerKind(raw.get("kind"))
        except ValueError:
            standing = bill_id in LEGACY_STANDING_BILL_IDS or not tracked
            kind = LayerKind.STANDING_PRICE if standing else LayerKind.RECEIPT
            if not self.legacy:
                self.fix(f"{where}: missing kind set to {kind.value}")

        return {
            "id": layer_id,
            "bill_id": bill_id,
            "received_at": to_utc_z(received_at),
            "initial_quantity": initial,
            "remaining_quantity": remaining,
            **prices,
            "store_id": _as_text(_pick(raw, "store_id", "storeId")),
            "kind": kind.value,
        }

    def variants(self, raw, where: str) -> list[dict]:
        variants = []
        for entry in raw if isinstance(raw, list) else []:
            name = _as_text(entry.get("name")) if isinstance(entry, dict) else None
            if name is None:
                self.fix(f"{where}: dropped variant without a name")
                continue
            options = []
            raw_options = entry.get("options")
            for opt in raw_options if isinstance(raw_options, list) else []:
                value = _as_text(opt.get("value") if isinstance(opt, dict) else opt)
                if value is None:
                    self.fix(f"{where}: dropped blank option of variant {name}")
                    continue
                opt_id = _as_text(opt.get("id")) if isinstance(opt, dict) else None
                if opt_id is None:
                    opt_id = self.new_id()
                    self.fix(f"{where}: generated id for option {value} of variant {name}")
                options.append({"id": opt_id, "value": value})
            var_id = _as_text(entry.get("id"))
            if var_id is None:
                var_id = self.new_id()
                self.fix(f"{where}: generated id for variant {name}")
            variants.append({"id": var_id, "name": name, "options": options})
        return variants

    def sku(self, raw, product_name: str, where: str, tracked: bool) -> dict | None:
        if not isinstance(raw, dict):
            self.fix(f"{where}: dropped non-object SKU")
            return None
        sku_id = _as_text(raw.get("id"))
        if sku_id is None:
            sku_id = self.new_id()
            self.fix(f"{where}: generated missing SKU id {sku_id}")
        options = _option_map(_pick(raw, "option_values", "optionValues"))
        identifier = _as_text(_pick(raw, "identifier", "skuIdentifier"))
        if identifier is None:
            identifier = sku_identifier(product_name, canonical_key(options))
            self.fix(f"{where}: derived identifier for SKU {sku_id}")
        where = f"{where} SKU {sku_id}"
        raw_layers = self.entries(_pick(raw, "layers", "stockLayers"), f"{where}: layers")
        layers = [layer for layer in (self.layer(l, where, tracked) for l in raw_layers) if layer is not None]
        return {
            "id": sku_id,
            "option_values": options,
            "identifier": identifier,
            "layers": layers,
        }

    def product(self, raw, index: int) -> dict | None:
        if not isinstance(raw, dict):
            self.fix(f"product #{index}: dropped non-object entry")
            return None
        product_id = _as_text(raw.get("id"))
        name = _as_text(raw.get("name"))
        if product_id is None or name is None:
            self.fix(f"product #{index}: dropped entry without id or name")
            return None
        where = f"product {product_id}"

        tracked = _pick(raw, "track_quantity", "trackQuantity")
        if not isinstance(tracked, bool):
            tracked = True
            self.fix(f"{where}: missing track_quantity set to true")

        variants = self.variants(raw.get("variants"), where)

        skus = []
        seen_keys: dict = {}
        for entry in self.entries(_pick(raw, "skus", "productSKUs"), f"{where}: skus"):
            sku = self.sku(entry, name, where, tracked)
            if sku is None:
                continue
            key = canonical_key(sku["option_values"])
            if key in seen_keys:
                seen_keys[key]["layers"].extend(sku["layers"])
                self.fix(f"{where}: merged duplicate SKU {sku['id']} into {seen_keys[key]['id']}")
                continue
            seen_keys[key] = sku
            skus.append(sku)

        if not variants and () not in seen_keys:
            default = {
                "id": self.new_id(),
                "option_values": {},
                "identifier": sku_identifier(name, ()),
                "layers": [],
            }
            skus.insert(0, default)
            seen_keys[()] = default
            self.fix(f"{where}: synthesized default SKU {default['id']}")

        if not tracked and () in seen_keys:
            default = seen_keys[()]
            if not any(l["kind"] == LayerKind.STANDING_PRICE.value for l in default["layers"]):
                default["layers"].append(
                    {
                        "id": self.new_id(),
                        "bill_id": STANDING_PRICE_BILL_ID,
                        "received_at": to_utc_z(EPOCH),
                        "initial_quantity": 0,
                        "remaining_quantity": 0,
                        "unit_cost_cents": _as_cents(raw.get("costPriceForNonTracked"), self.legacy) or 0,
                        "unit_sell_price_cents": _as_cents(raw.get("sellPriceForNonTracked"), self.legacy) or 0,
                        "store_id": None,
                        "kind": LayerKind.STANDING_PRICE.value,
                    }
                )
                self.fix(f"{where}: added standing-price layer to default SKU")

        return {
            "id": product_id,
            "name": name,
            "category": _as_text(raw.get("category")),
            "track_quantity": tracked,
            "sku_code": _as_text(_pick(raw, "sku_code", "sku")),
            "description": _as_text(raw.get("description")),
            "variants": variants,
            "skus": skus,
        }

    def bill_item(self, raw, where: str, index: int, sku_lookup: dict) -> dict | None:
        if not isinstance(raw, dict):
            self.fix(f"{where}: dropped non-object item #{index}")
            return None
        product_id = _as_text(_pick(raw, "product_id", "productId"))
        if product_id is None:
            self.fix(f"{where}: dropped item #{index} without product_id")
            return None

        item_id = _as_text(raw.get("id"))
        if item_id is None:
            item_id = self.new_id()
            self.fix(f"{where}: generated id for item #{index}")

        quantity = _as_int(raw.get("quantity"))
        if quantity is None or quantity <= 0:
            self.fix(f"{where}: item #{index} quantity {raw.get('quantity')!r} set to 1")
            quantity = 1

        prices = {}
        for key, names in (
            ("unit_cost_cents", ("unit_cost_cents", "costPrice")),
            ("unit_sell_price_cents", ("unit_sell_price_cents", "sellPrice")),
        ):
            cents = _as_cents(_pick(raw, *names), self.legacy)
            if cents is None or cents < 0:
                self.fix(f"{where}: item #{index} invalid {key} set to 0")
                cents = 0
            prices[key] = cents

        cogs = _as_int(raw.get("cogs_cents"))
        if cogs is None or cogs < 0:
            cogs = prices["unit_cost_cents"] * quantity
            if not self.legacy:
                self.fix(f"{where}: item #{index} cogs_cents recomputed")

        options = _option_map(_pick(raw, "option_values", "selectedVariantOptions"))
        sku_id = raw.get("sku_id")
        if not isinstance(sku_id, str):
            sku_id = sku_lookup.get((product_id, canonical_key(options)), "")
            if not self.legacy:
                self.fix(f"{where}: item #{index} sku_id resolved")

        draws = []
        for draw in self.entries(raw.get("layer_draws"), f"{where}: item #{index} layer_draws"):
            if not isinstance(draw, dict):
                continue
            layer_id = _as_text(draw.get("layer_id"))
            qty = _as_int(draw.get("quantity"))
            cost = _as_int(draw.get("unit_cost_cents"))
            if layer_id is None or qty is None or qty <= 0 or cost is None or cost < 0:
                self.fix(f"{where}: item #{index} dropped invalid layer draw")
                continue
            draws.append({"layer_id": layer_id, "quantity": qty, "unit_cost_cents": cost})

        return {
            "id": item_id,
            "product_id": product_id,
            "sku_id": sku_id,
            "product_name": _as_text(_pick(raw, "product_name", "productName")) or "Unknown Item",
            "option_values": options,
            "quantity": quantity,
            **prices,
            "cogs_cents": cogs,
            "is_defective": bool(_pick(raw, "is_defective", "isDefective")),
            "layer_draws": draws,
        }

    def bill(self, raw, index: int, sku_lookup: dict) -> dict | None:
        if not isinstance(raw, dict):
            self.fix(f"bill #{index}: dropped non-object entry")
            return None

        raw_type = raw.get("type")
        if not isinstance(raw_type, str):
            self.fix(f"bill #{index}: dropped entry with non-text type {raw_type!r}")
            return None
        bill_type = LEGACY_BILL_TYPES.get(raw_type)
        if bill_type is None:
            try:
                bill_type = BillType(raw_type)
            except ValueError:
                self.fix(f"bill #{index}: dropped entry with unknown type {raw_type!r}")
                return None

        bill_id = _as_text(raw.get("id"))
        if bill_id is None:
            bill_id = self.new_id()
            self.fix(f"bill #{index}: generated missing id {bill_id}")
        where = f"bill {bill_id}"

        created_at = _as_datetime(_pick(raw, "created_at", "date"))
        if created_at is None:
            created_at = _as_datetime(raw.get("timestamp"))
        if created_at is None:
            created_at = EPOCH
            self.fix(f"{where}: missing created_at set to epoch")

        items = [
            item
            for item in (
                self.bill_item(entry, where, i, sku_lookup)
                for i, entry in enumerate(self.entries(raw.get("items"), f"{where}: items"))
            )
            if item is not None
        ]

        total = _as_cents(_pick(raw, "total_amount_cents", "totalAmount"), self.legacy)
        if total is None:
            price_key = "unit_cost_cents" if bill_type == BillType.PURCHASE else "unit_sell_price_cents"
            total = sum(item[price_key] * item["quantity"] for item in items)
            self.fix(f"{where}: missing total recomputed from items")

        payment_status = _pick(raw, "payment_status", "paymentStatus")
        if payment_status is not None and payment_status not in PAYMENT_STATUSES:
            self.fix(f"{where}: unknown payment_status {payment_status!r} cleared")
            payment_status = None

        return {
            "id": bill_id,
            "type": bill_type.value,
            "created_at": to_utc_z(created_at),
            "items": items,
            "total_amount_cents": total,
            "counterparty_name": _as_text(_pick(raw, "counterparty_name", "vendorOrCustomerName")),
            "counterparty_phone": _as_text(_pick(raw, "counterparty_phone", "customerPhone")),
            "notes": _as_text(raw.get("notes")),
            "payment_status": payment_status,
            "store_id": _as_text(_pick(raw, "store_id", "storeId")),
            "staff_id": _as_text(_pick(raw, "staff_id", "billedByStaffId")),
        }

    def sequences(self, raw, bills: list[dict]) -> dict[str, int]:
        raw = raw if isinstance(raw, dict) else {}
        sequences = {}
        for bill_type in BillType:
            value = _as_int(raw.get(bill_type.value))
            if value is None or value < 0:
                value = 0
                if not self.legacy:
                    self.fix(f"sequence {bill_type.value} reset to 0")
            sequences[bill_type.value] = value
        for bill in bills:
            match = _BILL_NUMBER.match(bill["id"])
            if not match:
                continue
            bill_type = _PREFIX_TYPES[match.group(1)]
            number = int(match.group(2))
            if number > sequences[bill_type.value]:
                sequences[bill_type.value] = number
                self.fix(f"sequence {bill_type.value} advanced to {number}")
        return sequences


def check_schema_version(raw) -> None:
    if not isinstance(raw, dict):
        return
    version = raw.get("schema_version")
    if version is not None and _as_int(version) != SCHEMA_VERSION:
        raise UnsupportedOperationError(
            f"Unsupported ledger schema_version {version!r}",
            {"schema_version": version, "supported": SCHEMA_VERSION},
        )


def repair_state(raw, *, id_factory: Callable[[], str] = new_id) -> tuple[dict, RepairReport]:
    """Return a canonical copy of raw plus the fixes applied. raw is not modified."""
    check_schema_version(raw)
    report = RepairReport()
    if raw is None:
        raw = {"schema_version": SCHEMA_VERSION}
    if not isinstance(raw, dict):
        report.note(f"state of type {type(raw).__name__} discarded")
        raw = {"schema_version": SCHEMA_VERSION}

    legacy = "schema_version" not in raw
    report.legacy_migrated = legacy
    repairer = _Repairer(report, legacy, id_factory)

    categories = repairer.categories(raw.get("categories"))

    products = []
    seen_products: set[str] = set()
    for index, entry in enumerate(repairer.entries(raw.get("products"), "products")):
        product = repairer.product(entry, index)
        if product is None:
            continue
        if product["id"] in seen_products:
            repairer.fix(f"product #{index}: dropped duplicate id {product['id']}")
            continue
        seen_products.add(product["id"])
        products.append(product)

    sku_lookup = {
        (p["id"], canonical_key(s["option_values"])): s["id"]
        for p in products
        for s in p["skus"]
    }

    bills = []
    seen_bills: set[str] = set()
    for index, entry in enumerate(repairer.entries(raw.get("bills"), "bills")):
        bill = repairer.bill(entry, index, sku_lookup)
        if bill is None:
            continue
        if bill["id"] in seen_bills:
            repairer.fix(f"bill #{index}: dropped duplicate id {bill['id']}")
            continue
        seen_bills.add(bill["id"])
        bills.append(bill)

    data = {
        "schema_version": SCHEMA_VERSION,
        "categories": categories,
        "products": products,
        "bills": bills,
        "sequences": repairer.sequences(raw.get("sequences"), bills),
    }
    return data, report


# -----------------------------------------------------------------------------
# Build
# -----------------------------------------------------------------------------


def _layer_from_dict(d: dict) -> StockLayer:
    return StockLayer(
        id=d["id"],
        bill_id=d["bill_id"],
        received_at=parse_iso_datetime(d["received_at"]),
        initial_quantity=d["initial_quantity"],
        remaining_quantity=d["remaining_quantity"],
        unit_cost_cents=d["unit_cost_cents"],
        unit_sell_price_cents=d["unit_sell_price_cents"],
        store_id=d.get("store_id"),
        kind=LayerKind(d["kind"]),
    )


def _product_from_dict(d: dict) -> Product:
    return Product(
        id=d["id"],
        name=d["name"],
        track_quantity=d["track_quantity"],
        category=d.get("category"),
        sku_code=d.get("sku_code"),
        description=d.get("description"),
        variants=[
            ProductVariant(
                id=v["id"],
                name=v["name"],
                options=[ProductOption(id=o["id"], value=o["value"]) for o in v["options"]],
            )
            for v in d["variants"]
        ],
        skus=[
            Sku(
                id=s["id"],
                product_id=d["id"],
                option_values=dict(s["option_values"]),
                identifier=s["identifier"],
                layers=[_layer_from_dict(l) for l in s["layers"]],
            )
            for s in d["skus"]
        ],
    )


def _bill_from_dict(d: dict) -> Bill:
    return Bill(
        id=d["id"],
        type=BillType(d["type"]),
        created_at=parse_iso_datetime(d["created_at"]),
        items=tuple(
            BillItem(
                id=i["id"],
                product_id=i["product_id"],
                sku_id=i["sku_id"],
                product_name=i["product_name"],
                option_values=dict(i["option_values"]),
                quantity=i["quantity"],
                unit_cost_cents=i["unit_cost_cents"],
                unit_sell_price_cents=i["unit_sell_price_cents"],
                cogs_cents=i["cogs_cents"],
                is_defective=i["is_defective"],
                layer_draws=tuple(LayerDraw(**draw) for draw in i["layer_draws"]),
            )
            for i in d["items"]
        ),
        total_amount_cents=d["total_amount_cents"],
        counterparty_name=d.get("counterparty_name"),
        counterparty_phone=d.get("counterparty_phone"),
        notes=d.get("notes"),
        payment_status=d.get("payment_status"),
        store_id=d.get("store_id"),
        staff_id=d.get("staff_id"),
    )


def build_state(
    data: dict,
    *,
    id_factory: Callable[[], str] = new_id,
    clock: Callable[[], datetime] = utcnow,
) -> LedgerState:
    """Materialize a canonical (already repaired) document."""
    catalog = Catalog(id_factory=id_factory, clock=clock)
    catalog.categories = list(data["categories"])
    for entry in data["products"]:
        product = _product_from_dict(entry)
        catalog.products[product.id] = product
    bills = {}
    for entry in data["bills"]:
        bill = _bill_from_dict(entry)
        bills[bill.id] = bill
    return LedgerState(catalog=catalog, bills=bills, sequences=dict(data["sequences"]))


def empty_state(
    *,
    id_factory: Callable[[], str] = new_id,
    clock: Callable[[], datetime] = utcnow,
) -> LedgerState:
    return LedgerState(
        catalog=Catalog(id_factory=id_factory, clock=clock),
        bills={},
        sequences={t.value: 0 for t in BillType},
    )


def load_state(
    raw,
    *,
    id_factory: Callable[[], str] = new_id,
    clock: Callable[[], datetime] = utcnow,
) -> tuple[LedgerState, RepairReport]:
    """
    Repair and materialize a stored document.

    If the repair pass itself fails, the result is an empty ledger and the
    report says so. Documents from a newer schema raise UnsupportedOperationError.
    """
    check_schema_version(raw)
    try:
        data, report = repair_state(raw, id_factory=id_factory)
        state = build_state(data, id_factory=id_factory, clock=clock)
    except Exception as exc:
        logger.exception("Ledger state could not be repaired; starting from an empty ledger")
        report = RepairReport(fell_back_to_empty=True, error=str(exc))
        return empty_state(id_factory=id_factory, clock=clock), report

    if report.fixes:
        logger.warning(
            "Ledger state repaired fixes=%d legacy=%s", len(report.fixes), report.legacy_migrated,
        )
        for fix in report.fixes:
            logger.debug("repair: %s", fix)
    return state, report
