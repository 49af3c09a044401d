from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .ledger import BillItemRequest, BillMetadata, NewProduct, ProductUpdate, VariantSpec


# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999
MAX_QUANTITY = 1_000_000
MAX_TEXT_LENGTH = 255
MAX_NOTES_LENGTH = 2000


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class PayloadPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = field(default_factory=frozenset)


PRODUCT_POLICY = PayloadPolicy(
    writable_fields=frozenset({
        "name", "category", "track_quantity", "sku_code", "description", "variants",
        "standing_cost_cents", "standing_sell_price_cents",
    }),
    required_on_create=frozenset({"name"}),
)

BILL_POLICY = PayloadPolicy(
    writable_fields=frozenset({
        "type", "items", "counterparty_name", "counterparty_phone", "notes",
        "payment_status", "store_id", "staff_id",
    }),
    required_on_create=frozenset({"type", "items"}),
)

BILL_ITEM_POLICY = PayloadPolicy(
    writable_fields=frozenset({
        "product_id", "quantity", "unit_cost_cents", "unit_sell_price_cents",
        "option_values", "is_defective",
    }),
    required_on_create=frozenset({"product_id", "quantity"}),
)

STANDING_PRICE_POLICY = PayloadPolicy(
    writable_fields=frozenset({"store_id", "cost_cents", "sell_price_cents"}),
)

STORE_POLICY = PayloadPolicy(
    writable_fields=frozenset({"name", "code", "location", "phone", "email"}),
    required_on_create=frozenset({"name"}),
)

CATEGORY_POLICY = PayloadPolicy(
    writable_fields=frozenset({"name"}),
    required_on_create=frozenset({"name"}),
)


def check_payload(payload: Any, policy: PayloadPolicy, *, partial: bool, where: str = "") -> dict:
    """
    Reject non-objects, fields outside the allowlist and (on create) missing
    required fields. Returns the payload unchanged.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError(f"{where or 'payload'} must be a JSON object")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
        if missing:
            raise ValidationError(f"{where}Missing required fields: {', '.join(missing)}")

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"{where}Field not allowed: {k}")
    return payload


def coerce_int(value: Any, name: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    """Strict integers: no floats, booleans, decimals or scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{name} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if "." in stripped:
            raise ValidationError(f"{name} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{name} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{name} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{name} must be >= {minimum}")
    if maximum is not None and result > maximum:
        raise ValidationError(f"{name} cannot exceed {maximum}")
    return result


def coerce_price(value: Any, name: str) -> int | None:
    if value is None:
        return None
    return coerce_int(value, name, minimum=0, maximum=MAX_PRICE_CENTS)


def coerce_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false", "1", "0"):
        return value.strip().lower() in ("true", "1")
    raise ValidationError(f"{name} must be a boolean")


def coerce_text(value: Any, name: str, *, max_length: int = MAX_TEXT_LENGTH) -> str | None:
    if value is None:
        return None
    if not isinstance(value, (str, int)) or isinstance(value, bool):
        raise ValidationError(f"{name} must be a string")
    text = str(value).strip()
    if len(text) > max_length:
        raise ValidationError(f"{name} exceeds max length {max_length}")
    return text or None


def coerce_option_map(value: Any, name: str) -> dict[str, str] | None:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValidationError(f"{name} must be an object of variant name -> option value")
    cleaned = {}
    for k, v in value.items():
        if v is None:
            continue
        if not isinstance(v, (str, int)) or isinstance(v, bool):
            raise ValidationError(f"{name}.{k} must be a string")
        cleaned[str(k)] = str(v)
    return cleaned


def coerce_variants(value: Any) -> tuple[VariantSpec, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise ValidationError("variants must be a list")
    specs = []
    for i, entry in enumerate(value):
        if not isinstance(entry, dict):
            raise ValidationError(f"variants[{i}] must be an object")
        name = coerce_text(entry.get("name"), f"variants[{i}].name")
        options = entry.get("options")
        if not isinstance(options, list):
            raise ValidationError(f"variants[{i}].options must be a list")
        values = []
        for j, opt in enumerate(options):
            raw = opt.get("value") if isinstance(opt, dict) else opt
            values.append(coerce_text(raw, f"variants[{i}].options[{j}]") or "")
        specs.append(VariantSpec(name=name or "", options=tuple(values)))
    return tuple(specs)


# -----------------------------------------------------------------------------
# Products
# -----------------------------------------------------------------------------


def parse_new_product(payload: Any) -> NewProduct:
    payload = check_payload(payload, PRODUCT_POLICY, partial=False)
    return NewProduct(
        name=coerce_text(payload.get("name"), "name") or "",
        track_quantity=coerce_bool(payload.get("track_quantity", True), "track_quantity"),
        category=coerce_text(payload.get("category"), "category"),
        sku_code=coerce_text(payload.get("sku_code"), "sku_code"),
        description=coerce_text(payload.get("description"), "description", max_length=MAX_NOTES_LENGTH),
        variants=coerce_variants(payload.get("variants")),
        standing_cost_cents=coerce_price(payload.get("standing_cost_cents"), "standing_cost_cents"),
        standing_sell_price_cents=coerce_price(payload.get("standing_sell_price_cents"), "standing_sell_price_cents"),
    )


def parse_product_update(payload: Any) -> ProductUpdate:
    payload = check_payload(payload, PRODUCT_POLICY, partial=True)

    def text(name: str, **kwargs) -> str | None:
        # present-but-blank clears optional text fields
        if name not in payload:
            return None
        return coerce_text(payload[name], name, **kwargs) or ""

    return ProductUpdate(
        name=text("name"),
        category=text("category"),
        track_quantity=(
            coerce_bool(payload["track_quantity"], "track_quantity") if "track_quantity" in payload else None
        ),
        sku_code=text("sku_code"),
        description=text("description", max_length=MAX_NOTES_LENGTH),
        variants=coerce_variants(payload["variants"]) if "variants" in payload else None,
        standing_cost_cents=coerce_price(payload.get("standing_cost_cents"), "standing_cost_cents"),
        standing_sell_price_cents=coerce_price(payload.get("standing_sell_price_cents"), "standing_sell_price_cents"),
    )


# -----------------------------------------------------------------------------
# Bills
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class BillPayload:
    type: str
    items: list[BillItemRequest]
    metadata: BillMetadata
    store_id: Any = None  # client store id; resolved against the organization by the caller


def parse_bill_item(payload: Any, index: int) -> BillItemRequest:
    where = f"items[{index}]."
    payload = check_payload(payload, BILL_ITEM_POLICY, partial=False, where=where)
    product_id = coerce_text(payload.get("product_id"), f"{where}product_id")
    if not product_id:
        raise ValidationError(f"{where}product_id is required")
    return BillItemRequest(
        product_id=product_id,
        quantity=coerce_int(payload.get("quantity"), f"{where}quantity", minimum=1, maximum=MAX_QUANTITY),
        unit_cost_cents=coerce_price(payload.get("unit_cost_cents"), f"{where}unit_cost_cents"),
        unit_sell_price_cents=coerce_price(payload.get("unit_sell_price_cents"), f"{where}unit_sell_price_cents"),
        option_values=coerce_option_map(payload.get("option_values"), f"{where}option_values"),
        is_defective=coerce_bool(payload.get("is_defective", False), f"{where}is_defective"),
    )


def parse_bill(payload: Any) -> BillPayload:
    payload = check_payload(payload, BILL_POLICY, partial=False)
    bill_type = coerce_text(payload.get("type"), "type")
    if not bill_type:
        raise ValidationError("type is required")

    items = payload.get("items")
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    payment_status = coerce_text(payload.get("payment_status"), "payment_status")
    if payment_status is not None:
        payment_status = payment_status.lower()

    return BillPayload(
        type=bill_type.lower(),
        items=[parse_bill_item(item, i) for i, item in enumerate(items)],
        metadata=BillMetadata(
            counterparty_name=coerce_text(payload.get("counterparty_name"), "counterparty_name"),
            counterparty_phone=coerce_text(payload.get("counterparty_phone"), "counterparty_phone", max_length=64),
            notes=coerce_text(payload.get("notes"), "notes", max_length=MAX_NOTES_LENGTH),
            payment_status=payment_status,
            staff_id=coerce_text(payload.get("staff_id"), "staff_id"),
        ),
        store_id=payload.get("store_id"),
    )


def parse_standing_price(payload: Any) -> dict:
    payload = check_payload(payload, STANDING_PRICE_POLICY, partial=True)
    cost = coerce_price(payload.get("cost_cents"), "cost_cents")
    sell = coerce_price(payload.get("sell_price_cents"), "sell_price_cents")
    if cost is None and sell is None:
        raise ValidationError("cost_cents or sell_price_cents is required")
    return {"store_id": payload.get("store_id"), "cost_cents": cost, "sell_price_cents": sell}
