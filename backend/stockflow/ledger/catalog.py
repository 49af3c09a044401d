# Overview: Product catalog and SKU resolution for the inventory ledger.

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Callable, Iterable, Mapping

from ..time_utils import utcnow
from .entities import (
    LayerKind,
    NewProduct,
    Product,
    ProductOption,
    ProductUpdate,
    ProductVariant,
    Sku,
    SkuKey,
    StockLayer,
    VariantSpec,
    canonical_key,
    sku_identifier,
)
from .errors import InvalidInputError, NotFoundError, UnsupportedOperationError

"""
Catalog Invariants (authoritative)

- Product ids never change; name/category/flags/variants are editable.
- SKU identity is (product_id, canonical option key). Resolution sorts the
  selection by variant name before comparing, so selection order never matters.
- A product without variants always owns a default SKU (empty key).
- A non-tracked product carries its price on STANDING_PRICE layers: one per
  (SKU, store), zero quantity, never consumed.
- Editing variants never rewrites existing SKUs; their option mapping is kept
  and only the human-readable identifier is re-derived.
"""

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = (
    "Electronics",
    "Groceries",
    "Clothing",
    "Books",
    "Home Goods",
    "Toys",
    "Sports",
    "Automotive",
    "Health",
    "Beauty",
    "Services",
    "Other",
)

STANDING_PRICE_BILL_ID = "STANDING_PRICE"


def new_id() -> str:
    return uuid.uuid4().hex


def _clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _require_price(value: int | None, field_name: str) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"{field_name} must be an integer number of cents")
    if value < 0:
        raise InvalidInputError(f"{field_name} must be >= 0")


def standing_layer_for(sku: Sku, store_id: str | None) -> StockLayer | None:
    """Standing-price layer for this store, falling back to the first one on the SKU."""
    standing = [layer for layer in sku.layers if layer.kind == LayerKind.STANDING_PRICE]
    for layer in standing:
        if layer.store_id == store_id:
            return layer
    return standing[0] if standing else None


def apply_standing_price(
    sku: Sku,
    store_id: str | None,
    *,
    cost_cents: int | None,
    sell_price_cents: int | None,
    received_at: datetime,
    layer_id: str,
) -> StockLayer:
    """Create or update the standing-price layer of a non-tracked SKU for one store."""
    _require_price(cost_cents, "standing_cost_cents")
    _require_price(sell_price_cents, "standing_sell_price_cents")

    for layer in sku.layers:
        if layer.kind == LayerKind.STANDING_PRICE and layer.store_id == store_id:
            if cost_cents is not None:
                layer.unit_cost_cents = cost_cents
            if sell_price_cents is not None:
                layer.unit_sell_price_cents = sell_price_cents
            return layer

    layer = StockLayer(
        id=layer_id,
        bill_id=STANDING_PRICE_BILL_ID,
        received_at=received_at,
        initial_quantity=0,
        remaining_quantity=0,
        unit_cost_cents=cost_cents or 0,
        unit_sell_price_cents=sell_price_cents or 0,
        store_id=store_id,
        kind=LayerKind.STANDING_PRICE,
    )
    sku.layers.append(layer)
    return layer


class Catalog:
    """Owns products, their variants and SKUs, plus the category list."""

    def __init__(
        self,
        *,
        id_factory: Callable[[], str] = new_id,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.products: dict[str, Product] = {}
        self.categories: list[str] = sorted(DEFAULT_CATEGORIES)
        self._new_id = id_factory
        self._clock = clock

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get_product(self, product_id: str) -> Product:
        product = self.products.get(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found", {"product_id": product_id})
        return product

    def find_product_by_name(self, name: str) -> Product | None:
        target = (name or "").strip().lower()
        for product in self.products.values():
            if product.name.lower() == target:
                return product
        return None

    def list_products(self) -> list[Product]:
        return list(self.products.values())

    def search_products(self, term: str | None) -> list[Product]:
        """Case-insensitive substring match on name, category, sku_code and SKU identifiers."""
        if not term:
            return []
        needle = term.lower()
        results = []
        for product in self.products.values():
            haystack = [product.name, product.category, product.sku_code]
            haystack.extend(sku.identifier for sku in product.skus)
            if any(value and needle in value.lower() for value in haystack):
                results.append(product)
        return results

    def locate_sku(self, sku_id: str) -> tuple[Product, Sku]:
        for product in self.products.values():
            sku = product.get_sku(sku_id)
            if sku is not None:
                return product, sku
        raise NotFoundError(f"SKU {sku_id} not found", {"sku_id": sku_id})

    def iter_skus(self) -> Iterable[tuple[Product, Sku]]:
        for product in self.products.values():
            for sku in product.skus:
                yield product, sku

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    def add_category(self, name: str) -> str:
        cleaned = _clean_text(name)
        if cleaned is None:
            raise InvalidInputError("Category name is required")
        for existing in self.categories:
            if existing.lower() == cleaned.lower():
                return existing
        self.categories.append(cleaned)
        self.categories.sort()
        return cleaned

    def search_categories(self, term: str | None) -> list[str]:
        if not term:
            return sorted(self.categories)
        needle = term.lower()
        return sorted(c for c in self.categories if needle in c.lower())

    # -------------------------------------------------------------------------
    # Products
    # -------------------------------------------------------------------------

    def _build_variants(
        self,
        specs: Iterable[VariantSpec],
        existing: list[ProductVariant] | None = None,
    ) -> list[ProductVariant]:
        """Validate variant specs, reusing ids of variants/options that survive an edit."""
        existing = existing or []
        variants: list[ProductVariant] = []
        seen_names: set[str] = set()

        for spec in specs:
            name = _clean_text(spec.name)
            if name is None:
                raise InvalidInputError("Variant name is required")
            if name in seen_names:
                raise InvalidInputError(f"Duplicate variant name: {name}")
            seen_names.add(name)

            values = [_clean_text(v) for v in spec.options]
            if not values or any(v is None for v in values):
                raise InvalidInputError(f"Variant {name} needs at least one non-blank option")
            if len(set(values)) != len(values):
                raise InvalidInputError(f"Variant {name} has duplicate options")

            previous = next((v for v in existing if v.name == name), None)
            previous_options = {o.value: o.id for o in previous.options} if previous else {}
            variants.append(
                ProductVariant(
                    id=previous.id if previous else self._new_id(),
                    name=name,
                    options=[
                        ProductOption(id=previous_options.get(v) or self._new_id(), value=v)
                        for v in values
                    ],
                )
            )
        return variants

    def add_product(self, spec: NewProduct) -> Product:
        name = _clean_text(spec.name)
        if name is None:
            raise InvalidInputError("Product name is required")
        _require_price(spec.standing_cost_cents, "standing_cost_cents")
        _require_price(spec.standing_sell_price_cents, "standing_sell_price_cents")

        product = Product(
            id=self._new_id(),
            name=name,
            track_quantity=bool(spec.track_quantity),
            category=_clean_text(spec.category),
            sku_code=_clean_text(spec.sku_code),
            description=_clean_text(spec.description),
            variants=self._build_variants(spec.variants),
        )

        if not product.variants:
            default_sku = self.create_sku(product, ())
            if not product.track_quantity:
                apply_standing_price(
                    default_sku,
                    None,
                    cost_cents=spec.standing_cost_cents or 0,
                    sell_price_cents=spec.standing_sell_price_cents or 0,
                    received_at=self._clock(),
                    layer_id=self._new_id(),
                )

        self.products[product.id] = product
        if product.category:
            product.category = self.add_category(product.category)

        logger.info(
            "Product created id=%s name=%r tracked=%s variants=%d",
            product.id, product.name, product.track_quantity, len(product.variants),
        )
        return product

    def update_product(self, product_id: str, update: ProductUpdate) -> Product:
        product = self.get_product(product_id)

        name = None
        if update.name is not None:
            name = _clean_text(update.name)
            if name is None:
                raise InvalidInputError("Product name cannot be blank")
        _require_price(update.standing_cost_cents, "standing_cost_cents")
        _require_price(update.standing_sell_price_cents, "standing_sell_price_cents")
        variants = None
        if update.variants is not None:
            variants = self._build_variants(update.variants, product.variants)

        tracking_changed = (
            update.track_quantity is not None and update.track_quantity != product.track_quantity
        )
        if tracking_changed and not update.track_quantity:
            remaining = sum(
                layer.remaining_quantity
                for sku in product.skus
                for layer in sku.layers
                if layer.kind != LayerKind.STANDING_PRICE
            )
            if remaining > 0:
                raise UnsupportedOperationError(
                    "Cannot stop tracking quantity while stock remains",
                    {"product_id": product_id, "remaining_quantity": remaining},
                )

        # all checks passed; apply
        if name is not None:
            product.name = name
        if tracking_changed:
            if update.track_quantity:
                for sku in product.skus:
                    sku.layers = [l for l in sku.layers if l.kind != LayerKind.STANDING_PRICE]
            product.track_quantity = update.track_quantity
        if variants is not None:
            product.variants = variants
        if update.category is not None:
            category = _clean_text(update.category)
            product.category = self.add_category(category) if category else None
        if update.sku_code is not None:
            product.sku_code = _clean_text(update.sku_code)
        if update.description is not None:
            product.description = _clean_text(update.description)

        for sku in product.skus:
            sku.identifier = sku_identifier(product.name, sku.key)

        if not product.variants and product.find_sku(()) is None:
            self.create_sku(product, ())
            product.skus.insert(0, product.skus.pop())

        if not product.track_quantity and not product.variants:
            default_sku = product.find_sku(())
            has_standing = any(l.kind == LayerKind.STANDING_PRICE for l in default_sku.layers)
            if (
                not has_standing
                or update.standing_cost_cents is not None
                or update.standing_sell_price_cents is not None
            ):
                apply_standing_price(
                    default_sku,
                    None,
                    cost_cents=update.standing_cost_cents,
                    sell_price_cents=update.standing_sell_price_cents,
                    received_at=self._clock(),
                    layer_id=self._new_id(),
                )

        logger.info("Product updated id=%s", product.id)
        return product

    def remove_product(self, product_id: str) -> Product:
        product = self.get_product(product_id)
        del self.products[product_id]
        logger.info("Product deleted id=%s name=%r", product.id, product.name)
        return product

    # -------------------------------------------------------------------------
    # SKU resolution
    # -------------------------------------------------------------------------

    def validate_selection(self, product: Product, key: SkuKey, *, complete: bool = False) -> None:
        """
        A new SKU may only name defined variants and their defined options.

        With complete=True every variant of the product must be chosen.
        """
        for name, value in key:
            variant = product.get_variant(name)
            if variant is None:
                raise InvalidInputError(
                    f"Product {product.name} has no variant {name!r}",
                    {"product_id": product.id, "variant": name},
                )
            if value not in variant.option_values():
                raise InvalidInputError(
                    f"Variant {name!r} of {product.name} has no option {value!r}",
                    {"product_id": product.id, "variant": name, "option": value},
                )
        if complete:
            missing = [v.name for v in product.variants if v.name not in dict(key)]
            if missing:
                raise InvalidInputError(
                    f"Choose an option for {', '.join(missing)} of {product.name}",
                    {"product_id": product.id, "missing_variants": missing},
                )

    def find_sku(self, product_id: str, option_values: Mapping[str, str] | None) -> Sku | None:
        product = self.get_product(product_id)
        return product.find_sku(canonical_key(option_values))

    def create_sku(self, product: Product, key: SkuKey) -> Sku:
        sku = Sku(
            id=self._new_id(),
            product_id=product.id,
            option_values=dict(key),
            identifier=sku_identifier(product.name, key),
        )
        product.skus.append(sku)
        logger.debug("SKU created id=%s identifier=%r", sku.id, sku.identifier)
        return sku

    def resolve_or_create_sku(self, product_id: str, option_values: Mapping[str, str] | None) -> Sku:
        product = self.get_product(product_id)
        key = canonical_key(option_values)
        sku = product.find_sku(key)
        if sku is not None:
            return sku
        self.validate_selection(product, key)
        return self.create_sku(product, key)
