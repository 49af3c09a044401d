# Overview: Flask API routes for the product catalog, SKUs and categories.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import json_errors, request_store_scope, require_org
from ..ledger import NotFoundError
from ..services import ledger_service
from ..services.tenant_service import resolve_store_scope
from ..validation import (
    CATEGORY_POLICY,
    check_payload,
    coerce_option_map,
    coerce_text,
    parse_new_product,
    parse_product_update,
    parse_standing_price,
)

products_bp = Blueprint("products", __name__, url_prefix="/api/orgs/<int:org_id>")


@products_bp.get("/products")
@require_org
@json_errors
def list_products(org_id: int):
    term = (request.args.get("q") or "").strip()
    return jsonify(ledger_service.get_ledger(g.org_id).product_dicts(term or None)), 200


@products_bp.post("/products")
@require_org
@json_errors
def create_product(org_id: int):
    spec = parse_new_product(request.get_json(silent=True))
    product = ledger_service.mutate(g.org_id, lambda ledger: ledger.add_product(spec).to_dict())
    current_app.logger.info("Product %s created in org %s", product["id"], g.org_id)
    return jsonify(product), 201


@products_bp.get("/products/<product_id>")
@require_org
@json_errors
def get_product(org_id: int, product_id: str):
    store_id = request_store_scope(request.args, g.org_id)
    detail = ledger_service.get_ledger(g.org_id).product_detail(product_id, store_id)
    return jsonify(detail), 200


@products_bp.patch("/products/<product_id>")
@require_org
@json_errors
def update_product(org_id: int, product_id: str):
    update = parse_product_update(request.get_json(silent=True))
    product = ledger_service.mutate(g.org_id, lambda ledger: ledger.update_product(product_id, update).to_dict())
    return jsonify(product), 200


@products_bp.delete("/products/<product_id>")
@require_org
@json_errors
def delete_product(org_id: int, product_id: str):
    product = ledger_service.mutate(g.org_id, lambda ledger: ledger.delete_product(product_id))
    return jsonify({"deleted": product.id}), 200


@products_bp.get("/products/<product_id>/bills")
@require_org
@json_errors
def product_bills(org_id: int, product_id: str):
    bills = ledger_service.get_ledger(g.org_id).bills_for_product(product_id)
    return jsonify([b.to_dict() for b in bills]), 200


@products_bp.post("/products/<product_id>/skus/resolve")
@require_org
@json_errors
def resolve_sku(org_id: int, product_id: str):
    data = request.get_json(silent=True) or {}
    options = coerce_option_map(data.get("option_values"), "option_values")
    sku = ledger_service.mutate(g.org_id, lambda ledger: ledger.resolve_or_create_sku(product_id, options).to_dict())
    return jsonify(sku), 200


@products_bp.put("/products/<product_id>/skus/<sku_id>/standing-price")
@require_org
@json_errors
def set_standing_price(org_id: int, product_id: str, sku_id: str):
    data = parse_standing_price(request.get_json(silent=True))
    store_id = resolve_store_scope(data["store_id"], g.org_id)

    def _op(ledger):
        if ledger.get_product(product_id).get_sku(sku_id) is None:
            raise NotFoundError(
                f"SKU {sku_id} not found on product {product_id}",
                {"product_id": product_id, "sku_id": sku_id},
            )
        layer = ledger.set_standing_price(
            sku_id, store_id, cost_cents=data["cost_cents"], sell_price_cents=data["sell_price_cents"],
        )
        return layer.to_dict()

    return jsonify(ledger_service.mutate(g.org_id, _op)), 200


@products_bp.get("/categories")
@require_org
@json_errors
def list_categories(org_id: int):
    return jsonify(ledger_service.get_ledger(g.org_id).search_categories(request.args.get("q"))), 200


@products_bp.post("/categories")
@require_org
@json_errors
def add_category(org_id: int):
    data = check_payload(request.get_json(silent=True), CATEGORY_POLICY, partial=False)
    name = coerce_text(data.get("name"), "name")
    category = ledger_service.mutate(g.org_id, lambda ledger: ledger.add_category(name))
    return jsonify({"name": category}), 201
