# Overview: Flask API routes for per-SKU stock and cost-layer queries.

from flask import Blueprint, g, jsonify, request

from ..decorators import json_errors, request_store_scope, require_org
from ..services import ledger_service
from ..validation import coerce_bool

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/orgs/<int:org_id>/inventory")


@inventory_bp.get("/skus/<sku_id>")
@require_org
@json_errors
def sku_summary(org_id: int, sku_id: str):
    store_id = request_store_scope(request.args, g.org_id)
    return jsonify(ledger_service.get_ledger(g.org_id).sku_summary(sku_id, store_id)), 200


@inventory_bp.get("/skus/<sku_id>/layers")
@require_org
@json_errors
def sku_layers(org_id: int, sku_id: str):
    store_id = request_store_scope(request.args, g.org_id)
    include_standing = coerce_bool(request.args.get("include_standing", "false"), "include_standing")
    layers = ledger_service.get_ledger(g.org_id).sku_layer_dicts(sku_id, store_id, include_standing=include_standing)
    return jsonify(layers), 200
