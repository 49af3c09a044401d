# Overview: Flask API routes for organization stores; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import json_errors, require_org
from ..services import tenant_service
from ..validation import STORE_POLICY, check_payload, coerce_text

stores_bp = Blueprint("stores", __name__, url_prefix="/api/orgs/<int:org_id>/stores")


@stores_bp.get("")
@require_org
@json_errors
def list_stores(org_id: int):
    stores = tenant_service.list_stores(g.org_id)
    return jsonify([store.to_dict() for store in stores]), 200


@stores_bp.post("")
@require_org
@json_errors
def create_store(org_id: int):
    data = check_payload(request.get_json(silent=True), STORE_POLICY, partial=False)
    store = tenant_service.create_store(
        g.org_id,
        coerce_text(data.get("name"), "name"),
        code=coerce_text(data.get("code"), "code", max_length=32),
        location=coerce_text(data.get("location"), "location"),
        phone=coerce_text(data.get("phone"), "phone", max_length=64),
        email=coerce_text(data.get("email"), "email"),
    )
    return jsonify(store.to_dict()), 201
