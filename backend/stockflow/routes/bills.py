# Overview: Flask API routes for committing, listing and deleting bills.

from dataclasses import replace

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import json_errors, require_org
from ..services import ledger_service
from ..services.tenant_service import resolve_store_scope
from ..validation import coerce_int, parse_bill

bills_bp = Blueprint("bills", __name__, url_prefix="/api/orgs/<int:org_id>/bills")


@bills_bp.post("")
@require_org
@json_errors
def commit_bill(org_id: int):
    payload = parse_bill(request.get_json(silent=True))
    metadata = replace(payload.metadata, store_id=resolve_store_scope(payload.store_id, g.org_id))
    bill = ledger_service.mutate(
        g.org_id,
        lambda ledger: ledger.commit_bill(payload.type, payload.items, metadata),
    )
    current_app.logger.info("Bill %s committed in org %s", bill.id, g.org_id)
    return jsonify(bill.to_dict()), 201


@bills_bp.get("")
@require_org
@json_errors
def list_bills(org_id: int):
    default_limit = current_app.config.get("RECENT_BILLS_LIMIT", 20)
    limit = coerce_int(request.args.get("limit", default_limit), "limit", minimum=1, maximum=1000)
    bill_type = request.args.get("type") or None
    bills = ledger_service.get_ledger(g.org_id).recent_bills(limit=limit, bill_type=bill_type)
    return jsonify([b.to_dict() for b in bills]), 200


@bills_bp.get("/<bill_id>")
@require_org
@json_errors
def get_bill(org_id: int, bill_id: str):
    return jsonify(ledger_service.get_ledger(g.org_id).get_bill(bill_id).to_dict()), 200


@bills_bp.delete("/<bill_id>")
@require_org
@json_errors
def delete_bill(org_id: int, bill_id: str):
    bill = ledger_service.mutate(g.org_id, lambda ledger: ledger.delete_bill(bill_id))
    current_app.logger.info("Bill %s deleted in org %s", bill.id, g.org_id)
    return jsonify({"deleted": bill.id}), 200
