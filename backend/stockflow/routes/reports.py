# Overview: Flask API routes for dashboard reports; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import json_errors, request_store_scope, require_org
from ..services import ledger_service
from ..validation import coerce_int

reports_bp = Blueprint("reports", __name__, url_prefix="/api/orgs/<int:org_id>/reports")


def _int_arg(name: str, default: int, *, minimum: int = 1, maximum: int = 366) -> int:
    return coerce_int(request.args.get(name, default), name, minimum=minimum, maximum=maximum)


@reports_bp.get("/low-stock")
@require_org
@json_errors
def low_stock(org_id: int):
    threshold = _int_arg(
        "threshold", current_app.config.get("LOW_STOCK_THRESHOLD", 10), maximum=1_000_000,
    )
    store_id = request_store_scope(request.args, g.org_id)
    ledger = ledger_service.get_ledger(g.org_id)
    items = ledger.low_stock_items(threshold, store_id)
    return jsonify({"threshold": threshold, "count": len(items), "items": items}), 200


@reports_bp.get("/inventory-valuation")
@require_org
@json_errors
def inventory_valuation(org_id: int):
    store_id = request_store_scope(request.args, g.org_id)
    return jsonify(ledger_service.get_ledger(g.org_id).inventory_valuation(store_id)), 200


@reports_bp.get("/daily")
@require_org
@json_errors
def daily_sales_and_expenses(org_id: int):
    days = _int_arg("days", 7)
    store_id = request_store_scope(request.args, g.org_id)
    rows = ledger_service.get_ledger(g.org_id).daily_sales_and_expenses(days, store_id=store_id)
    return jsonify(rows), 200


@reports_bp.get("/top-selling")
@require_org
@json_errors
def top_selling(org_id: int):
    limit = _int_arg("limit", 5, maximum=100)
    store_id = request_store_scope(request.args, g.org_id)
    return jsonify(ledger_service.get_ledger(g.org_id).top_selling_products_by_revenue(limit, store_id)), 200


@reports_bp.get("/top-profitable")
@require_org
@json_errors
def top_profitable(org_id: int):
    limit = _int_arg("limit", 5, maximum=100)
    store_id = request_store_scope(request.args, g.org_id)
    return jsonify(ledger_service.get_ledger(g.org_id).top_profitable_products(limit, store_id)), 200


@reports_bp.get("/expense-coverage")
@require_org
@json_errors
def expense_coverage(org_id: int):
    limit = _int_arg("limit", 7, maximum=100)
    store_id = request_store_scope(request.args, g.org_id)
    rows = ledger_service.get_ledger(g.org_id).recent_expense_bills_with_coverage(limit, store_id)
    return jsonify(rows), 200


@reports_bp.get("/expense-summary")
@require_org
@json_errors
def expense_summary(org_id: int):
    store_id = request_store_scope(request.args, g.org_id)
    return jsonify(ledger_service.get_ledger(g.org_id).expense_summary(store_id)), 200


@reports_bp.get("/financial-summary")
@require_org
@json_errors
def financial_summary(org_id: int):
    store_id = request_store_scope(request.args, g.org_id)
    return jsonify(ledger_service.get_ledger(g.org_id).overall_financial_summary(store_id)), 200


@reports_bp.get("/today")
@require_org
@json_errors
def todays_summary(org_id: int):
    store_id = request_store_scope(request.args, g.org_id)
    return jsonify(ledger_service.get_ledger(g.org_id).todays_financial_summary(store_id=store_id)), 200
