# Overview: Read-only aggregations over committed bills and current stock.

from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable

from .catalog import Catalog
from .entities import Bill, BillType
from .stock import ANY_STORE, StockLedger

"""
Reports never mutate and never raise on missing data: absent data yields
zero/empty results. All money values are integer cents. Revenue is the sale
bill total; COGS is the exact cogs_cents recorded on each sale line.
"""


def _in_scope(bills: Iterable[Bill], store_id) -> list[Bill]:
    if store_id is ANY_STORE:
        return list(bills)
    return [b for b in bills if b.store_id == store_id]


def _of_type(bills: Iterable[Bill], bill_type: BillType) -> list[Bill]:
    return [b for b in bills if b.type == bill_type]


def _product_stock(stock: StockLedger, product, store_id) -> int:
    return sum(stock.total_stock(sku, store_id) or 0 for sku in product.skus)


# -----------------------------------------------------------------------------
# Stock
# -----------------------------------------------------------------------------


def low_stock_items(
    catalog: Catalog,
    stock: StockLedger,
    *,
    threshold: int,
    store_id=ANY_STORE,
) -> list[dict]:
    """Tracked products with 0 < total stock < threshold, lowest stock first."""
    rows = []
    for product in catalog.list_products():
        if not product.track_quantity:
            continue
        total = _product_stock(stock, product, store_id)
        if 0 < total < threshold:
            rows.append({"product_id": product.id, "name": product.name, "total_stock": total})
    rows.sort(key=lambda r: (r["total_stock"], r["name"].lower()))
    return rows


def low_stock_count(catalog: Catalog, stock: StockLedger, *, threshold: int, store_id=ANY_STORE) -> int:
    return len(low_stock_items(catalog, stock, threshold=threshold, store_id=store_id))


def inventory_valuation(catalog: Catalog, stock: StockLedger, *, store_id=ANY_STORE) -> dict:
    """Value of remaining tracked stock at layer cost, per SKU and in total."""
    skus = []
    total_units = 0
    total_value = 0
    for product, sku in catalog.iter_skus():
        if not product.track_quantity:
            continue
        units = stock.total_stock(sku, store_id) or 0
        value = stock.inventory_value(sku, store_id) or 0
        if units <= 0:
            continue
        skus.append(
            {
                "product_id": product.id,
                "sku_id": sku.id,
                "identifier": sku.identifier,
                "total_stock": units,
                "inventory_value_cents": value,
            }
        )
        total_units += units
        total_value += value
    return {
        "store_id": None if store_id is ANY_STORE else store_id,
        "total_units": total_units,
        "total_value_cents": total_value,
        "skus": skus,
    }


# -----------------------------------------------------------------------------
# Sales & expenses
# -----------------------------------------------------------------------------


def daily_sales_and_expenses(bills: Iterable[Bill], *, days: int, today: date, store_id=ANY_STORE) -> list[dict]:
    """One row per day for the last `days` days ending today, oldest first."""
    if days <= 0:
        return []
    start = today - timedelta(days=days - 1)
    totals = {start + timedelta(days=i): [0, 0] for i in range(days)}

    for bill in _in_scope(bills, store_id):
        day = bill.created_at.date()
        if day not in totals:
            continue
        if bill.type == BillType.SALE:
            totals[day][0] += bill.total_amount_cents
        elif bill.type == BillType.PURCHASE:
            totals[day][1] += bill.total_amount_cents

    return [
        {"date": day.isoformat(), "sales_cents": sales, "expenses_cents": expenses}
        for day, (sales, expenses) in sorted(totals.items())
    ]


def top_selling_products_by_revenue(bills: Iterable[Bill], *, limit: int, store_id=ANY_STORE) -> list[dict]:
    revenue: dict[str, int] = {}
    for bill in _of_type(_in_scope(bills, store_id), BillType.SALE):
        for item in bill.items:
            name = item.product_name or "Unknown Product"
            revenue[name] = revenue.get(name, 0) + item.revenue_cents
    rows = [{"name": name, "revenue_cents": cents} for name, cents in revenue.items()]
    rows.sort(key=lambda r: r["revenue_cents"], reverse=True)
    return rows[:limit]


def top_profitable_products(bills: Iterable[Bill], *, limit: int, store_id=ANY_STORE) -> list[dict]:
    """Realized revenue minus realized cost per SKU identifier, across all sale bills."""
    stats: dict[str, dict] = {}
    for bill in _of_type(_in_scope(bills, store_id), BillType.SALE):
        for item in bill.items:
            row = stats.setdefault(
                item.product_name,
                {"name": item.product_name, "revenue_cents": 0, "cogs_cents": 0, "profit_cents": 0},
            )
            row["revenue_cents"] += item.revenue_cents
            row["cogs_cents"] += item.cogs_cents
            row["profit_cents"] += item.revenue_cents - item.cogs_cents
    rows = sorted(stats.values(), key=lambda r: r["profit_cents"], reverse=True)
    return rows[:limit]


# -----------------------------------------------------------------------------
# Expense coverage
# -----------------------------------------------------------------------------


def _coverage(bill: Bill) -> dict:
    total_cost = bill.total_amount_cents
    potential = sum(item.unit_sell_price_cents * item.quantity for item in bill.items)
    return {
        "bill_id": bill.id,
        "created_at": bill.to_dict()["created_at"],
        "counterparty_name": bill.counterparty_name,
        "store_id": bill.store_id,
        "total_cost_cents": total_cost,
        "potential_revenue_cents": potential,
        "coverage_status": "covered" if potential >= total_cost else "uncovered",
    }


def recent_expense_bills_with_coverage(bills: Iterable[Bill], *, limit: int, store_id=ANY_STORE) -> list[dict]:
    """
    Newest purchase bills with their potential resale revenue.

    A purchase is covered when selling every unit at the sell price recorded on
    the same bill would recover its cost.
    """
    purchases = _of_type(_in_scope(bills, store_id), BillType.PURCHASE)
    purchases.sort(key=lambda b: b.created_at, reverse=True)
    return [_coverage(bill) for bill in purchases[:limit]]


def expense_summary(bills: Iterable[Bill], *, store_id=ANY_STORE) -> dict:
    summary = {
        "covered_expense_cents": 0,
        "uncovered_expense_cents": 0,
        "potential_profit_on_covered_cents": 0,
        "outstanding_cost_on_uncovered_cents": 0,
        "covered_bill_count": 0,
        "uncovered_bill_count": 0,
    }
    for bill in _of_type(_in_scope(bills, store_id), BillType.PURCHASE):
        row = _coverage(bill)
        cost = row["total_cost_cents"]
        potential = row["potential_revenue_cents"]
        if row["coverage_status"] == "covered":
            summary["covered_expense_cents"] += cost
            summary["potential_profit_on_covered_cents"] += potential - cost
            summary["covered_bill_count"] += 1
        else:
            summary["uncovered_expense_cents"] += cost
            summary["outstanding_cost_on_uncovered_cents"] += cost - potential
            summary["uncovered_bill_count"] += 1
    return summary


# -----------------------------------------------------------------------------
# Profit
# -----------------------------------------------------------------------------


def _financials(bills: list[Bill]) -> dict:
    revenue = 0
    cogs = 0
    expenses = 0
    for bill in bills:
        if bill.type == BillType.SALE:
            revenue += bill.total_amount_cents
            cogs += sum(item.cogs_cents for item in bill.items)
        elif bill.type == BillType.PURCHASE:
            expenses += bill.total_amount_cents
    gross = revenue - cogs
    return {
        "revenue_cents": revenue,
        "cogs_cents": cogs,
        "gross_profit_cents": gross,
        "expenses_cents": expenses,
        "net_profit_cents": gross - expenses,
    }


def overall_financial_summary(bills: Iterable[Bill], *, store_id=ANY_STORE) -> dict:
    return _financials(_in_scope(bills, store_id))


def todays_financial_summary(bills: Iterable[Bill], *, today: date, store_id=ANY_STORE) -> dict:
    todays = [b for b in _in_scope(bills, store_id) if b.created_at.date() == today]
    summary = _financials(todays)
    summary["date"] = today.isoformat()
    summary["transaction_count"] = len(todays)
    summary["defective_units_returned"] = sum(
        item.quantity
        for bill in _of_type(todays, BillType.RETURN)
        for item in bill.items
        if item.is_defective
    )
    return summary
