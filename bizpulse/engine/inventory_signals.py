"""
Inventory health signals and receivables aging.

Functions here work on product and sale records already fetched by the
aggregation engine, so they are pure and easy to test in isolation.
"""

from datetime import datetime
from typing import Iterable, Optional

from .metrics import round2, stock_urgency, turnover_interpretation

AGING_BUCKETS = [
    (0, 31, "0-30 Days"),
    (31, 61, "31-60 Days"),
    (61, 91, "61-90 Days"),
    (91, None, "91+ Days"),
]


def inventory_rows(product: dict, branch_id: Optional[str] = None) -> list[dict]:
    """Per-branch inventory entries of a product, optionally restricted to one branch."""
    rows = product.get("inventory") or []
    if branch_id:
        rows = [row for row in rows if row.get("branch_id") == branch_id]
    return rows


def stock_level(product: dict, branch_id: Optional[str] = None) -> float:
    return sum(row.get("quantity", 0) for row in inventory_rows(product, branch_id))


def dead_stock(
    products: Iterable[dict],
    sold_product_ids: set,
    days_threshold: int,
    branch_id: Optional[str] = None,
) -> list[dict]:
    """
    Active products holding stock that did not sell within the threshold.

    Returns:
        Rows sorted by tied-up value, highest first
    """
    rows = []
    for product in products:
        if not product.get("is_active", True) or product["id"] in sold_product_ids:
            continue
        quantity = stock_level(product, branch_id)
        if quantity <= 0:
            continue
        rows.append(
            {
                "product_id": product["id"],
                "name": product.get("name"),
                "sku": product.get("sku"),
                "category": product.get("category"),
                "quantity": quantity,
                "value": round2(quantity * product.get("purchase_price", 0)),
                "days_inactive": days_threshold,
            }
        )
    rows.sort(key=lambda r: (-r["value"], r["product_id"]))
    return rows


def stockout_run_rate(
    products: Iterable[dict],
    units_sold: dict[str, float],
    window_days: int = 30,
    horizon_days: int = 14,
    branch_id: Optional[str] = None,
) -> list[dict]:
    """
    Products projected to run out within `horizon_days`.

    Velocity is units sold in the trailing window divided by its length.
    Products with no stock or no sales are skipped.

    Returns:
        Rows sorted by days until stockout, most urgent first
    """
    predictions = []
    for product in products:
        if not product.get("is_active", True):
            continue
        stock = stock_level(product, branch_id)
        velocity = units_sold.get(product["id"], 0) / window_days
        if velocity <= 0 or stock <= 0:
            continue
        days_left = stock / velocity
        if days_left <= horizon_days:
            predictions.append(
                {
                    "product_id": product["id"],
                    "name": product.get("name"),
                    "current_stock": stock,
                    "daily_velocity": round2(velocity),
                    "days_until_stockout": round(days_left),
                    "_days": days_left,
                }
            )
    predictions.sort(key=lambda p: (p["_days"], p["product_id"]))
    for p in predictions:
        del p["_days"]
    return predictions


def days_overdue(invoice: dict, now: datetime) -> float:
    reference = invoice.get("due_date") or invoice["timestamp"]
    return max(0.0, (now - reference).total_seconds() / 86400)


def aging_label(days: float) -> str:
    for lower, upper, label in AGING_BUCKETS:
        if days >= lower and (upper is None or days < upper):
            return label
    return AGING_BUCKETS[0][2]


def debtor_aging(invoices: Iterable[dict], now: datetime) -> list[dict]:
    """
    Outstanding receivables bucketed by days overdue.

    Days are measured from the due date, or the invoice date when no due date
    was set. Invoices not yet due count as 0 days. Every bucket is returned,
    in order, even when empty.
    """
    totals = {label: {"range": label, "amount": 0.0, "count": 0} for _, _, label in AGING_BUCKETS}
    for invoice in invoices:
        due = invoice.get("due_amount", 0)
        if due <= 0:
            continue
        bucket = totals[aging_label(days_overdue(invoice, now))]
        bucket["amount"] += due
        bucket["count"] += 1
    return [{**b, "amount": round2(b["amount"])} for b in totals.values()]


def low_stock_alerts(products: Iterable[dict], branch_id: Optional[str] = None, limit: int = 20) -> list[dict]:
    """Inventory entries at or below their reorder level, critical ones first."""
    alerts = []
    for product in products:
        if not product.get("is_active", True):
            continue
        for row in inventory_rows(product, branch_id):
            urgency = stock_urgency(row.get("quantity", 0), row.get("reorder_level", 0))
            if urgency is None:
                continue
            alerts.append(
                {
                    "product_id": product["id"],
                    "name": product.get("name"),
                    "sku": product.get("sku"),
                    "branch_id": row.get("branch_id"),
                    "currentStock": row.get("quantity", 0),
                    "reorderLevel": row.get("reorder_level", 0),
                    "urgency": urgency,
                }
            )
    alerts.sort(key=lambda a: (a["urgency"] != "critical", a["currentStock"], a["product_id"]))
    return alerts[:limit]


def valuation(products: Iterable[dict], branch_id: Optional[str] = None) -> dict:
    total_value = 0.0
    total_items = 0.0
    product_count = 0
    for product in products:
        if not product.get("is_active", True):
            continue
        rows = inventory_rows(product, branch_id)
        if not rows:
            continue
        quantity = sum(row.get("quantity", 0) for row in rows)
        total_value += quantity * product.get("purchase_price", 0)
        total_items += quantity
        product_count += 1
    return {"totalValue": round2(total_value), "totalItems": total_items, "productCount": product_count}


def inventory_turnover(
    products: Iterable[dict],
    units_sold: dict[str, float],
    branch_id: Optional[str] = None,
) -> dict:
    """
    Quarterly turnover annualised: COGS over current stock value, times four.

    COGS uses each product's current purchase price; only products sold in
    the period contribute to either side.
    """
    cogs = 0.0
    stock_value = 0.0
    for product in products:
        sold = units_sold.get(product["id"])
        if not sold:
            continue
        price = product.get("purchase_price", 0)
        cogs += sold * price
        stock_value += stock_level(product, branch_id) * price

    ratio = round2(cogs / stock_value * 4) if stock_value > 0 else 0.0
    return {
        "turnover": ratio,
        "cogs": round2(cogs),
        "avgInventoryValue": round2(stock_value),
        "interpretation": turnover_interpretation(ratio),
    }
