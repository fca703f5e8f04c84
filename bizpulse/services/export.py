"""
Flat export rows for sales, inventory and customers.

Rendering to CSV or PDF is the caller's concern; rows here are plain dicts
with scalar values.
"""

from bizpulse.engine.aggregation import MetricSpec
from bizpulse.engine.inventory_signals import stock_level
from bizpulse.engine.metrics import round2
from bizpulse.exceptions import InvalidReportParameter
from bizpulse.models.enums import Collection, ExportType
from bizpulse.storage.query import Max, Query, Sum

from .base import BaseReportService, ReportContext

WALK_IN = "Walk-in"


def export_type_of(value) -> str:
    try:
        return ExportType(value).value
    except ValueError as e:
        raise InvalidReportParameter(
            "Invalid export type. Must be sales, inventory, or customers.", export_type=value
        ) from e


class ExportService(BaseReportService):

    def rows(self, ctx: ReportContext) -> list[dict]:
        export_type = export_type_of(ctx.params.get("export_type"))
        if export_type == ExportType.SALES.value:
            return self._sales(ctx)
        if export_type == ExportType.INVENTORY.value:
            return self._inventory(ctx)
        return self._customers_rows(ctx)

    def _sales(self, ctx: ReportContext) -> list[dict]:
        spec = MetricSpec(Collection.SALES.value, {}, active_only=False)
        query = self.engine.base_query(ctx.tenant_id, ctx.branch_id, ctx.window, spec)
        sales = self.store.execute(query.sort("-timestamp", "id"))
        directory = self._customers(ctx.tenant_id)
        out = []
        for sale in sales:
            customer = directory.get(sale.get("customer_id") or "", {})
            out.append(
                {
                    "date": sale["timestamp"].date().isoformat(),
                    "invoice_number": sale.get("invoice_number") or "",
                    "customer": customer.get("name") or WALK_IN,
                    "status": sale.get("status"),
                    "total_amount": round2(sale["total_amount"]),
                    "paid_amount": round2(sale["total_amount"] - sale.get("due_amount", 0)),
                    "due_amount": round2(sale.get("due_amount", 0)),
                    "items_count": len(sale.get("items") or []),
                }
            )
        return out

    def _inventory(self, ctx: ReportContext) -> list[dict]:
        """Current stock of active products; not time-scoped."""
        return [
            {
                "name": p.get("name"),
                "sku": p.get("sku") or "",
                "category": p.get("category") or "-",
                "selling_price": round2(p.get("selling_price", 0)),
                "purchase_price": round2(p.get("purchase_price", 0)),
                "total_stock": stock_level(p, ctx.branch_id),
            }
            for p in self._products(ctx.tenant_id)
            if p.get("is_active", True)
        ]

    def _customers_rows(self, ctx: ReportContext) -> list[dict]:
        query = Query(Collection.CUSTOMERS.value).scope(ctx.tenant_id)
        if ctx.window is not None:
            query = query.between("created_at", ctx.window.start, ctx.window.end, ctx.window.closed)
        spec = MetricSpec(
            Collection.SALES.value,
            {"total": Sum("total_amount"), "last": Max("timestamp")},
            filters=(("customer_id", "exists", True),),
        )
        r = self.engine.run_concurrently(
            {
                "customers": lambda: self.store.execute(query.sort("name", "id")),
                "purchases": lambda: self.engine.breakdown(
                    ctx.tenant_id, None, None, spec, {"customer_id": "customer_id"}
                ),
            }
        )
        totals = {row["customer_id"]: row for row in r["purchases"]}
        out = []
        for c in r["customers"]:
            purchases = totals.get(c["id"], {})
            last = purchases.get("last")
            out.append(
                {
                    "name": c.get("name"),
                    "type": c.get("customer_type"),
                    "phone": c.get("phone") or "",
                    "email": c.get("email") or "-",
                    "outstanding_balance": round2(c.get("outstanding_balance", 0)),
                    "total_purchases": round2(purchases.get("total", 0)),
                    "last_purchase": last.date().isoformat() if last else "",
                }
            )
        return out
