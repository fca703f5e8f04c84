"""
Sales operations reports: leaderboards, operational efficiency, branch
comparison and peak trading hours.
"""

from bizpulse.engine.metrics import percentage, round2, safe_divide
from bizpulse.engine.windows import trailing_window
from bizpulse.exceptions import InvalidReportParameter
from bizpulse.models.enums import Collection, TransactionStatus
from bizpulse.storage.query import Avg, Count, First, Sum

from .base import BaseReportService, ReportContext

BRANCH_SORT_FIELDS = ("revenue", "invoiceCount", "avgBasketValue")
PEAK_HOURS_DAYS = 30


class SalesReportService(BaseReportService):

    def leaderboards(self, ctx: ReportContext) -> dict:
        """Top five customers by spend and top five products by units sold."""
        customers_spec = self._spec(
            Collection.SALES,
            filters=(("customer_id", "exists", True),),
            totalSpent=Sum("total_amount"),
            transactions=Count(),
        )
        products_spec = self._spec(
            Collection.SALES,
            unwind="items",
            name=First("items.name"),
            soldQty=Sum("items.quantity"),
            revenue=Sum("items.line_total"),
        )
        tenant, branch, window = ctx.tenant_id, ctx.branch_id, ctx.window
        r = self.engine.run_concurrently(
            {
                "customers": lambda: self.engine.breakdown(
                    tenant, branch, window, customers_spec, {"customer_id": "customer_id"},
                    sort=("-totalSpent", "customer_id"), limit=5,
                ),
                "products": lambda: self.engine.breakdown(
                    tenant, branch, window, products_spec, {"product_id": "items.product_id"},
                    sort=("-soldQty", "product_id"), limit=5,
                ),
                "directory": lambda: self._customers(tenant),
            }
        )

        top_customers = []
        for row in r["customers"]:
            customer = r["directory"].get(row["customer_id"], {})
            top_customers.append(
                {
                    "customerId": row["customer_id"],
                    "name": customer.get("name"),
                    "phone": customer.get("phone"),
                    "totalSpent": round2(row["totalSpent"]),
                    "transactions": row["transactions"],
                }
            )
        top_products = [
            {
                "productId": row["product_id"],
                "name": row["name"],
                "soldQty": row["soldQty"],
                "revenue": round2(row["revenue"]),
            }
            for row in r["products"]
        ]
        return {"topCustomers": top_customers, "topProducts": top_products}

    def operational(self, ctx: ReportContext) -> dict:
        """
        Discounting, cancellations, order value and staff revenue.

        Cancelled sales are counted toward the cancellation rate but never
        summed into revenue.
        """
        cancelled = TransactionStatus.CANCELLED.value
        all_orders = self._spec(
            Collection.SALES,
            active_only=False,
            totalOrders=Count(),
            cancelledOrders=Sum(lambda row: 1 if row.get("status") == cancelled else 0),
        )
        active = self._spec(
            Collection.SALES,
            totalDiscount=Sum("discount_total"),
            revenue=Sum("total_amount"),
            count=Count(),
        )
        staff = self._spec(
            Collection.SALES,
            filters=(("created_by", "exists", True),),
            revenue=Sum("total_amount"),
            count=Count(),
        )
        tenant, branch, window = ctx.tenant_id, ctx.branch_id, ctx.window
        r = self.engine.run_concurrently(
            {
                "orders": lambda: self.engine.aggregate(tenant, branch, window, all_orders),
                "active": lambda: self.engine.aggregate(tenant, branch, window, active),
                "staff": lambda: self.engine.breakdown(
                    tenant, branch, window, staff, {"staffId": "created_by"},
                    sort=("-revenue", "staffId"), limit=5,
                ),
            }
        )

        orders, sold = r["orders"], r["active"]
        return {
            "discountMetrics": {
                "totalDiscount": round2(sold["totalDiscount"]),
                "discountRate": percentage(sold["totalDiscount"], sold["revenue"]),
            },
            "orderEfficiency": {
                "totalOrders": orders["totalOrders"],
                "cancelledOrders": orders["cancelledOrders"],
                "cancellationRate": percentage(orders["cancelledOrders"], orders["totalOrders"]),
                "averageOrderValue": round2(safe_divide(sold["revenue"], sold["count"])),
            },
            "topStaff": [
                {"staffId": s["staffId"], "revenue": round2(s["revenue"]), "count": s["count"]}
                for s in r["staff"]
            ],
        }

    def branch_comparison(self, ctx: ReportContext) -> list[dict]:
        """Revenue per branch across the whole tenant."""
        sort_by = ctx.params.get("group_by") or "revenue"
        if sort_by not in BRANCH_SORT_FIELDS:
            raise InvalidReportParameter(f"Cannot rank branches by {sort_by}", group_by=sort_by)
        limit = self._positive_int(ctx, "limit", 10)

        spec = self._spec(
            Collection.SALES,
            revenue=Sum("total_amount"),
            invoiceCount=Count(),
            avgBasketValue=Avg("total_amount"),
        )
        rows = self.engine.breakdown(
            ctx.tenant_id, None, ctx.window, spec, {"branchId": "branch_id"},
            sort=(f"-{sort_by}", "branchId"), limit=limit,
        )
        return [
            {
                "branchId": row["branchId"],
                "revenue": round2(row["revenue"]),
                "invoiceCount": row["invoiceCount"],
                "avgBasketValue": round2(row["avgBasketValue"]),
            }
            for row in rows
        ]

    def peak_hours(self, ctx: ReportContext) -> list[dict]:
        """Transaction counts by ISO weekday (1 = Monday) and hour over the last 30 days."""
        window = trailing_window(ctx.now, days=PEAK_HOURS_DAYS)
        spec = self._spec(Collection.SALES, count=Count())
        return self.engine.breakdown(
            ctx.tenant_id, ctx.branch_id, window, spec,
            {
                "day": lambda row: row["timestamp"].isoweekday(),
                "hour": lambda row: row["timestamp"].hour,
            },
            sort=("day", "hour"),
        )
