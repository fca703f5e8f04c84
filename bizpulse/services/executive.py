"""
Executive dashboard reports: headline KPIs and the income/expense timeline.
"""

from bizpulse.engine.aggregation import cumulative_scan, line_profit, timeline_summary
from bizpulse.engine.metrics import growth, margin, profit_status, round2
from bizpulse.engine.windows import previous_window, today_window
from bizpulse.models.enums import Collection
from bizpulse.storage.query import Count, CountDistinct, Sum

from .base import BaseReportService, ReportContext


class ExecutiveReportService(BaseReportService):
    """Headline revenue, expense, profit and customer metrics."""

    def stats(self, ctx: ReportContext) -> dict:
        """
        Current-window KPIs with growth against the preceding window.

        Eight independent aggregations run concurrently: current, previous
        and today's sales totals, current sale lines, current and previous
        purchases, distinct buying customers and newly created customers.
        """
        window = ctx.window
        prev = previous_window(window)
        today = today_window(ctx.now)
        tenant, branch = ctx.tenant_id, ctx.branch_id
        agg = self.engine.aggregate

        sales = self._spec(
            Collection.SALES, revenue=Sum("total_amount"), count=Count(), due=Sum("due_amount")
        )
        sales_lines = self._spec(
            Collection.SALES,
            unwind="items",
            sold=Sum("items.quantity"),
            unique=CountDistinct("items.product_id"),
            profit=Sum(line_profit),
        )
        purchases = self._spec(
            Collection.PURCHASES, expense=Sum("total_amount"), count=Count(), due=Sum("due_amount")
        )
        buyers = self._spec(Collection.SALES, active=CountDistinct("customer_id"))
        signups = self._spec(Collection.CUSTOMERS, new=Count())

        r = self.engine.run_concurrently(
            {
                "sales_current": lambda: agg(tenant, branch, window, sales),
                "sales_previous": lambda: agg(tenant, branch, prev, sales),
                "sales_today": lambda: agg(tenant, branch, today, sales),
                "lines_current": lambda: agg(tenant, branch, window, sales_lines),
                "purchases_current": lambda: agg(tenant, branch, window, purchases),
                "purchases_previous": lambda: agg(tenant, branch, prev, purchases),
                "customers_active": lambda: agg(tenant, branch, window, buyers),
                # Customers are tenant-wide records with no branch.
                "customers_new": lambda: agg(tenant, None, window, signups),
            }
        )

        cur = r["sales_current"]
        lines = r["lines_current"]
        purch = r["purchases_current"]
        profit = lines["profit"]

        return {
            "revenue": {
                "value": round2(cur["revenue"]),
                "count": cur["count"],
                "growth": growth(cur["revenue"], r["sales_previous"]["revenue"]),
                "today": round2(r["sales_today"]["revenue"]),
            },
            "expense": {
                "value": round2(purch["expense"]),
                "count": purch["count"],
                "growth": growth(purch["expense"], r["purchases_previous"]["expense"]),
            },
            "profit": {
                "value": round2(profit),
                "margin": margin(profit, cur["revenue"]),
                "status": profit_status(profit),
            },
            "customers": {
                "active": r["customers_active"]["active"],
                "new": r["customers_new"]["new"],
            },
            "products": {"sold": lines["sold"], "unique": lines["unique"]},
            "outstanding": {
                "receivables": round2(cur["due"]),
                "payables": round2(purch["due"]),
            },
            "period": {
                "start": window.start.isoformat(),
                "end": window.end.isoformat(),
                "previousStart": prev.start.isoformat(),
                "previousEnd": prev.end.isoformat(),
            },
        }

    def chart(self, ctx: ReportContext) -> dict:
        buckets = cumulative_scan(
            self.engine.timeline(ctx.tenant_id, ctx.branch_id, ctx.window, ctx.interval)
        )
        return {
            "timeline": buckets,
            "summary": timeline_summary(buckets),
            "interval": ctx.interval,
            "period": ctx.window.to_dict(),
        }
