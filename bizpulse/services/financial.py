"""
Financial reports: cash flow, tax, gross profit, receivables aging,
revenue forecasts, customer lifetime value and payment habits.
"""

from datetime import datetime

from bizpulse.engine.aggregation import MetricSpec, line_cost
from bizpulse.engine.forecasting import advanced_forecast, linear_forecast
from bizpulse.engine.inventory_signals import debtor_aging
from bizpulse.engine.metrics import ltv_tier, payment_rating, percentage, round1, round2
from bizpulse.engine.windows import add_months, start_of_month, trailing_window
from bizpulse.exceptions import InvalidReportParameter
from bizpulse.models.enums import Collection, PaymentDirection
from bizpulse.storage.query import Avg, Count, DateBucket, Max, Min, Sum

from .base import BaseReportService, ReportContext


class FinancialReportService(BaseReportService):
    """Money-in/money-out reports over sales, purchases, payments and ledger entries."""

    def cash_flow(self, ctx: ReportContext) -> dict:
        """Inflow payments by method within the window, plus receivables aging."""
        inflows = self._spec(
            Collection.PAYMENTS,
            filters=(("direction", "eq", PaymentDirection.INFLOW.value),),
            value=Sum("amount"),
        )
        results = self.engine.run_concurrently(
            {
                "modes": lambda: self.engine.breakdown(
                    ctx.tenant_id, ctx.branch_id, ctx.window, inflows,
                    {"name": "method"}, sort=("-value", "name"),
                ),
                "aging": lambda: self.debtor_aging(ctx),
            }
        )
        return {
            "paymentModes": [{"name": m["name"], "value": round2(m["value"])} for m in results["modes"]],
            "agingReport": results["aging"],
        }

    def tax(self, ctx: ReportContext) -> dict:
        sales = self._spec(Collection.SALES, outputTax=Sum("tax_total"), taxableSales=Sum("subtotal"))
        purchases = self._spec(
            Collection.PURCHASES,
            inputTax=Sum("tax_total"),
            taxablePurchases=Sum(lambda r: r["total_amount"] - r.get("tax_total", 0)),
        )
        r = self.engine.run_concurrently(
            {
                "sales": lambda: self.engine.aggregate(ctx.tenant_id, ctx.branch_id, ctx.window, sales),
                "purchases": lambda: self.engine.aggregate(ctx.tenant_id, ctx.branch_id, ctx.window, purchases),
            }
        )
        output_tax = r["sales"]["outputTax"]
        input_tax = r["purchases"]["inputTax"]
        return {
            "outputTax": round2(output_tax),
            "inputTax": round2(input_tax),
            "netPayable": round2(output_tax - input_tax),
            "taxableSales": round2(r["sales"]["taxableSales"]),
            "taxablePurchases": round2(r["purchases"]["taxablePurchases"]),
        }

    def gross_profit(self, ctx: ReportContext) -> dict:
        """Line revenue against cost of goods sold at the snapshotted cost."""
        spec = self._spec(
            Collection.SALES,
            unwind="items",
            totalRevenue=Sum("items.line_total"),
            totalCOGS=Sum(line_cost),
        )
        totals = self.engine.aggregate(ctx.tenant_id, ctx.branch_id, ctx.window, spec)
        revenue = totals["totalRevenue"]
        cogs = totals["totalCOGS"]
        return {
            "totalRevenue": round2(revenue),
            "totalCOGS": round2(cogs),
            "grossProfit": round2(revenue - cogs),
            "marginPercent": percentage(revenue - cogs, revenue),
        }

    def debtor_aging(self, ctx: ReportContext) -> list[dict]:
        """Outstanding receivables of active sales, regardless of invoice date."""
        spec = self._spec(Collection.SALES, filters=(("due_amount", "gt", 0),))
        invoices = self._rows(
            ctx, spec, due_amount="due_amount", due_date="due_date", timestamp="timestamp"
        )
        return debtor_aging(invoices, ctx.now)

    # =========================================================================
    # Forecasting
    # =========================================================================

    def _monthly_revenue(self, ctx: ReportContext) -> list[dict]:
        window = trailing_window(ctx.now, months=self.settings.forecast_lookback_months, align_month=True)
        spec = self._spec(Collection.SALES, revenue=Sum("total_amount"))
        rows = self.engine.breakdown(
            ctx.tenant_id, ctx.branch_id, window, spec,
            {"period": DateBucket("timestamp", "month")}, sort=("period",),
        )
        return [{"period": row["period"], "revenue": round2(row["revenue"])} for row in rows]

    def forecast(self, ctx: ReportContext) -> dict:
        """Next month's revenue from a least-squares fit over recent months."""
        historical = self._monthly_revenue(ctx)
        prediction = linear_forecast([h["revenue"] for h in historical])
        return {
            "revenue": prediction["revenue"],
            "trend": prediction["trend"],
            "historical": historical,
        }

    def advanced_forecast(self, ctx: ReportContext) -> dict:
        periods = self._positive_int(ctx, "periods", 3)
        confidence = ctx.params.get("confidence", 0.95)
        try:
            confidence = float(confidence)
        except (TypeError, ValueError) as e:
            raise InvalidReportParameter("confidence must be a number", confidence=confidence) from e
        if not 0 < confidence < 1:
            raise InvalidReportParameter("confidence must be between 0 and 1", confidence=confidence)

        historical = self._monthly_revenue(ctx)
        first_future = add_months(start_of_month(ctx.now), 1)
        labels = [add_months(first_future, k).strftime("%Y-%m") for k in range(periods)]
        result = advanced_forecast(
            [h["revenue"] for h in historical],
            periods=periods,
            confidence=confidence,
            band=self.settings.forecast_band,
            labels=labels,
        )
        result["historical"] = historical
        return result

    # =========================================================================
    # Customer value
    # =========================================================================

    def lifetime_value(self, ctx: ReportContext) -> dict:
        spec = self._spec(
            Collection.SALES,
            filters=(("customer_id", "exists", True),),
            totalSpent=Sum("total_amount"),
            transactionCount=Count(),
            firstPurchase=Min("timestamp"),
            lastPurchase=Max("timestamp"),
            avgOrderValue=Avg("total_amount"),
        )
        r = self.engine.run_concurrently(
            {
                "stats": lambda: self.engine.breakdown(
                    ctx.tenant_id, ctx.branch_id, None, spec, {"customer_id": "customer_id"},
                    sort=("-totalSpent", "customer_id"),
                ),
                "customers": lambda: self._customers(ctx.tenant_id),
            }
        )

        customers = []
        for row in r["stats"]:
            customer = r["customers"].get(row["customer_id"])
            if customer is None:
                continue
            first: datetime = row["firstPurchase"]
            last: datetime = row["lastPurchase"]
            lifespan = 1.0 if first == last else (last - first).total_seconds() / 86400
            ltv = row["totalSpent"]
            customers.append(
                {
                    "customerId": row["customer_id"],
                    "name": customer.get("name"),
                    "email": customer.get("email"),
                    "totalSpent": round2(ltv),
                    "transactionCount": row["transactionCount"],
                    "avgOrderValue": round2(row["avgOrderValue"]),
                    "lifespanDays": round1(lifespan),
                    "ltv": round2(ltv),
                    "tier": ltv_tier(ltv),
                    "valueScore": round1(min(100.0, ltv / 100000 * 100)) if ltv > 0 else 0.0,
                }
            )
            if len(customers) == 100:
                break

        total = sum(c["ltv"] for c in customers)
        return {
            "customers": customers,
            "summary": {
                "totalLTV": round2(total),
                "avgLTV": round2(total / len(customers)) if customers else 0.0,
                "topCustomer": customers[0] if customers else None,
            },
        }

    def payment_habits(self, ctx: ReportContext) -> list[dict]:
        """
        Average days from invoice to payment per customer.

        Uses payment ledger postings that reference the settled invoice.
        """
        entries_spec = MetricSpec(
            Collection.ACCOUNTING_ENTRIES.value,
            {},
            filters=(
                ("reference_type", "eq", "payment"),
                ("invoice_id", "exists", True),
                ("customer_id", "exists", True),
            ),
        )
        invoices_spec = self._spec(Collection.SALES, active_only=False)
        r = self.engine.run_concurrently(
            {
                "entries": lambda: self._rows(
                    ctx, entries_spec,
                    customer_id="customer_id", invoice_id="invoice_id", date="date", credit="credit",
                ),
                "invoices": lambda: self._rows(ctx, invoices_spec, id="id", timestamp="timestamp"),
                "customers": lambda: self._customers(ctx.tenant_id),
            }
        )

        issued = {inv["id"]: inv["timestamp"] for inv in r["invoices"]}
        per_customer: dict[str, dict] = {}
        for entry in r["entries"]:
            invoice_date = issued.get(entry["invoice_id"])
            if invoice_date is None:
                continue
            days = (entry["date"] - invoice_date).total_seconds() / 86400
            stats = per_customer.setdefault(entry["customer_id"], {"days": [], "paid": 0.0})
            stats["days"].append(days)
            stats["paid"] += entry.get("credit", 0)

        habits = []
        for customer_id, stats in per_customer.items():
            customer = r["customers"].get(customer_id)
            if customer is None:
                continue
            avg_days = sum(stats["days"]) / len(stats["days"])
            habits.append(
                {
                    "customerId": customer_id,
                    "customer": customer.get("name"),
                    "avgDaysToPay": round1(avg_days),
                    "totalPaid": round2(stats["paid"]),
                    "paymentsCount": len(stats["days"]),
                    "rating": payment_rating(avg_days),
                }
            )
        habits.sort(key=lambda h: (h["avgDaysToPay"], h["customerId"]))
        return habits
