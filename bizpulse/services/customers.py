"""
Customer reports: credit and churn risk, RFM segments, cohort retention and
market basket pairs.
"""

from bizpulse.engine.basket import enrich_pairs, frequent_pairs
from bizpulse.engine.metrics import round1, round2
from bizpulse.engine.segmentation import cohort_matrix, segment_counts
from bizpulse.engine.windows import trailing_window
from bizpulse.models.enums import Collection, CustomerType
from bizpulse.storage.query import Count, Max, Query, Sum

from .base import BaseReportService, ReportContext

RISK_LOOKBACK_MONTHS = 6


class CustomerReportService(BaseReportService):
    """Per-customer behaviour derived from active sales."""

    def _purchase_profiles(self, ctx: ReportContext) -> list[dict]:
        spec = self._spec(
            Collection.SALES,
            filters=(("customer_id", "exists", True),),
            last_purchase=Max("timestamp"),
            frequency=Count(),
            monetary=Sum("total_amount"),
        )
        return self.engine.breakdown(
            ctx.tenant_id, ctx.branch_id, None, spec, {"customer_id": "customer_id"},
            sort=("customer_id",),
        )

    def risk(self, ctx: ReportContext) -> dict:
        """
        Largest outstanding balances, and business customers gone quiet.

        A business customer counts toward `churnCount` when they have no sale
        in the last six months.
        """
        window = trailing_window(ctx.now, months=RISK_LOOKBACK_MONTHS)
        buyers_spec = self._spec(Collection.SALES, filters=(("customer_id", "exists", True),))
        debtors = (
            Query(Collection.CUSTOMERS.value)
            .scope(ctx.tenant_id)
            .where("outstanding_balance", "gt", 0)
            .sort("-outstanding_balance", "id")
            .limit(10)
        )
        r = self.engine.run_concurrently(
            {
                "debtors": lambda: self.store.execute(debtors),
                "buyers": lambda: self.engine.breakdown(
                    ctx.tenant_id, ctx.branch_id, window, buyers_spec, {"customer_id": "customer_id"}
                ),
                "customers": lambda: self._customers(ctx.tenant_id),
            }
        )

        active_ids = {row["customer_id"] for row in r["buyers"]}
        churn_count = sum(
            1
            for c in r["customers"].values()
            if c.get("customer_type") == CustomerType.BUSINESS.value and c["id"] not in active_ids
        )
        return {
            "creditRisk": [
                {
                    "customerId": c["id"],
                    "name": c.get("name"),
                    "phone": c.get("phone"),
                    "outstandingBalance": round2(c.get("outstanding_balance", 0)),
                    "creditLimit": round2(c.get("credit_limit", 0)),
                }
                for c in r["debtors"]
            ],
            "churnCount": churn_count,
        }

    def churn_risk(self, ctx: ReportContext) -> list[dict]:
        """Customers whose last purchase is at least the threshold ago, longest-idle first."""
        threshold = self._positive_int(ctx, "threshold_days", self.settings.churn_threshold_days)
        r = self.engine.run_concurrently(
            {
                "profiles": lambda: self._purchase_profiles(ctx),
                "customers": lambda: self._customers(ctx.tenant_id),
            }
        )
        at_risk = []
        for profile in r["profiles"]:
            customer = r["customers"].get(profile["customer_id"])
            if customer is None:
                continue
            idle = (ctx.now - profile["last_purchase"]).total_seconds() / 86400
            if idle < threshold:
                continue
            at_risk.append(
                {
                    "customerId": customer["id"],
                    "name": customer.get("name"),
                    "phone": customer.get("phone"),
                    "lastPurchaseDate": profile["last_purchase"].isoformat(),
                    "daysSinceLastPurchase": round1(idle),
                }
            )
        at_risk.sort(key=lambda c: (-c["daysSinceLastPurchase"], c["customerId"]))
        return at_risk

    def rfm(self, ctx: ReportContext) -> dict:
        return segment_counts(self._purchase_profiles(ctx), ctx.now)

    def cohort(self, ctx: ReportContext) -> list[dict]:
        months = self._positive_int(ctx, "months_back", self.settings.cohort_months_back)
        window = trailing_window(ctx.now, months=months, align_month=True)
        spec = self._spec(Collection.SALES, filters=(("customer_id", "exists", True),))
        rows = self._rows(ctx, spec, window, customer_id="customer_id", timestamp="timestamp")
        return cohort_matrix((row["customer_id"], row["timestamp"]) for row in rows)

    def basket(self, ctx: ReportContext) -> list[dict]:
        """Products most often bought together within the lookback window."""
        min_support = self._positive_int(ctx, "min_support", self.settings.basket_min_support)
        top_k = self._positive_int(ctx, "top_k", self.settings.basket_top_k)
        window = trailing_window(ctx.now, months=self.settings.basket_lookback_months)
        spec = self._spec(Collection.SALES)

        r = self.engine.run_concurrently(
            {
                "baskets": lambda: self._rows(
                    ctx, spec, window,
                    products=lambda row: [item["product_id"] for item in row.get("items") or []],
                ),
                "products": lambda: self._products(ctx.tenant_id),
            }
        )
        pairs = frequent_pairs(
            (row["products"] for row in r["baskets"]), min_support=min_support, top_k=top_k
        )
        names = {p["id"]: p.get("name") or p["id"] for p in r["products"]}
        return enrich_pairs(pairs, names)
