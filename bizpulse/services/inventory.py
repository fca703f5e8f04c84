"""
Inventory reports: stock alerts, valuation, dead stock, stockout run-rate,
turnover, the composite health score and supplier spend.
"""

from bizpulse.engine import inventory_signals as signals
from bizpulse.engine.metrics import inventory_health_score, round2, unit_margin
from bizpulse.engine.windows import trailing_window
from bizpulse.models.enums import Collection
from bizpulse.storage.query import Count, First, Sum

from .base import BaseReportService, ReportContext

TURNOVER_WINDOW_DAYS = 90
HIGH_MARGIN_PERCENT = 40


class InventoryReportService(BaseReportService):
    """Stock-level reports; products are read tenant-wide and stock per branch."""

    def analytics(self, ctx: ReportContext) -> dict:
        products = self._products(ctx.tenant_id)
        alerts = signals.low_stock_alerts(products, ctx.branch_id)
        value = signals.valuation(products, ctx.branch_id)
        return {
            "lowStockAlerts": alerts,
            "inventoryValuation": value,
            "summary": {
                "totalAlerts": len(alerts),
                "criticalAlerts": sum(1 for a in alerts if a["urgency"] == "critical"),
                "valuation": value["totalValue"],
            },
        }

    def _sold_product_ids(self, ctx: ReportContext, days: int) -> set:
        window = trailing_window(ctx.now, days=days)
        spec = self._spec(Collection.SALES, unwind="items")
        rows = self.engine.breakdown(
            ctx.tenant_id, ctx.branch_id, window, spec, {"product_id": "items.product_id"}
        )
        return {row["product_id"] for row in rows}

    def dead_stock(self, ctx: ReportContext) -> list[dict]:
        """Products with stock on hand and no sales within the threshold."""
        days = self._positive_int(ctx, "days_threshold", self.settings.dead_stock_days)
        r = self.engine.run_concurrently(
            {
                "products": lambda: self._products(ctx.tenant_id),
                "sold": lambda: self._sold_product_ids(ctx, days),
            }
        )
        return signals.dead_stock(r["products"], r["sold"], days, ctx.branch_id)

    def run_rate(self, ctx: ReportContext) -> list[dict]:
        window_days = self.settings.run_rate_window_days
        window = trailing_window(ctx.now, days=window_days)
        r = self.engine.run_concurrently(
            {
                "products": lambda: self._products(ctx.tenant_id),
                "units": lambda: self._units_sold(ctx, window),
            }
        )
        return signals.stockout_run_rate(
            r["products"],
            r["units"],
            window_days=window_days,
            horizon_days=self.settings.stockout_horizon_days,
            branch_id=ctx.branch_id,
        )

    def turnover(self, ctx: ReportContext) -> dict:
        window = trailing_window(ctx.now, days=TURNOVER_WINDOW_DAYS)
        r = self.engine.run_concurrently(
            {
                "products": lambda: self._products(ctx.tenant_id),
                "units": lambda: self._units_sold(ctx, window),
            }
        )
        return signals.inventory_turnover(r["products"], r["units"], ctx.branch_id)

    def product_performance(self, ctx: ReportContext) -> dict:
        """Top products by unit margin, plus the dead-stock list."""
        r = self.engine.run_concurrently(
            {
                "products": lambda: self._products(ctx.tenant_id),
                "dead": lambda: self.dead_stock(ctx),
            }
        )
        ranked = []
        for product in r["products"]:
            if not product.get("is_active", True):
                continue
            selling = product.get("selling_price", 0)
            purchase = product.get("purchase_price", 0)
            ranked.append(
                {
                    "product_id": product["id"],
                    "name": product.get("name"),
                    "sku": product.get("sku"),
                    "margin": round2(selling - purchase),
                    "marginPercent": unit_margin(selling, purchase),
                }
            )
        ranked.sort(key=lambda p: (-p["margin"], p["product_id"]))
        return {"highMargin": ranked[:10], "deadStock": r["dead"][:20]}

    def health(self, ctx: ReportContext) -> dict:
        r = self.engine.run_concurrently(
            {
                "analytics": lambda: self.analytics(ctx),
                "performance": lambda: self.product_performance(ctx),
                "dead": lambda: self.dead_stock(ctx),
                "turnover": lambda: self.turnover(ctx),
            }
        )
        low_stock = len(r["analytics"]["lowStockAlerts"])
        dead = len(r["dead"])
        high_margin = sum(
            1 for p in r["performance"]["highMargin"] if p["marginPercent"] > HIGH_MARGIN_PERCENT
        )
        return {
            "score": inventory_health_score(low_stock, dead, r["turnover"]["turnover"], high_margin),
            "lowStockCount": low_stock,
            "deadStockCount": dead,
            "highMarginCount": high_margin,
            "turnover": r["turnover"],
        }

    def procurement(self, ctx: ReportContext) -> dict:
        spec = self._spec(
            Collection.PURCHASES,
            totalSpend=Sum("total_amount"),
            bills=Count(),
            name=First("supplier_name"),
        )
        rows = self.engine.breakdown(
            ctx.tenant_id, ctx.branch_id, ctx.window, spec, {"supplier_id": "supplier_id"},
            sort=("-totalSpend", "supplier_id"), limit=5,
        )
        return {
            "topSuppliers": [
                {
                    "supplier_id": row["supplier_id"],
                    "name": row["name"] or row["supplier_id"],
                    "totalSpend": round2(row["totalSpend"]),
                    "bills": row["bills"],
                }
                for row in rows
            ]
        }

