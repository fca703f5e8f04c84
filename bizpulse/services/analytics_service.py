"""
Analytics facade.

Single entry point for every report. Each call validates its scope, resolves
the time window, consults the report cache, fans the computation out through
the domain services and stores the JSON-normalized result back in the cache.
"""

import json
from datetime import date, datetime
from typing import Any, Callable, Optional

import structlog

from bizpulse.cache import NullCache, ReportCache, fingerprint, tenant_pattern
from bizpulse.config import Settings, get_settings
from bizpulse.engine.aggregation import AggregationEngine
from bizpulse.engine.windows import resolve_interval, resolve_window
from bizpulse.exceptions import (
    AnalyticsError,
    InvalidReportParameter,
    MissingTenant,
    UpstreamQueryFailure,
)
from bizpulse.models.enums import ReportType
from bizpulse.models.reports import ReportError, ReportResponse
from bizpulse.storage.base import RecordStore
from bizpulse.utils.logging import report_context

from .base import ReportContext
from .customers import CustomerReportService
from .executive import ExecutiveReportService
from .export import ExportService, export_type_of
from .financial import FinancialReportService
from .inventory import InventoryReportService
from .sales import SalesReportService

# Reports scoped by the caller's window; the rest use their own lookbacks.
WINDOWED_REPORTS = frozenset(
    {
        ReportType.EXECUTIVE.value,
        ReportType.CHART.value,
        ReportType.CASH_FLOW.value,
        ReportType.TAX.value,
        ReportType.GROSS_PROFIT.value,
        ReportType.PROCUREMENT.value,
        ReportType.LEADERBOARDS.value,
        ReportType.OPERATIONAL.value,
        ReportType.BRANCH_COMPARISON.value,
    }
)


def _json_default(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def normalize(data: Any) -> Any:
    """Round-trip through JSON so fresh and cached results are identical."""
    return json.loads(json.dumps(data, default=_json_default))


class AnalyticsService:
    """
    Report facade over a record store and an optional report cache.

    Args:
        store: Record store to aggregate from
        cache: Report cache; NullCache when omitted
        settings: Engine settings; process settings when omitted
        clock: Returns the reference "now" for windows and lookbacks
    """

    def __init__(
        self,
        store: RecordStore,
        cache: Optional[ReportCache] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.cache = cache if cache is not None else NullCache(self.settings.cache_freshness_seconds)
        self.clock = clock
        self.engine = AggregationEngine(store, max_workers=self.settings.fanout_max_workers)
        self.executive = ExecutiveReportService(self.engine, self.settings)
        self.financial = FinancialReportService(self.engine, self.settings)
        self.inventory = InventoryReportService(self.engine, self.settings)
        self.customers = CustomerReportService(self.engine, self.settings)
        self.sales = SalesReportService(self.engine, self.settings)
        self.exporter = ExportService(self.engine, self.settings)
        self.logger = structlog.get_logger()

    # =========================================================================
    # Execution
    # =========================================================================

    def _execute(
        self,
        report: str,
        tenant_id: Optional[str],
        compute: Callable[[ReportContext], Any],
        branch_id: Optional[str] = None,
        start_date=None,
        end_date=None,
        windowed: bool = True,
        interval: Optional[str] = None,
        **params: Any,
    ) -> Any:
        """
        Validate, serve from cache or compute, then cache one report.

        Raises:
            MissingTenant: If tenant_id is empty
            InvalidDateRange: If the window cannot be resolved
            InvalidReportParameter: If a report parameter is unsupported
            UpstreamQueryFailure: If the computation fails
        """
        if not tenant_id:
            raise MissingTenant(report)

        now = self.clock()
        window = resolve_window(start_date, end_date, now) if windowed else None
        if window is not None and (interval is not None or report == ReportType.CHART.value):
            interval = resolve_interval(window, interval)

        ctx = ReportContext(
            report=report,
            tenant_id=tenant_id,
            branch_id=branch_id or None,
            window=window,
            now=now,
            interval=interval,
            params={k: v for k, v in params.items() if v is not None},
        )
        key = fingerprint(
            self.settings.cache_prefix,
            report,
            tenant_id,
            branch_id=ctx.branch_id,
            window=window.to_dict() if window else None,
            interval=interval,
            **ctx.params,
        )

        with report_context(report=report, tenant_id=tenant_id, branch_id=ctx.branch_id):
            cached = self.cache.get(key)
            if cached is not None:
                self.logger.debug("report_cache_hit", **ctx.log_context())
                return cached

            try:
                data = compute(ctx)
            except AnalyticsError:
                raise
            except Exception as e:
                self.logger.error("report_failed", error=str(e), **ctx.log_context())
                raise UpstreamQueryFailure(
                    report, tenant_id, window=window.to_dict() if window else None, cause=e
                ) from e

            data = normalize(data)
            self.cache.set(key, data, self.settings.cache_ttl_seconds)
            self.logger.info("report_computed", **ctx.log_context())
            return data

    def _report(self, report: ReportType, compute, tenant_id, branch_id=None, **kwargs) -> Any:
        return self._execute(
            report.value,
            tenant_id,
            compute,
            branch_id=branch_id,
            windowed=report.value in WINDOWED_REPORTS,
            **kwargs,
        )

    # =========================================================================
    # Executive
    # =========================================================================

    def executive_stats(self, tenant_id, branch_id=None, start_date=None, end_date=None) -> dict:
        return self._report(
            ReportType.EXECUTIVE, self.executive.stats, tenant_id, branch_id,
            start_date=start_date, end_date=end_date,
        )

    def chart(self, tenant_id, branch_id=None, start_date=None, end_date=None, interval=None) -> dict:
        return self._report(
            ReportType.CHART, self.executive.chart, tenant_id, branch_id,
            start_date=start_date, end_date=end_date, interval=interval,
        )

    # =========================================================================
    # Financial
    # =========================================================================

    def cash_flow(self, tenant_id, branch_id=None, start_date=None, end_date=None) -> dict:
        return self._report(
            ReportType.CASH_FLOW, self.financial.cash_flow, tenant_id, branch_id,
            start_date=start_date, end_date=end_date,
        )

    def tax_report(self, tenant_id, branch_id=None, start_date=None, end_date=None) -> dict:
        return self._report(
            ReportType.TAX, self.financial.tax, tenant_id, branch_id,
            start_date=start_date, end_date=end_date,
        )

    def gross_profit(self, tenant_id, branch_id=None, start_date=None, end_date=None) -> dict:
        return self._report(
            ReportType.GROSS_PROFIT, self.financial.gross_profit, tenant_id, branch_id,
            start_date=start_date, end_date=end_date,
        )

    def debtor_aging(self, tenant_id, branch_id=None) -> list:
        return self._report(ReportType.DEBTOR_AGING, self.financial.debtor_aging, tenant_id, branch_id)

    def forecast(self, tenant_id, branch_id=None) -> dict:
        return self._report(ReportType.FORECAST, self.financial.forecast, tenant_id, branch_id)

    def advanced_forecast(self, tenant_id, branch_id=None, periods=3, confidence=0.95) -> dict:
        return self._report(
            ReportType.ADVANCED_FORECAST, self.financial.advanced_forecast, tenant_id, branch_id,
            periods=periods, confidence=confidence,
        )

    def customer_ltv(self, tenant_id, branch_id=None) -> dict:
        return self._report(ReportType.LTV, self.financial.lifetime_value, tenant_id, branch_id)

    def payment_habits(self, tenant_id, branch_id=None) -> list:
        return self._report(
            ReportType.PAYMENT_HABITS, self.financial.payment_habits, tenant_id, branch_id
        )

    # =========================================================================
    # Inventory
    # =========================================================================

    def inventory_analytics(self, tenant_id, branch_id=None) -> dict:
        return self._report(ReportType.INVENTORY, self.inventory.analytics, tenant_id, branch_id)

    def product_performance(self, tenant_id, branch_id=None) -> dict:
        return self._report(
            ReportType.PRODUCT_PERFORMANCE, self.inventory.product_performance, tenant_id, branch_id
        )

    def dead_stock(self, tenant_id, branch_id=None, days_threshold=None) -> list:
        return self._report(
            ReportType.DEAD_STOCK, self.inventory.dead_stock, tenant_id, branch_id,
            days_threshold=days_threshold,
        )

    def stockout_run_rate(self, tenant_id, branch_id=None) -> list:
        return self._report(ReportType.RUN_RATE, self.inventory.run_rate, tenant_id, branch_id)

    def inventory_turnover(self, tenant_id, branch_id=None) -> dict:
        return self._report(
            ReportType.INVENTORY_TURNOVER, self.inventory.turnover, tenant_id, branch_id
        )

    def inventory_health(self, tenant_id, branch_id=None) -> dict:
        return self._report(ReportType.INVENTORY_HEALTH, self.inventory.health, tenant_id, branch_id)

    def procurement(self, tenant_id, branch_id=None, start_date=None, end_date=None) -> dict:
        return self._report(
            ReportType.PROCUREMENT, self.inventory.procurement, tenant_id, branch_id,
            start_date=start_date, end_date=end_date,
        )

    # =========================================================================
    # Customers
    # =========================================================================

    def customer_risk(self, tenant_id, branch_id=None) -> dict:
        return self._report(ReportType.CUSTOMER_RISK, self.customers.risk, tenant_id, branch_id)

    def churn_risk(self, tenant_id, branch_id=None, threshold_days=None) -> list:
        return self._report(
            ReportType.CHURN_RISK, self.customers.churn_risk, tenant_id, branch_id,
            threshold_days=threshold_days,
        )

    def rfm_segments(self, tenant_id, branch_id=None) -> dict:
        return self._report(ReportType.RFM, self.customers.rfm, tenant_id, branch_id)

    def cohort_analysis(self, tenant_id, branch_id=None, months_back=None) -> list:
        return self._report(
            ReportType.COHORT, self.customers.cohort, tenant_id, branch_id, months_back=months_back
        )

    def market_basket(self, tenant_id, branch_id=None, min_support=None, top_k=None) -> list:
        return self._report(
            ReportType.BASKET, self.customers.basket, tenant_id, branch_id,
            min_support=min_support, top_k=top_k,
        )

    # =========================================================================
    # Sales operations
    # =========================================================================

    def leaderboards(self, tenant_id, branch_id=None, start_date=None, end_date=None) -> dict:
        return self._report(
            ReportType.LEADERBOARDS, self.sales.leaderboards, tenant_id, branch_id,
            start_date=start_date, end_date=end_date,
        )

    def operational_stats(self, tenant_id, branch_id=None, start_date=None, end_date=None) -> dict:
        return self._report(
            ReportType.OPERATIONAL, self.sales.operational, tenant_id, branch_id,
            start_date=start_date, end_date=end_date,
        )

    def branch_comparison(self, tenant_id, start_date=None, end_date=None, group_by=None, limit=None) -> list:
        return self._report(
            ReportType.BRANCH_COMPARISON, self.sales.branch_comparison, tenant_id, None,
            start_date=start_date, end_date=end_date, group_by=group_by, limit=limit,
        )

    def peak_hours(self, tenant_id, branch_id=None) -> list:
        return self._report(ReportType.PEAK_HOURS, self.sales.peak_hours, tenant_id, branch_id)

    # =========================================================================
    # Composite reports
    # =========================================================================

    def critical_alerts(self, tenant_id, branch_id=None) -> dict:
        """Low-stock and credit-risk counts, built from the inventory and risk reports."""

        def compute(ctx: ReportContext) -> dict:
            r = self.engine.run_concurrently(
                {
                    "inventory": lambda: self.inventory_analytics(ctx.tenant_id, ctx.branch_id),
                    "risk": lambda: self.customer_risk(ctx.tenant_id, ctx.branch_id),
                }
            )
            alerts = r["inventory"]["lowStockAlerts"]
            return {
                "lowStockCount": len(alerts),
                "highRiskDebtCount": len(r["risk"]["creditRisk"]),
                "itemsToReorder": [a["name"] for a in alerts],
            }

        return self._report(ReportType.CRITICAL_ALERTS, compute, tenant_id, branch_id)

    def export(self, tenant_id, export_type, branch_id=None, start_date=None, end_date=None) -> list:
        """
        Flat rows for one export type.

        Sales and customers are limited to the window only when a start or end
        date is given; inventory is always current stock.
        """
        if not tenant_id:
            raise MissingTenant(ReportType.EXPORT.value)
        export_type = export_type_of(export_type)
        return self._execute(
            ReportType.EXPORT.value,
            tenant_id,
            self.exporter.rows,
            branch_id=branch_id,
            start_date=start_date,
            end_date=end_date,
            windowed=bool(start_date or end_date),
            export_type=export_type,
        )

    # =========================================================================
    # Maintenance and dispatch
    # =========================================================================

    def invalidate(self, tenant_id: str, report: Optional[str] = None) -> int:
        """Drop a tenant's cached reports, or only one report type."""
        if not tenant_id:
            raise MissingTenant(report)
        return self.cache.invalidate(tenant_pattern(self.settings.cache_prefix, tenant_id, report))

    _DISPATCH = {
        ReportType.EXECUTIVE.value: "executive_stats",
        ReportType.CHART.value: "chart",
        ReportType.CASH_FLOW.value: "cash_flow",
        ReportType.TAX.value: "tax_report",
        ReportType.GROSS_PROFIT.value: "gross_profit",
        ReportType.FORECAST.value: "forecast",
        ReportType.ADVANCED_FORECAST.value: "advanced_forecast",
        ReportType.PRODUCT_PERFORMANCE.value: "product_performance",
        ReportType.INVENTORY.value: "inventory_analytics",
        ReportType.DEAD_STOCK.value: "dead_stock",
        ReportType.RUN_RATE.value: "stockout_run_rate",
        ReportType.INVENTORY_TURNOVER.value: "inventory_turnover",
        ReportType.INVENTORY_HEALTH.value: "inventory_health",
        ReportType.DEBTOR_AGING.value: "debtor_aging",
        ReportType.PROCUREMENT.value: "procurement",
        ReportType.CUSTOMER_RISK.value: "customer_risk",
        ReportType.CHURN_RISK.value: "churn_risk",
        ReportType.RFM.value: "rfm_segments",
        ReportType.COHORT.value: "cohort_analysis",
        ReportType.LTV.value: "customer_ltv",
        ReportType.PAYMENT_HABITS.value: "payment_habits",
        ReportType.BASKET.value: "market_basket",
        ReportType.LEADERBOARDS.value: "leaderboards",
        ReportType.OPERATIONAL.value: "operational_stats",
        ReportType.BRANCH_COMPARISON.value: "branch_comparison",
        ReportType.PEAK_HOURS.value: "peak_hours",
        ReportType.CRITICAL_ALERTS.value: "critical_alerts",
        ReportType.EXPORT.value: "export",
    }

    def run(self, report: str, **params: Any) -> ReportResponse:
        """
        Compute a report by name and wrap the outcome.

        Failed reports come back with `success=False` and an error block, so
        they can't be mistaken for a legitimately empty report.
        """
        report = getattr(report, "value", report)
        params.setdefault("tenant_id", None)
        try:
            name = self._DISPATCH.get(report)
            if name is None:
                raise InvalidReportParameter(f"Unknown report: {report}", report=report)
            try:
                data = getattr(self, name)(**params)
            except TypeError as e:
                raise InvalidReportParameter(str(e), report=report) from e
        except AnalyticsError as e:
            return ReportResponse(success=False, report=report, error=ReportError(**e.to_dict()))
        return ReportResponse(success=True, report=report, data=data)
