"""
Integration tests for the analytics facade over the reference dataset.

Covers every report family, validation before querying, failure wrapping,
cache read-through, freshness, invalidation and idempotence.
"""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
import redis

from bizpulse.cache import RedisReportCache
from bizpulse.exceptions import (
    InvalidDateRange,
    InvalidReportParameter,
    MissingTenant,
    UpstreamQueryFailure,
)
from bizpulse.models.enums import Collection
from bizpulse.models.reports import ReportResponse
from bizpulse.services import AnalyticsService
from bizpulse.storage import MemoryRecordStore
from bizpulse.storage.base import RecordStore, StorageError
from tests.conftest import NOW, TENANT, make_line, make_sale


# =============================================================================
# Validation and failures
# =============================================================================


class TestValidation:
    """Requests that must be rejected before any query is issued."""

    @pytest.fixture
    def idle_store(self):
        return MagicMock(spec=RecordStore)

    @pytest.fixture
    def idle_service(self, idle_store, settings):
        return AnalyticsService(idle_store, settings=settings, clock=lambda: NOW)

    @pytest.mark.parametrize("tenant", [None, ""])
    def test_missing_tenant(self, idle_service, idle_store, tenant):
        with pytest.raises(MissingTenant) as exc_info:
            idle_service.executive_stats(tenant)
        assert exc_info.value.context == {"report": "executive"}
        idle_store.execute.assert_not_called()

    def test_inverted_dates(self, idle_service, idle_store):
        with pytest.raises(InvalidDateRange):
            idle_service.chart(TENANT, start_date="2026-03-10", end_date="2026-03-01")
        idle_store.execute.assert_not_called()

    def test_unparsable_date(self, idle_service, idle_store):
        with pytest.raises(InvalidDateRange):
            idle_service.tax_report(TENANT, end_date="yesterday")
        idle_store.execute.assert_not_called()

    def test_unknown_interval(self, idle_service, idle_store):
        with pytest.raises(InvalidReportParameter):
            idle_service.chart(TENANT, interval="hourly")
        idle_store.execute.assert_not_called()

    def test_unknown_export_type(self, idle_service, idle_store):
        with pytest.raises(InvalidReportParameter):
            idle_service.export(TENANT, "invoices")
        idle_store.execute.assert_not_called()

    @pytest.mark.parametrize("confidence", [5, 0, 1, -0.5])
    def test_confidence_out_of_range(self, idle_service, idle_store, confidence):
        with pytest.raises(InvalidReportParameter):
            idle_service.advanced_forecast(TENANT, confidence=confidence)
        assert idle_store.execute.call_count == 0

    def test_bad_numeric_parameter(self, idle_service):
        with pytest.raises(InvalidReportParameter):
            idle_service.dead_stock(TENANT, days_threshold="soon")
        with pytest.raises(InvalidReportParameter):
            idle_service.market_basket(TENANT, top_k=0)


class TestFailures:
    """Record-store errors surface as a single report-level failure."""

    @pytest.fixture
    def failing_service(self, settings):
        store = MagicMock(spec=RecordStore)
        store.execute.side_effect = StorageError("connection reset")
        return AnalyticsService(store, settings=settings, clock=lambda: NOW)

    def test_upstream_failure_carries_context(self, failing_service):
        with pytest.raises(UpstreamQueryFailure) as exc_info:
            failing_service.executive_stats(TENANT, start_date="2026-03-01", end_date="2026-03-15")
        error = exc_info.value
        assert error.report == "executive"
        assert error.tenant_id == TENANT
        assert error.window["start"] == "2026-03-01T00:00:00"
        assert "connection reset" in error.message
        assert isinstance(error.__cause__, StorageError)

    def test_nested_report_failure_propagates(self, failing_service):
        with pytest.raises(UpstreamQueryFailure):
            failing_service.critical_alerts(TENANT)

    def test_run_reports_failure_distinctly(self, failing_service):
        response = failing_service.run("executive", tenant_id=TENANT)
        assert isinstance(response, ReportResponse)
        assert response.success is False
        assert response.data is None
        assert response.error.code == "upstream_query_failure"
        assert response.error.context["report"] == "executive"


class TestRecordTimes:
    """Timezone-aware record times are stored naive and stay comparable with windows."""

    def test_aware_timestamp_is_stored_naive(self):
        aware = datetime(2026, 3, 10, 12, tzinfo=timezone.utc)
        sale = make_sale(aware)
        assert sale.timestamp.tzinfo is None
        assert sale.timestamp == aware.astimezone().replace(tzinfo=None)

    def test_reports_run_over_aware_timestamps(self, populated_store, service):
        populated_store.insert(
            Collection.SALES.value,
            [make_sale(datetime(2026, 3, 10, 12, tzinfo=timezone.utc), [make_line("p-gadget", 1, 30.0, 10.0)])],
        )
        assert service.executive_stats(TENANT)["revenue"]["value"] == 540.0

        response = service.run("executive", tenant_id=TENANT)
        assert response.success is True


# =============================================================================
# Reports over the reference dataset
# =============================================================================


class TestFinancialReports:

    def test_tax(self, service):
        assert service.tax_report(TENANT) == {
            "outputTax": 50.0,
            "inputTax": 20.0,
            "netPayable": 30.0,
            "taxableSales": 510.0,
            "taxablePurchases": 200.0,
        }

    def test_gross_profit_uses_snapshot_cost(self, service):
        assert service.gross_profit(TENANT) == {
            "totalRevenue": 510.0,
            "totalCOGS": 190.0,
            "grossProfit": 320.0,
            "marginPercent": 62.7,
        }

    def test_debtor_aging(self, service):
        assert service.debtor_aging(TENANT) == [
            {"range": "0-30 Days", "amount": 100.0, "count": 1},
            {"range": "31-60 Days", "amount": 160.0, "count": 1},
            {"range": "61-90 Days", "amount": 0.0, "count": 0},
            {"range": "91+ Days", "amount": 0.0, "count": 0},
        ]

    def test_cash_flow(self, service):
        result = service.cash_flow(TENANT)
        assert result["paymentModes"] == [{"name": "cash", "value": 250.0}, {"name": "card", "value": 100.0}]
        assert result["agingReport"] == service.debtor_aging(TENANT)

    def test_forecast(self, service):
        assert service.forecast(TENANT) == {
            "revenue": 673.33,
            "trend": "up",
            "historical": [
                {"period": "2026-01", "revenue": 90.0},
                {"period": "2026-02", "revenue": 160.0},
                {"period": "2026-03", "revenue": 510.0},
            ],
        }

    def test_advanced_forecast(self, service):
        result = service.advanced_forecast(TENANT, periods=2)
        first, second = result["forecast"]
        assert first == {
            "period": "2026-04",
            "predictedRevenue": 673.33,
            "lowerBound": 538.67,
            "upperBound": 808.0,
            "confidence": 95,
            "growth": 10,
        }
        assert second["period"] == "2026-05"
        assert second["predictedRevenue"] == 883.33
        assert result["historicalDataPoints"] == 3
        assert len(result["historical"]) == 3

    def test_advanced_forecast_rejects_bad_confidence(self, service):
        with pytest.raises(InvalidReportParameter):
            service.advanced_forecast(TENANT, confidence="high")

    def test_forecast_history_starts_on_a_month_boundary(self, settings):
        store = MemoryRecordStore()
        day = datetime(2025, 8, 1, 10)
        sales = []
        while day < NOW:
            sales.append(make_sale(day, [make_line("p-widget", 10, 100.0, 40.0)]))
            day += timedelta(days=1)
        store.insert(Collection.SALES.value, sales)

        result = AnalyticsService(store, settings=settings, clock=lambda: NOW).forecast(TENANT)
        historical = result["historical"]
        assert historical[0] == {"period": "2025-09", "revenue": 30000.0}
        assert [h["period"] for h in historical] == [
            "2025-09", "2025-10", "2025-11", "2025-12", "2026-01", "2026-02", "2026-03",
        ]
        assert historical[-2] == {"period": "2026-02", "revenue": 28000.0}

    def test_customer_ltv(self, service):
        result = service.customer_ltv(TENANT)
        alice, bob = result["customers"]
        assert alice["customerId"] == "c-alice"
        assert alice["totalSpent"] == 600.0
        assert alice["transactionCount"] == 3
        assert alice["avgOrderValue"] == 200.0
        assert alice["lifespanDays"] == 41.0
        assert alice["tier"] == "Bronze"
        assert bob["lifespanDays"] == 1.0
        assert result["summary"]["totalLTV"] == 700.0
        assert result["summary"]["avgLTV"] == 350.0
        assert result["summary"]["topCustomer"]["customerId"] == "c-alice"

    def test_payment_habits(self, service):
        assert service.payment_habits(TENANT) == [
            {
                "customerId": "c-alice",
                "customer": "Alice",
                "avgDaysToPay": 4.0,
                "totalPaid": 250.0,
                "paymentsCount": 1,
                "rating": "Excellent",
            }
        ]


class TestInventoryReports:

    def test_inventory_analytics(self, service):
        result = service.inventory_analytics(TENANT)
        assert [(a["product_id"], a["branch_id"], a["urgency"]) for a in result["lowStockAlerts"]] == [
            ("p-widget", "main", "critical")
        ]
        assert result["inventoryValuation"] == {"totalValue": 3400.0, "totalItems": 163.0, "productCount": 3}
        assert result["summary"] == {"totalAlerts": 1, "criticalAlerts": 1, "valuation": 3400.0}

    def test_inventory_analytics_for_one_branch(self, service):
        result = service.inventory_analytics(TENANT, branch_id="north")
        assert result["lowStockAlerts"] == []
        assert result["inventoryValuation"] == {"totalValue": 2000.0, "totalItems": 50.0, "productCount": 1}

    def test_dead_stock(self, service):
        rows = service.dead_stock(TENANT)
        assert [(r["product_id"], r["quantity"], r["value"]) for r in rows] == [("p-relic", 8.0, 200.0)]

    def test_run_rate_has_nothing_urgent(self, service):
        assert service.stockout_run_rate(TENANT) == []

    def test_turnover(self, service):
        assert service.inventory_turnover(TENANT) == {
            "turnover": 0.35,
            "cogs": 280.0,
            "avgInventoryValue": 3200.0,
            "interpretation": "Slow",
        }

    def test_product_performance(self, service):
        result = service.product_performance(TENANT)
        assert [(p["product_id"], p["margin"], p["marginPercent"]) for p in result["highMargin"]] == [
            ("p-widget", 60.0, 150.0),
            ("p-relic", 25.0, 100.0),
            ("p-gadget", 20.0, 200.0),
        ]
        assert [p["product_id"] for p in result["deadStock"]] == ["p-relic"]

    def test_health(self, service):
        result = service.inventory_health(TENANT)
        assert result["score"] == 97
        assert result["lowStockCount"] == 1
        assert result["deadStockCount"] == 1
        assert result["highMarginCount"] == 3

    def test_procurement(self, service):
        assert service.procurement(TENANT) == {
            "topSuppliers": [{"supplier_id": "sup-1", "name": "Acme Supply", "totalSpend": 220.0, "bills": 1}]
        }

    def test_critical_alerts(self, service):
        assert service.critical_alerts(TENANT) == {
            "lowStockCount": 1,
            "highRiskDebtCount": 2,
            "itemsToReorder": ["Widget"],
        }


class TestCustomerReports:

    def test_customer_risk(self, service):
        result = service.customer_risk(TENANT)
        assert [(c["customerId"], c["outstandingBalance"]) for c in result["creditRisk"]] == [
            ("c-corp", 1200.0),
            ("c-alice", 500.0),
        ]
        assert result["churnCount"] == 1

    def test_churn_risk_threshold(self, service):
        assert service.churn_risk(TENANT) == []
        assert service.churn_risk(TENANT, threshold_days=10) == [
            {
                "customerId": "c-alice",
                "name": "Alice",
                "phone": "555-0101",
                "lastPurchaseDate": "2026-03-02T10:00:00",
                "daysSinceLastPurchase": 13.1,
            }
        ]

    def test_rfm(self, service):
        assert service.rfm_segments(TENANT) == {
            "Champion": 0,
            "At Risk": 0,
            "Loyal": 0,
            "New Customer": 2,
            "Standard": 0,
        }

    def test_cohort(self, service):
        assert service.cohort_analysis(TENANT) == [
            {"cohort": "2026-01", "activityMonth": "2026-01", "count": 1},
            {"cohort": "2026-01", "activityMonth": "2026-02", "count": 1},
            {"cohort": "2026-01", "activityMonth": "2026-03", "count": 1},
            {"cohort": "2026-03", "activityMonth": "2026-03", "count": 1},
        ]

    def test_cohort_lookback_excludes_older_months(self, service):
        cells = service.cohort_analysis(TENANT, months_back=1)
        assert {c["cohort"] for c in cells} == {"2026-02", "2026-03"}

    def test_market_basket(self, service):
        assert service.market_basket(TENANT) == [
            {
                "product_a_id": "p-gadget",
                "product_b_id": "p-widget",
                "product_a": "Gadget",
                "product_b": "Widget",
                "times_bought_together": 2,
            }
        ]
        assert service.market_basket(TENANT, min_support=3) == []


class TestSalesReports:

    def test_leaderboards(self, service):
        result = service.leaderboards(TENANT)
        assert [(c["customerId"], c["totalSpent"]) for c in result["topCustomers"]] == [
            ("c-alice", 350.0),
            ("c-bob", 100.0),
        ]
        assert result["topProducts"] == [
            {"productId": "p-gadget", "name": "Gadget", "soldQty": 7.0, "revenue": 210.0},
            {"productId": "p-widget", "name": "Widget", "soldQty": 3.0, "revenue": 300.0},
        ]

    def test_operational_counts_but_does_not_sum_cancelled(self, service):
        assert service.operational_stats(TENANT) == {
            "discountMetrics": {"totalDiscount": 10.0, "discountRate": 2.0},
            "orderEfficiency": {
                "totalOrders": 4,
                "cancelledOrders": 1,
                "cancellationRate": 25.0,
                "averageOrderValue": 170.0,
            },
            "topStaff": [
                {"staffId": "u-anna", "revenue": 350.0, "count": 1},
                {"staffId": "u-ben", "revenue": 100.0, "count": 1},
            ],
        }

    def test_branch_comparison(self, service):
        assert service.branch_comparison(TENANT) == [
            {"branchId": "main", "revenue": 450.0, "invoiceCount": 2, "avgBasketValue": 225.0},
            {"branchId": "north", "revenue": 60.0, "invoiceCount": 1, "avgBasketValue": 60.0},
        ]
        assert len(service.branch_comparison(TENANT, limit=1)) == 1

    def test_branch_comparison_rejects_unknown_ranking(self, service):
        with pytest.raises(InvalidReportParameter):
            service.branch_comparison(TENANT, group_by="profit")

    def test_peak_hours_by_iso_weekday(self, service):
        assert service.peak_hours(TENANT) == [
            {"day": 1, "hour": 10, "count": 1},
            {"day": 2, "hour": 15, "count": 1},
            {"day": 4, "hour": 9, "count": 1},
        ]


class TestExport:

    def test_sales_export_all_time_newest_first(self, service):
        rows = service.export(TENANT, "sales")
        assert len(rows) == 6
        assert rows[0] == {
            "date": "2026-03-12",
            "invoice_number": "",
            "customer": "Walk-in",
            "status": "active",
            "total_amount": 60.0,
            "paid_amount": 60.0,
            "due_amount": 0.0,
            "items_count": 1,
        }

    def test_sales_export_windowed_when_dates_given(self, service):
        rows = service.export(TENANT, "sales", start_date="2026-03-01")
        assert [r["date"] for r in rows] == ["2026-03-12", "2026-03-10", "2026-03-05", "2026-03-02"]

    def test_inventory_export(self, service):
        rows = service.export(TENANT, "inventory")
        assert [(r["name"], r["total_stock"]) for r in rows] == [("Gadget", 100.0), ("Relic", 8.0), ("Widget", 55.0)]

    def test_customers_export(self, service):
        rows = service.export(TENANT, "customers")
        assert [r["name"] for r in rows] == ["Alice", "Bob", "Corp Ltd"]
        assert rows[0]["total_purchases"] == 600.0
        assert rows[0]["last_purchase"] == "2026-03-02"
        assert rows[2]["last_purchase"] == ""


# =============================================================================
# Scoping, caching and dispatch
# =============================================================================


class TestScoping:

    def test_branch_scope(self, service):
        assert service.executive_stats(TENANT, branch_id="north")["revenue"]["value"] == 60.0

    def test_tenant_isolation(self, service):
        stats = service.executive_stats("org-2")
        assert stats["revenue"]["value"] == 900.0
        assert stats["customers"] == {"active": 0, "new": 0}

    def test_unknown_tenant_gets_zero_defaults(self, service):
        stats = service.executive_stats("org-empty")
        assert stats["revenue"] == {"value": 0.0, "count": 0, "growth": 0.0, "today": 0.0}
        assert stats["profit"] == {"value": 0.0, "margin": 0.0, "status": "profitable"}


class TestCaching:

    def test_idempotent_across_miss_and_hit(self, cached_service, report_cache):
        first = cached_service.executive_stats(TENANT)
        assert len(report_cache) == 1
        second = cached_service.executive_stats(TENANT)
        assert json.dumps(first) == json.dumps(second)

    def test_idempotent_without_cache(self, service):
        assert json.dumps(service.chart(TENANT)) == json.dumps(service.chart(TENANT))

    def test_recomputes_after_freshness_ceiling(self, cached_service, fake_clock):
        stats = cached_service.executive.stats
        with patch.object(cached_service.executive, "stats", wraps=stats) as compute:
            cached_service.executive_stats(TENANT)
            cached_service.executive_stats(TENANT)
            assert compute.call_count == 1
            fake_clock.advance(cached_service.settings.cache_freshness_seconds + 1)
            cached_service.executive_stats(TENANT)
            assert compute.call_count == 2

    def test_distinct_parameters_are_cached_separately(self, cached_service, report_cache):
        cached_service.executive_stats(TENANT)
        cached_service.executive_stats(TENANT, branch_id="north")
        cached_service.executive_stats(TENANT, start_date="2026-02-01")
        assert len(report_cache) == 3

    def test_invalidate(self, cached_service, report_cache):
        cached_service.executive_stats(TENANT)
        cached_service.chart(TENANT)
        assert cached_service.invalidate(TENANT, "executive") == 1
        assert cached_service.invalidate(TENANT) == 1
        assert len(report_cache) == 0

    def test_invalidate_requires_tenant(self, cached_service):
        with pytest.raises(MissingTenant):
            cached_service.invalidate("")

    def test_unavailable_cache_degrades_to_live_computation(self, populated_store, settings, service):
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError("refused")
        client.setex.side_effect = redis.ConnectionError("refused")
        degraded = AnalyticsService(
            populated_store, cache=RedisReportCache(client), settings=settings, clock=lambda: NOW
        )
        assert degraded.executive_stats(TENANT) == service.executive_stats(TENANT)
        assert client.get.called


class TestDispatch:

    def test_run_success(self, service):
        response = service.run("executive", tenant_id=TENANT)
        assert response.success is True
        assert response.error is None
        assert response.data["revenue"]["value"] == 510.0

    def test_run_accepts_enum_and_parameters(self, service):
        from bizpulse.models.enums import ReportType

        response = service.run(ReportType.EXPORT, tenant_id=TENANT, export_type="inventory")
        assert response.success is True
        assert response.report == "export"
        assert len(response.data) == 3

    def test_run_missing_tenant(self, service):
        response = service.run("rfm")
        assert response.success is False
        assert response.error.code == "missing_tenant"

    def test_run_unknown_report(self, service):
        response = service.run("security_pulse", tenant_id=TENANT)
        assert response.success is False
        assert response.error.code == "invalid_report_parameter"

    def test_run_unexpected_parameter(self, service):
        response = service.run("rfm", tenant_id=TENANT, colour="blue")
        assert response.error.code == "invalid_report_parameter"

    def test_empty_report_is_still_a_success(self, service):
        response = service.run("run_rate", tenant_id=TENANT)
        assert response.success is True
        assert response.data == []
