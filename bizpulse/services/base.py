"""
Base class for report services.

Report services compute one family of reports from a resolved
`ReportContext`. They do no validation or caching of their own; the
analytics facade does both before calling them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

import structlog

from bizpulse.config import Settings
from bizpulse.engine.aggregation import AggregationEngine, MetricSpec
from bizpulse.engine.windows import Window
from bizpulse.exceptions import InvalidReportParameter
from bizpulse.models.enums import Collection
from bizpulse.storage.query import Query, Sum


@dataclass(frozen=True)
class ReportContext:
    """
    Resolved parameters of one report invocation.

    Attributes:
        report: Report type value
        tenant_id: Tenant scope (always present)
        branch_id: Optional branch scope
        window: Resolved window, or None for reports with their own lookback
        now: Reference time for lookbacks and aging
        interval: Resolved timeline granularity, when relevant
        params: Report-specific parameters
    """

    report: str
    tenant_id: str
    branch_id: Optional[str]
    window: Optional[Window]
    now: datetime
    interval: Optional[str] = None
    params: dict = field(default_factory=dict)

    def log_context(self) -> dict:
        return {
            "report": self.report,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "window": self.window.to_dict() if self.window else None,
        }


class BaseReportService:
    """Shared query helpers for all report services."""

    def __init__(self, engine: AggregationEngine, settings: Settings):
        self.engine = engine
        self.settings = settings
        self.logger = structlog.get_logger()

    @property
    def store(self):
        return self.engine.store

    def _spec(
        self,
        collection: Collection,
        unwind: Optional[str] = None,
        active_only: bool = True,
        filters: tuple = (),
        **accumulators,
    ) -> MetricSpec:
        return MetricSpec(
            collection.value, accumulators, unwind=unwind, filters=filters, active_only=active_only
        )

    def _rows(
        self,
        ctx: ReportContext,
        spec: MetricSpec,
        window: Optional[Window] = None,
        branch_scoped: bool = True,
        **projection,
    ) -> list[dict]:
        """Matching records, optionally projected to a few fields."""
        query = self.engine.base_query(
            ctx.tenant_id, ctx.branch_id if branch_scoped else None, window, spec
        )
        if projection:
            query = query.project(**projection)
        return self.store.execute(query)

    def _products(self, tenant_id: str) -> list[dict]:
        """Products are tenant-wide; branch stock lives in their inventory rows."""
        query = Query(Collection.PRODUCTS.value).scope(tenant_id).sort("name", "id")
        return self.store.execute(query)

    def _customers(self, tenant_id: str) -> dict[str, dict]:
        query = Query(Collection.CUSTOMERS.value).scope(tenant_id)
        return {c["id"]: c for c in self.store.execute(query)}

    def _units_sold(self, ctx: ReportContext, window: Window) -> dict[str, float]:
        spec = MetricSpec(
            Collection.SALES.value, {"units": Sum("items.quantity")}, unwind="items"
        )
        rows = self.engine.breakdown(
            ctx.tenant_id, ctx.branch_id, window, spec, {"product_id": "items.product_id"}
        )
        return {row["product_id"]: row["units"] for row in rows}

    @staticmethod
    def _positive_int(ctx: ReportContext, name: str, default: int) -> int:
        value: Any = ctx.params.get(name)
        if value is None:
            return default
        try:
            value = int(value)
        except (TypeError, ValueError) as e:
            raise InvalidReportParameter(f"{name} must be an integer", **{name: value}) from e
        if value < 1:
            raise InvalidReportParameter(f"{name} must be positive", **{name: value})
        return value
