"""
Aggregation pipeline engine.

Turns (tenant, branch, window, metric spec) requests into record-store
queries, substitutes zero defaults for empty results, fans independent
sub-aggregations out on a thread pool and builds bucketed timelines.
"""

import contextvars
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import structlog

from bizpulse.models.enums import Collection, TransactionStatus
from bizpulse.models.records import DATE_FIELDS
from bizpulse.storage.base import RecordStore
from bizpulse.storage.query import DateBucket, Query, Sum

from .metrics import margin, round1, round2
from .windows import Window

ACTIVE = TransactionStatus.ACTIVE.value


def line_profit(row: dict) -> float:
    """Realized profit of an unwound sale line, using the cost snapshotted at sale time."""
    item = row.get("items") or {}
    return item.get("quantity", 0) * (item.get("unit_price", 0) - item.get("cost_at_sale", 0))


def line_cost(row: dict) -> float:
    item = row.get("items") or {}
    return item.get("quantity", 0) * item.get("cost_at_sale", 0)


@dataclass(frozen=True)
class MetricSpec:
    """
    Declarative description of one grouped aggregation.

    Attributes:
        collection: Record collection to query
        accumulators: Output field -> accumulator
        date_field: Field the window applies to (defaults to the collection's)
        unwind: Top-level list field to unwind before grouping
        filters: Extra (path, op, value) match conditions
        active_only: Restrict to active transactions (sales and purchases)
        defaults: Values used when nothing matches; derived from the
            accumulators when omitted
    """

    collection: str
    accumulators: dict
    date_field: Optional[str] = None
    unwind: Optional[str] = None
    filters: tuple = ()
    active_only: bool = True
    defaults: dict = field(default_factory=dict)

    def zero(self) -> dict:
        values = {}
        for name, acc in self.accumulators.items():
            default = acc.default
            values[name] = list(default) if isinstance(default, list) else default
        values.update(self.defaults)
        return values


class AggregationEngine:
    """
    Executes metric specs against a record store.

    Every query is scoped by tenant and, when given, branch. Sub-aggregations
    passed to `run_concurrently` share nothing, so one branch's empty result
    never leaks into another's.
    """

    def __init__(self, store: RecordStore, max_workers: int = 6):
        self.store = store
        self.max_workers = max_workers
        self.logger = structlog.get_logger()

    # =========================================================================
    # Query building
    # =========================================================================

    def base_query(
        self,
        tenant_id: str,
        branch_id: Optional[str],
        window: Optional[Window],
        spec: MetricSpec,
    ) -> Query:
        """Scoped, windowed and filtered query for a spec, before grouping."""
        query = Query(spec.collection).scope(tenant_id, branch_id)
        if spec.active_only and spec.collection in (Collection.SALES.value, Collection.PURCHASES.value):
            query = query.where("status", "eq", ACTIVE)
        date_field = spec.date_field or DATE_FIELDS.get(spec.collection)
        if window is not None and date_field:
            query = query.between(date_field, window.start, window.end, window.closed)
        for path, op, value in spec.filters:
            query = query.where(path, op, value)
        if spec.unwind:
            query = query.unwind(spec.unwind)
        return query

    def aggregate(
        self,
        tenant_id: str,
        branch_id: Optional[str],
        window: Optional[Window],
        spec: MetricSpec,
    ) -> dict:
        """
        Reduce all matching records to one summary row.

        Returns:
            Accumulator results, or the MetricSpec zero defaults when nothing matched
        """
        query = self.base_query(tenant_id, branch_id, window, spec).group(None, **spec.accumulators)
        rows = self.store.execute(query)
        summary = spec.zero()
        if rows:
            summary.update({k: v for k, v in rows[0].items() if v is not None})
        return summary

    def breakdown(
        self,
        tenant_id: str,
        branch_id: Optional[str],
        window: Optional[Window],
        spec: MetricSpec,
        by: dict,
        sort: tuple = (),
        limit: Optional[int] = None,
    ) -> list[dict]:
        """Grouped aggregation returning one row per group key."""
        query = self.base_query(tenant_id, branch_id, window, spec).group(by, **spec.accumulators)
        if sort:
            query = query.sort(*sort)
        if limit is not None:
            query = query.limit(limit)
        return self.store.execute(query)

    # =========================================================================
    # Fan-out
    # =========================================================================

    def run_concurrently(self, tasks: dict[str, Callable[[], Any]]) -> dict[str, Any]:
        """
        Run independent sub-aggregations in parallel and join their results.

        A fresh pool per call keeps nested fan-outs (a report built from other
        reports) from starving each other of workers.

        Raises:
            Exception: The first failure among the tasks; tasks not yet
                started are cancelled
        """
        if not tasks:
            return {}

        workers = min(self.max_workers, len(tasks))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="bizpulse-agg") as executor:
            # Each task runs in its own copy of the caller's context so bound log fields follow it.
            futures = {
                executor.submit(contextvars.copy_context().run, fn): name for name, fn in tasks.items()
            }
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)

            for future in done:
                error = future.exception()
                if error is not None:
                    for other in pending:
                        other.cancel()
                    self.logger.warning(
                        "sub_aggregation_failed", task=futures[future], error=str(error)
                    )
                    raise error

        return {name: future.result() for future, name in futures.items()}

    # =========================================================================
    # Timelines
    # =========================================================================

    def timeline(
        self,
        tenant_id: str,
        branch_id: Optional[str],
        window: Window,
        interval: str,
    ) -> list[dict]:
        """
        Income, expense and profit per calendar bucket.

        Income is the sum of active sale totals, expense the sum of active
        purchase totals and profit the line-level realized profit. Only
        buckets with at least one record are returned, in chronological order.
        """
        sales_bucket = {"date": DateBucket("timestamp", interval)}
        purchase_bucket = {"date": DateBucket("timestamp", interval)}

        results = self.run_concurrently(
            {
                "income": lambda: self.breakdown(
                    tenant_id, branch_id, window,
                    MetricSpec(Collection.SALES.value, {"income": Sum("total_amount")}),
                    sales_bucket,
                ),
                "profit": lambda: self.breakdown(
                    tenant_id, branch_id, window,
                    MetricSpec(Collection.SALES.value, {"profit": Sum(line_profit)}, unwind="items"),
                    sales_bucket,
                ),
                "expense": lambda: self.breakdown(
                    tenant_id, branch_id, window,
                    MetricSpec(Collection.PURCHASES.value, {"expense": Sum("total_amount")}),
                    purchase_bucket,
                ),
            }
        )

        buckets: dict[str, dict] = {}
        for key in ("income", "profit", "expense"):
            for row in results[key]:
                bucket = buckets.setdefault(
                    row["date"], {"date": row["date"], "income": 0, "expense": 0, "profit": 0}
                )
                bucket[key] = row[key]

        timeline = []
        for label in sorted(buckets):
            bucket = buckets[label]
            timeline.append(
                {
                    "date": label,
                    "income": round2(bucket["income"]),
                    "expense": round2(bucket["expense"]),
                    "profit": round2(bucket["profit"]),
                    "margin": margin(bucket["profit"], bucket["income"]),
                }
            )
        return timeline


def cumulative_scan(buckets: list[dict]) -> list[dict]:
    """Attach running income, expense and net cash flow in one left-to-right pass."""
    income = 0.0
    expense = 0.0
    out = []
    for bucket in buckets:
        income += bucket.get("income", 0)
        expense += bucket.get("expense", 0)
        out.append(
            {
                **bucket,
                "cumulativeIncome": round2(income),
                "cumulativeExpense": round2(expense),
                "netCashFlow": round2(income - expense),
            }
        )
    return out


def timeline_summary(buckets: list[dict]) -> dict:
    total_income = sum(b["income"] for b in buckets)
    total_expense = sum(b["expense"] for b in buckets)
    total_profit = sum(b["profit"] for b in buckets)
    avg_margin = round1(sum(b["margin"] for b in buckets) / len(buckets)) if buckets else 0.0
    return {
        "totalIncome": round2(total_income),
        "totalExpense": round2(total_expense),
        "totalProfit": round2(total_profit),
        "avgMargin": avg_margin,
    }


__all__ = [
    "AggregationEngine",
    "MetricSpec",
    "cumulative_scan",
    "line_cost",
    "line_profit",
    "timeline_summary",
]
