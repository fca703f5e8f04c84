"""
Unit tests for the query builder, the pipeline evaluator and the in-memory
record store.
"""

from datetime import datetime

import pytest

from bizpulse.models.enums import Collection
from bizpulse.storage import (
    AddToSet,
    Avg,
    Count,
    CountDistinct,
    DateBucket,
    First,
    Max,
    Min,
    Push,
    Query,
    StorageError,
    Sum,
    evaluate,
    resolve,
)
from tests.conftest import OTHER_TENANT, TENANT, make_line, make_sale

ROWS = [
    {"id": "1", "shop": "a", "amount": 10, "ts": datetime(2026, 1, 5), "tags": ["x", "y"], "meta": {"k": 1}},
    {"id": "2", "shop": "a", "amount": 30, "ts": datetime(2026, 1, 20), "tags": ["y"], "meta": {"k": 2}},
    {"id": "3", "shop": "b", "amount": 5, "ts": datetime(2026, 2, 2), "tags": [], "meta": {}},
    {"id": "4", "shop": None, "amount": None, "ts": datetime(2026, 2, 3), "tags": ["z"]},
]


class TestResolve:
    """Test suite for path resolution."""

    def test_dotted_path(self):
        assert resolve(ROWS[0], "meta.k") == 1

    def test_missing_path_is_none(self):
        assert resolve(ROWS[2], "meta.k") is None
        assert resolve(ROWS[3], "meta.k") is None

    def test_callable_path(self):
        assert resolve(ROWS[0], lambda r: r["amount"] * 2) == 20


class TestStages:
    """Test suite for individual pipeline stages."""

    def test_match_operators(self):
        q = Query("t").where("amount", "gte", 10)
        assert [r["id"] for r in evaluate(ROWS, q.stages)] == ["1", "2"]
        q = Query("t").where("shop", "in", ("b",))
        assert [r["id"] for r in evaluate(ROWS, q.stages)] == ["3"]
        q = Query("t").where("shop", "exists", False)
        assert [r["id"] for r in evaluate(ROWS, q.stages)] == ["4"]

    def test_comparisons_against_none_never_match(self):
        q = Query("t").where("amount", "lt", 100)
        assert "4" not in [r["id"] for r in evaluate(ROWS, q.stages)]

    def test_unknown_operator_rejected(self):
        with pytest.raises(ValueError):
            Query("t").where("amount", "regex", ".*")

    def test_between_end_inclusion(self):
        closed = Query("t").between("ts", datetime(2026, 1, 5), datetime(2026, 1, 20))
        half_open = Query("t").between("ts", datetime(2026, 1, 5), datetime(2026, 1, 20), include_end=False)
        assert len(evaluate(ROWS, closed.stages)) == 2
        assert len(evaluate(ROWS, half_open.stages)) == 1

    def test_unwind_drops_empty_lists(self):
        rows = evaluate(ROWS, Query("t").unwind("tags").stages)
        assert [(r["id"], r["tags"]) for r in rows] == [("1", "x"), ("1", "y"), ("2", "y"), ("4", "z")]

    def test_unwind_rejects_nested_paths(self):
        with pytest.raises(ValueError):
            Query("t").unwind("meta.items")

    def test_group_all_rows(self):
        q = Query("t").group(None, total=Sum("amount"), n=Count(), shops=CountDistinct("shop"))
        assert evaluate(ROWS, q.stages) == [{"total": 45, "n": 4, "shops": 2}]

    def test_group_all_on_empty_input_yields_nothing(self):
        assert evaluate([], Query("t").group(None, total=Sum("amount")).stages) == []

    def test_group_by_key_with_accumulators(self):
        q = (
            Query("t")
            .where("shop", "exists", True)
            .group(
                {"shop": "shop"},
                avg=Avg("amount"),
                lo=Min("ts"),
                hi=Max("ts"),
                first=First("id"),
                tags=AddToSet("id"),
                ids=Push("id"),
            )
            .sort("shop")
        )
        a, b = evaluate(ROWS, q.stages)
        assert a["shop"] == "a"
        assert a["avg"] == 20
        assert a["lo"] == datetime(2026, 1, 5) and a["hi"] == datetime(2026, 1, 20)
        assert a["first"] == "1"
        assert a["ids"] == ["1", "2"]
        assert b == {
            "shop": "b", "avg": 5, "lo": datetime(2026, 2, 2), "hi": datetime(2026, 2, 2),
            "first": "3", "tags": ["3"], "ids": ["3"],
        }

    def test_group_by_date_bucket(self):
        q = Query("t").group({"month": DateBucket("ts", "month")}, n=Count()).sort("month")
        assert evaluate(ROWS, q.stages) == [{"month": "2026-01", "n": 2}, {"month": "2026-02", "n": 2}]

    def test_week_bucket_keeps_calendar_week_across_new_year(self):
        bucket = DateBucket("ts", "week")
        assert bucket.label({"ts": datetime(2025, 12, 29)}) == "2026-W01"
        assert bucket.label({"ts": datetime(2026, 1, 1)}) == "2026-W01"
        assert bucket.label({"ts": datetime(2026, 1, 5)}) == "2026-W02"

    def test_date_bucket_rejects_unknown_interval(self):
        with pytest.raises(ValueError):
            DateBucket("ts", "quarter")

    def test_sort_descending_with_none_last_and_tiebreak(self):
        q = Query("t").sort("-amount", "id")
        assert [r["id"] for r in evaluate(ROWS, q.stages)] == ["2", "1", "3", "4"]

    def test_sort_multi_key_is_stable(self):
        q = Query("t").sort("shop", "-amount")
        assert [r["id"] for r in evaluate(ROWS, q.stages)] == ["2", "1", "3", "4"]

    def test_project_and_limit(self):
        q = Query("t").project(key="id", k="meta.k").limit(2)
        assert evaluate(ROWS, q.stages) == [{"key": "1", "k": 1}, {"key": "2", "k": 2}]

    def test_query_is_immutable(self):
        base = Query("t").where("shop", "eq", "a")
        narrowed = base.limit(1)
        assert len(base.stages) == 1
        assert len(narrowed.stages) == 2

    def test_leading_matches_stop_at_reshaping_stage(self):
        q = Query("t").scope(TENANT, "main").unwind("tags").where("tags", "eq", "x")
        assert [m.path for m in q.leading_matches()] == ["tenant_id", "branch_id"]


class TestMemoryRecordStore:
    """Test suite for MemoryRecordStore."""

    def test_insert_validates_and_upserts(self, memory_store):
        sale = make_sale(id="s1", items=[make_line(quantity=2)])
        assert memory_store.insert(Collection.SALES.value, [sale]) == 1
        assert memory_store.insert(Collection.SALES.value, [sale.model_dump()]) == 1
        assert memory_store.count(Collection.SALES.value) == 1

    def test_unknown_collection_rejected(self, memory_store):
        with pytest.raises(StorageError):
            memory_store.insert("invoices", [{}])

    def test_invalid_record_rejected(self, memory_store):
        with pytest.raises(ValueError):
            memory_store.insert(Collection.SALES.value, [{"tenant_id": "", "branch_id": "main"}])

    def test_scope_isolates_tenants(self, memory_store):
        memory_store.insert(
            Collection.SALES.value,
            [make_sale(id="a"), make_sale(id="b", tenant_id=OTHER_TENANT)],
        )
        rows = memory_store.execute(Query(Collection.SALES.value).scope(TENANT))
        assert [r["id"] for r in rows] == ["a"]

    def test_results_are_copies(self, memory_store):
        memory_store.insert(Collection.SALES.value, [make_sale(id="a")])
        rows = memory_store.execute(Query(Collection.SALES.value))
        rows[0]["total_amount"] = -1
        again = memory_store.execute(Query(Collection.SALES.value))
        assert again[0]["total_amount"] == 100.0

    def test_enum_values_stored_as_strings(self, memory_store):
        memory_store.insert(Collection.SALES.value, [make_sale(id="a")])
        row = memory_store.execute(Query(Collection.SALES.value))[0]
        assert row["status"] == "active"
        assert row["items"][0]["line_total"] == 100.0
