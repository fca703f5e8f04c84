"""
Query builder for record-store aggregations.

A `Query` is an immutable pipeline of stages applied to one collection:
match -> unwind -> group -> project -> sort -> limit. Stores may push the
leading match stages down into their native engine, but every store finishes
the pipeline with `evaluate()` so results are identical across backends.

Example:
    >>> q = (
    ...     Query("sales")
    ...     .scope("org-1", "main")
    ...     .where("status", "eq", "active")
    ...     .between("timestamp", start, end)
    ...     .group(None, revenue=Sum("total_amount"), count=Count())
    ... )
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Optional, Union

Path = Union[str, Callable[[dict], Any]]

_MISSING = object()


def resolve(row: dict, path: Path) -> Any:
    """Resolve a dotted path (or callable) against a row; missing keys yield None."""
    if callable(path):
        return path(row)
    value: Any = row
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part, _MISSING)
        if value is _MISSING:
            return None
    return value


def _compare(op: str, left: Any, right: Any) -> bool:
    if op == "exists":
        return (left is not None) == bool(right)
    if op == "eq":
        return left == right
    if op == "ne":
        return left != right
    if op == "in":
        return left in right
    if op == "nin":
        return left not in right
    if left is None or right is None:
        return False
    if op == "gt":
        return left > right
    if op == "gte":
        return left >= right
    if op == "lt":
        return left < right
    if op == "lte":
        return left <= right
    raise ValueError(f"Unsupported match operator: {op}")


OPERATORS = frozenset({"eq", "ne", "gt", "gte", "lt", "lte", "in", "nin", "exists"})


# =============================================================================
# Bucketing
# =============================================================================

BUCKET_FORMATS = {
    "day": "%Y-%m-%d",
    "week": "%G-W%V",
    "month": "%Y-%m",
    "year": "%Y",
}


@dataclass(frozen=True)
class DateBucket:
    """Group key that truncates a datetime field to a calendar bucket label."""

    path: str
    interval: str

    def __post_init__(self):
        if self.interval not in BUCKET_FORMATS:
            raise ValueError(f"Unsupported bucket interval: {self.interval}")

    def label(self, row: dict) -> Optional[str]:
        value = resolve(row, self.path)
        if not isinstance(value, datetime):
            return None
        return value.strftime(BUCKET_FORMATS[self.interval])


# =============================================================================
# Accumulators
# =============================================================================


@dataclass(frozen=True)
class Accumulator:
    """Reduces the rows of one group to a single value."""

    path: Optional[Path] = None
    default: Any = 0

    def values(self, rows: list[dict]) -> list:
        return [v for v in (resolve(r, self.path) for r in rows) if v is not None]

    def reduce(self, rows: list[dict]) -> Any:
        raise NotImplementedError


@dataclass(frozen=True)
class Sum(Accumulator):
    def reduce(self, rows):
        return sum(self.values(rows))


@dataclass(frozen=True)
class Count(Accumulator):
    def reduce(self, rows):
        if self.path is None:
            return len(rows)
        return len(self.values(rows))


@dataclass(frozen=True)
class CountDistinct(Accumulator):
    def reduce(self, rows):
        return len(set(self.values(rows)))


@dataclass(frozen=True)
class Avg(Accumulator):
    def reduce(self, rows):
        values = self.values(rows)
        return sum(values) / len(values) if values else 0


@dataclass(frozen=True)
class Min(Accumulator):
    default: Any = None

    def reduce(self, rows):
        values = self.values(rows)
        return min(values) if values else None


@dataclass(frozen=True)
class Max(Accumulator):
    default: Any = None

    def reduce(self, rows):
        values = self.values(rows)
        return max(values) if values else None


@dataclass(frozen=True)
class First(Accumulator):
    default: Any = None

    def reduce(self, rows):
        values = self.values(rows)
        return values[0] if values else None


@dataclass(frozen=True)
class AddToSet(Accumulator):
    """Distinct values, sorted so results are deterministic."""

    default: Any = field(default_factory=list)

    def reduce(self, rows):
        return sorted(set(self.values(rows)), key=lambda v: (str(type(v)), v))


@dataclass(frozen=True)
class Push(Accumulator):
    default: Any = field(default_factory=list)

    def reduce(self, rows):
        return self.values(rows)


# =============================================================================
# Stages
# =============================================================================


@dataclass(frozen=True)
class Match:
    path: str
    op: str
    value: Any

    def apply(self, rows: list[dict]) -> list[dict]:
        return [r for r in rows if _compare(self.op, resolve(r, self.path), self.value)]


@dataclass(frozen=True)
class Unwind:
    """Emit one row per element of a list field; rows with an empty list are dropped."""

    path: str

    def __post_init__(self):
        if "." in self.path:
            raise ValueError(f"Only top-level list fields can be unwound: {self.path}")

    def apply(self, rows):
        out = []
        for row in rows:
            for element in row.get(self.path) or []:
                copy = dict(row)
                copy[self.path] = element
                out.append(copy)
        return out


@dataclass(frozen=True)
class Group:
    by: Optional[tuple]
    accumulators: tuple

    def apply(self, rows):
        if self.by is None:
            if not rows:
                return []
            return [{name: acc.reduce(rows) for name, acc in self.accumulators}]

        groups: dict[tuple, list[dict]] = {}
        for row in rows:
            key = tuple(
                k.label(row) if isinstance(k, DateBucket) else resolve(row, k) for _, k in self.by
            )
            groups.setdefault(key, []).append(row)

        out = []
        for key, members in groups.items():
            result = {name: value for (name, _), value in zip(self.by, key)}
            for name, acc in self.accumulators:
                result[name] = acc.reduce(members)
            out.append(result)
        return out


@dataclass(frozen=True)
class Project:
    fields: tuple

    def apply(self, rows):
        return [{name: resolve(r, path) for name, path in self.fields} for r in rows]


@dataclass(frozen=True)
class Sort:
    keys: tuple

    def apply(self, rows):
        ordered = list(rows)
        # Stable multi-key sort: apply keys from least to most significant.
        for key in reversed(self.keys):
            descending = key.startswith("-")
            path = key.lstrip("-")
            present = [r for r in ordered if resolve(r, path) is not None]
            missing = [r for r in ordered if resolve(r, path) is None]
            present.sort(key=lambda r: resolve(r, path), reverse=descending)
            ordered = present + missing
        return ordered


@dataclass(frozen=True)
class Limit:
    n: int

    def apply(self, rows):
        return rows[: self.n]


Stage = Union[Match, Unwind, Group, Project, Sort, Limit]


def evaluate(rows: list[dict], stages: tuple) -> list[dict]:
    """Run a pipeline over already-loaded rows."""
    for stage in stages:
        rows = stage.apply(rows)
    return rows


# =============================================================================
# Query
# =============================================================================


@dataclass(frozen=True)
class Query:
    """Immutable aggregation pipeline over one record collection."""

    collection: str
    stages: tuple = ()

    def _add(self, stage) -> "Query":
        return replace(self, stages=self.stages + (stage,))

    def where(self, path: str, op: str, value: Any) -> "Query":
        if op not in OPERATORS:
            raise ValueError(f"Unsupported match operator: {op}")
        return self._add(Match(path, op, value))

    def scope(self, tenant_id: str, branch_id: Optional[str] = None) -> "Query":
        """Restrict to one tenant and, when given, one branch."""
        query = self.where("tenant_id", "eq", tenant_id)
        if branch_id:
            query = query.where("branch_id", "eq", branch_id)
        return query

    def between(self, path: str, start: datetime, end: datetime, include_end: bool = True) -> "Query":
        return self.where(path, "gte", start).where(path, "lte" if include_end else "lt", end)

    def unwind(self, path: str) -> "Query":
        return self._add(Unwind(path))

    def group(self, by: Optional[dict] = None, **accumulators: Accumulator) -> "Query":
        """
        Group rows and reduce each group with named accumulators.

        Args:
            by: Output key name -> dotted path or DateBucket. None groups every
                row into a single result (and yields nothing for empty input).
            **accumulators: Output field name -> Accumulator
        """
        by_items = tuple(by.items()) if by is not None else None
        return self._add(Group(by_items, tuple(accumulators.items())))

    def project(self, **fields: Path) -> "Query":
        return self._add(Project(tuple(fields.items())))

    def sort(self, *keys: str) -> "Query":
        return self._add(Sort(keys))

    def limit(self, n: int) -> "Query":
        return self._add(Limit(n))

    def leading_matches(self) -> list[Match]:
        """Match stages that precede any reshaping stage (safe to push down)."""
        matches = []
        for stage in self.stages:
            if not isinstance(stage, Match):
                break
            matches.append(stage)
        return matches
