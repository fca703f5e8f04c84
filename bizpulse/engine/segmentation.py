"""
Customer segmentation: RFM scoring and cohort retention.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from bizpulse.models.enums import RfmSegment

SEGMENT_ORDER = [s.value for s in RfmSegment]


@dataclass(frozen=True)
class RfmScore:
    recency: int
    frequency: int
    monetary: int


def score_rfm(recency_days: float, frequency: int, monetary: float) -> RfmScore:
    """Score each dimension on a 1-3 scale using fixed thresholds."""
    r = 3 if recency_days < 30 else (2 if recency_days < 90 else 1)
    f = 3 if frequency > 10 else (2 if frequency > 3 else 1)
    m = 3 if monetary > 50000 else (2 if monetary > 10000 else 1)
    return RfmScore(r, f, m)


def label_segment(score: RfmScore) -> str:
    """First matching rule wins."""
    if score.recency == 3 and score.frequency == 3 and score.monetary == 3:
        return RfmSegment.CHAMPION.value
    if score.recency == 1 and score.monetary == 3:
        return RfmSegment.AT_RISK.value
    if score.recency == 3 and score.frequency == 1:
        return RfmSegment.NEW_CUSTOMER.value
    if score.frequency == 3:
        return RfmSegment.LOYAL.value
    return RfmSegment.STANDARD.value


def recency_days(last_purchase: datetime, now: datetime) -> int:
    return (now - last_purchase).days


def segment_counts(profiles: Iterable[dict], now: datetime) -> dict[str, int]:
    """
    Count customers per RFM segment.

    Args:
        profiles: Rows with `last_purchase`, `frequency` and `monetary`
        now: Reference time for recency

    Returns:
        Segment name -> count, always including all five segments
    """
    counts = {name: 0 for name in SEGMENT_ORDER}
    for profile in profiles:
        score = score_rfm(
            recency_days(profile["last_purchase"], now),
            profile.get("frequency", 0),
            profile.get("monetary", 0),
        )
        counts[label_segment(score)] += 1
    return counts


def month_key(value: datetime) -> str:
    return value.strftime("%Y-%m")


def cohort_matrix(purchases: Iterable[tuple[Optional[str], datetime]]) -> list[dict]:
    """
    Distinct active customers per (cohort month, activity month).

    A customer's cohort is the calendar month of their first purchase in the
    supplied purchases. Purchases without a customer are ignored.

    Returns:
        [{"cohort", "activityMonth", "count"}] sorted by cohort then activity
        month; only nonzero cells appear
    """
    first_seen: dict[str, datetime] = {}
    activity: dict[str, set[str]] = {}
    for customer_id, timestamp in purchases:
        if not customer_id:
            continue
        if customer_id not in first_seen or timestamp < first_seen[customer_id]:
            first_seen[customer_id] = timestamp
        activity.setdefault(customer_id, set()).add(month_key(timestamp))

    cells: dict[tuple[str, str], int] = {}
    for customer_id, months in activity.items():
        cohort = month_key(first_seen[customer_id])
        for month in months:
            cells[(cohort, month)] = cells.get((cohort, month), 0) + 1

    return [
        {"cohort": cohort, "activityMonth": month, "count": count}
        for (cohort, month), count in sorted(cells.items())
    ]
