"""
Derived metric calculators.

Pure functions over already-aggregated numbers. None of them raise on a zero
denominator; a ratio with nothing to compare against is reported as 0.
"""

from typing import Optional


def round1(value: float) -> float:
    return round(float(value), 1)


def round2(value: float) -> float:
    return round(float(value), 2)


def growth(current: float, previous: float) -> float:
    """
    Percentage change from `previous` to `current`.

    Returns 0 when both are zero and 100 when only the previous value is zero.
    """
    if previous == 0:
        return 0.0 if current == 0 else 100.0
    return round1((current - previous) / previous * 100)


def percentage(part: float, total: float) -> float:
    if total == 0:
        return 0.0
    return round1(part / total * 100)


def margin(profit: float, revenue: float) -> float:
    """Profit margin as a percentage of revenue."""
    return percentage(profit, revenue)


def profit_status(profit: float) -> str:
    return "profitable" if profit >= 0 else "loss"


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    if not denominator:
        return default
    return numerator / denominator


def unit_margin(selling_price: float, purchase_price: float) -> float:
    """Markup over purchase price, in percent; 100 when the product cost nothing."""
    if purchase_price <= 0:
        return 100.0
    return round1((selling_price - purchase_price) / purchase_price * 100)


def turnover_interpretation(ratio: float) -> str:
    if ratio >= 4:
        return "Fast"
    if ratio >= 2:
        return "Moderate"
    return "Slow"


def inventory_health_score(
    low_stock_count: int,
    dead_stock_count: int,
    turnover_ratio: float,
    high_margin_count: int,
) -> int:
    """
    Composite 0-100 inventory score.

    Starts at 100, loses up to 30 points for low stock and up to 20 for dead
    stock, gains 10 for fast turnover and 10 for a healthy high-margin range.
    """
    score = 100
    score -= min(low_stock_count * 2, 30)
    score -= min(dead_stock_count, 20)
    if turnover_ratio > 4:
        score += 10
    if high_margin_count > 5:
        score += 10
    return max(0, min(100, score))


def ltv_tier(total_spent: float) -> str:
    if total_spent > 50000:
        return "Platinum"
    if total_spent > 20000:
        return "Gold"
    if total_spent > 5000:
        return "Silver"
    return "Bronze"


def payment_rating(avg_days_to_pay: Optional[float]) -> str:
    if avg_days_to_pay is None:
        return "Unknown"
    if avg_days_to_pay <= 7:
        return "Excellent"
    if avg_days_to_pay <= 30:
        return "Good"
    if avg_days_to_pay <= 60:
        return "Fair"
    return "Poor"


def stock_urgency(quantity: float, reorder_level: float) -> Optional[str]:
    """`critical` at or below half the reorder level, `warning` at or below it."""
    if quantity <= reorder_level * 0.5:
        return "critical"
    if quantity <= reorder_level:
        return "warning"
    return None
