"""
Short-horizon revenue forecasting.

Ordinary least squares over a chronologically sorted series of period
totals, with x = 1..n. The advanced forecast wraps the point prediction in a
fixed-width band with a caller-chosen confidence label. The band is a
heuristic, not a statistical prediction interval.
"""

from typing import Optional, Sequence

import numpy as np

from bizpulse.exceptions import InvalidReportParameter
from bizpulse.models.enums import Trend

from .metrics import round2

# Slopes within this fraction of the series magnitude are floating-point noise.
SLOPE_EPSILON = 1e-9


def fit_line(values: Sequence[float]) -> Optional[tuple[float, float]]:
    """
    Least-squares slope and intercept for `values` at x = 1..n.

    Returns:
        (slope, intercept), or None when the system is degenerate
    """
    y = np.asarray(values, dtype=float)
    n = len(y)
    if n < 2:
        return None
    x = np.arange(1, n + 1, dtype=float)

    sum_x = x.sum()
    sum_y = y.sum()
    sum_xy = (x * y).sum()
    sum_x2 = (x * x).sum()

    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return None
    slope = (n * sum_xy - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n
    return float(slope), float(intercept)


def trend_of(slope: float, scale: float = 1.0) -> str:
    tolerance = SLOPE_EPSILON * max(1.0, abs(scale))
    if slope > tolerance:
        return Trend.UP.value
    if slope < -tolerance:
        return Trend.DOWN.value
    return Trend.STABLE.value


def linear_forecast(values: Sequence[float]) -> dict:
    """
    Predict the next period's value.

    Fewer than two points yield the single known value (or 0); a degenerate
    fit yields the last observed value. Both report a stable trend.

    Returns:
        {"revenue": float, "trend": "up"|"down"|"stable", "slope": float}
    """
    values = [float(v) for v in values]
    fit = fit_line(values)
    if fit is None:
        last = values[-1] if values else 0.0
        return {"revenue": round2(last), "trend": Trend.STABLE.value, "slope": 0.0}

    slope, intercept = fit
    n = len(values)
    predicted = max(0.0, slope * (n + 1) + intercept)
    trend = trend_of(slope, max(abs(v) for v in values))
    return {"revenue": round2(predicted), "trend": trend, "slope": slope}


def advanced_forecast(
    values: Sequence[float],
    periods: int = 3,
    confidence: float = 0.95,
    band: float = 0.2,
    labels: Optional[Sequence[str]] = None,
) -> dict:
    """
    Multi-period forecast with a fixed heuristic band.

    Each period k is projected along the fitted line at x = n + k. The lower
    and upper bounds are the prediction scaled by (1 - band) and (1 + band);
    `confidence` is reported as given and does not widen or narrow the band.

    Args:
        values: Historical period totals, oldest first
        periods: Number of future periods to project
        confidence: Confidence label in (0, 1), reported as a percentage
        band: Relative band half-width in (0, 1)
        labels: Optional names for the projected periods

    Raises:
        InvalidReportParameter: If periods, confidence or band are out of range
    """
    if periods < 1:
        raise InvalidReportParameter("periods must be at least 1", periods=periods)
    if not 0 < confidence < 1:
        raise InvalidReportParameter("confidence must be between 0 and 1", confidence=confidence)
    if not 0 < band < 1:
        raise InvalidReportParameter("band must be between 0 and 1", band=band)

    values = [float(v) for v in values]
    base = linear_forecast(values)
    fit = fit_line(values)
    n = len(values)
    growth = {Trend.UP.value: 10, Trend.DOWN.value: -10}.get(base["trend"], 0)

    forecast = []
    for k in range(1, periods + 1):
        if fit is None:
            predicted = base["revenue"]
        else:
            slope, intercept = fit
            predicted = max(0.0, slope * (n + k) + intercept)
        forecast.append(
            {
                "period": labels[k - 1] if labels and k <= len(labels) else f"Period +{k}",
                "predictedRevenue": round2(predicted),
                "lowerBound": round2(max(0.0, predicted * (1 - band))),
                "upperBound": round2(predicted * (1 + band)),
                "confidence": round(confidence * 100),
                "growth": growth,
            }
        )

    return {
        "forecast": forecast,
        "trend": base["trend"],
        "accuracy": "medium" if n >= 3 else "low",
        "historicalDataPoints": n,
        "model": "linear_regression",
        "method": f"fixed +/-{round(band * 100)}% band around the point forecast (heuristic)",
    }
