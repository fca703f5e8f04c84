"""
Analytics engine: window resolution, aggregation, derived metrics,
forecasting, segmentation, basket mining and inventory signals.
"""

from .aggregation import AggregationEngine, MetricSpec, cumulative_scan, timeline_summary
from .forecasting import advanced_forecast, linear_forecast
from .metrics import growth, margin, percentage, profit_status
from .windows import Window, previous_window, resolve_interval, resolve_window, today_window

__all__ = [
    "AggregationEngine",
    "MetricSpec",
    "Window",
    "advanced_forecast",
    "cumulative_scan",
    "growth",
    "linear_forecast",
    "margin",
    "percentage",
    "previous_window",
    "profit_status",
    "resolve_interval",
    "resolve_window",
    "timeline_summary",
    "today_window",
]
