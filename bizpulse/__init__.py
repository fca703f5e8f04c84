"""
BizPulse: analytics aggregation and forecasting engine.

Turns (tenant, branch, time window) queries over transactional records into
KPIs, timelines, segmentations, inventory signals and short-horizon forecasts,
fronted by a fail-open report cache.
"""

__version__ = "0.1.0"
