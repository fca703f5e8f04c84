"""
Error taxonomy for the analytics engine.

Validation errors (MissingTenant, InvalidDateRange, InvalidReportParameter)
are raised before any query is issued. UpstreamQueryFailure wraps record-store
and computation failures with the report context needed to diagnose them.
CacheUnavailable never leaves the cache layer.
"""

from typing import Any, Optional


class AnalyticsError(Exception):
    """Base exception for all analytics engine failures."""

    code = "analytics_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "context": self.context}


class MissingTenant(AnalyticsError):
    """Required tenant scope is absent."""

    code = "missing_tenant"

    def __init__(self, report: Optional[str] = None):
        super().__init__("tenant_id is required", report=report)


class InvalidDateRange(AnalyticsError):
    """Start/end date is unparsable or the range is inverted."""

    code = "invalid_date_range"


class InvalidReportParameter(AnalyticsError):
    """A report parameter (interval, export type, threshold) is not supported."""

    code = "invalid_report_parameter"


class UpstreamQueryFailure(AnalyticsError):
    """A report could not be computed because a sub-aggregation failed."""

    code = "upstream_query_failure"

    def __init__(
        self,
        report: str,
        tenant_id: str,
        window: Optional[dict] = None,
        cause: Optional[BaseException] = None,
    ):
        detail = f": {cause}" if cause is not None else ""
        super().__init__(
            f"Failed to compute report '{report}' for tenant {tenant_id}{detail}",
            report=report,
            tenant_id=tenant_id,
            window=window,
        )
        self.report = report
        self.tenant_id = tenant_id
        self.window = window


class CacheUnavailable(AnalyticsError):
    """The cache backend cannot be reached or returned an unusable payload."""

    code = "cache_unavailable"
