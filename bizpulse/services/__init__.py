"""
Report services.

`AnalyticsService` is the public facade; the domain services behind it
compute one family of reports each from a resolved `ReportContext`.
"""

from .analytics_service import AnalyticsService, normalize
from .base import BaseReportService, ReportContext
from .customers import CustomerReportService
from .executive import ExecutiveReportService
from .export import ExportService
from .financial import FinancialReportService
from .inventory import InventoryReportService
from .sales import SalesReportService

__all__ = [
    "AnalyticsService",
    "BaseReportService",
    "CustomerReportService",
    "ExecutiveReportService",
    "ExportService",
    "FinancialReportService",
    "InventoryReportService",
    "ReportContext",
    "SalesReportService",
    "normalize",
]
