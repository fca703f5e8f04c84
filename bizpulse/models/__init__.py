"""
Pydantic v2 data models for the BizPulse analytics engine.

Model Organization:
    - enums: Enumeration types (statuses, intervals, report types)
    - records: Transactional records read from the record store
    - reports: Report response envelope

Usage:
    >>> from bizpulse.models import SaleTransaction, LineItem
    >>> sale = SaleTransaction(
    ...     tenant_id="org-1",
    ...     branch_id="main",
    ...     timestamp=datetime(2026, 3, 2, 10, 30),
    ...     items=[LineItem(product_id="p1", quantity=2, unit_price=50, cost_at_sale=30)],
    ...     total_amount=100,
    ... )
"""

from .enums import (
    Collection,
    CustomerType,
    ExportType,
    Interval,
    PaymentDirection,
    ReportType,
    RfmSegment,
    TransactionStatus,
    Trend,
)
from .records import (
    DATE_FIELDS,
    RECORD_MODELS,
    AccountingEntry,
    Customer,
    InventoryLevel,
    LineItem,
    PaymentRecord,
    Product,
    PurchaseTransaction,
    SaleTransaction,
)
from .reports import ReportError, ReportResponse

__all__ = [
    # Enums
    "Collection",
    "CustomerType",
    "ExportType",
    "Interval",
    "PaymentDirection",
    "ReportType",
    "RfmSegment",
    "TransactionStatus",
    "Trend",
    # Records
    "AccountingEntry",
    "Customer",
    "InventoryLevel",
    "LineItem",
    "PaymentRecord",
    "Product",
    "PurchaseTransaction",
    "SaleTransaction",
    "RECORD_MODELS",
    "DATE_FIELDS",
    # Reports
    "ReportError",
    "ReportResponse",
]
