"""
Enumeration types for the analytics engine.

All enums inherit from str to ensure JSON serialization compatibility and so
that stored records can be compared against plain strings.
"""

from enum import Enum


class Collection(str, Enum):
    """Record collections held by the record store."""

    SALES = "sales"
    PURCHASES = "purchases"
    PAYMENTS = "payments"
    ACCOUNTING_ENTRIES = "accounting_entries"
    CUSTOMERS = "customers"
    PRODUCTS = "products"


class TransactionStatus(str, Enum):
    """
    Lifecycle status of sales and purchases.

    Only ACTIVE transactions contribute to revenue/expense aggregates.
    """

    ACTIVE = "active"
    DRAFT = "draft"
    CANCELLED = "cancelled"


class PaymentDirection(str, Enum):
    INFLOW = "inflow"
    OUTFLOW = "outflow"


class CustomerType(str, Enum):
    INDIVIDUAL = "individual"
    BUSINESS = "business"


class Interval(str, Enum):
    """Timeline bucket granularity."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    AUTO = "auto"


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class RfmSegment(str, Enum):
    """Named customer segments, in report order."""

    CHAMPION = "Champion"
    AT_RISK = "At Risk"
    LOYAL = "Loyal"
    NEW_CUSTOMER = "New Customer"
    STANDARD = "Standard"


class ExportType(str, Enum):
    SALES = "sales"
    INVENTORY = "inventory"
    CUSTOMERS = "customers"


class ReportType(str, Enum):
    """
    Every report the analytics facade can compute.

    The value doubles as the report segment of cache keys.
    """

    EXECUTIVE = "executive"
    CHART = "chart"
    CASH_FLOW = "cash_flow"
    TAX = "tax"
    GROSS_PROFIT = "gross_profit"
    FORECAST = "forecast"
    ADVANCED_FORECAST = "advanced_forecast"
    PRODUCT_PERFORMANCE = "product_performance"
    INVENTORY = "inventory"
    DEAD_STOCK = "dead_stock"
    RUN_RATE = "run_rate"
    INVENTORY_TURNOVER = "inventory_turnover"
    INVENTORY_HEALTH = "inventory_health"
    DEBTOR_AGING = "debtor_aging"
    PROCUREMENT = "procurement"
    CUSTOMER_RISK = "customer_risk"
    CHURN_RISK = "churn_risk"
    RFM = "rfm"
    COHORT = "cohort"
    LTV = "ltv"
    PAYMENT_HABITS = "payment_habits"
    BASKET = "basket"
    LEADERBOARDS = "leaderboards"
    OPERATIONAL = "operational"
    BRANCH_COMPARISON = "branch_comparison"
    PEAK_HOURS = "peak_hours"
    CRITICAL_ALERTS = "critical_alerts"
    EXPORT = "export"
