"""
Pytest configuration and shared fixtures for the bizpulse test suite.

Provides record factories, a fixed reference clock, a small hand-checked
tenant dataset and services wired to in-memory stores and caches. Shared by
unit, integration, golden and property-based tests.
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

import pytest

from bizpulse.cache import InMemoryReportCache
from bizpulse.config import Settings
from bizpulse.models.enums import Collection, CustomerType, PaymentDirection, TransactionStatus
from bizpulse.models.records import (
    AccountingEntry,
    Customer,
    InventoryLevel,
    LineItem,
    PaymentRecord,
    Product,
    PurchaseTransaction,
    SaleTransaction,
)
from bizpulse.services import AnalyticsService
from bizpulse.storage import MemoryRecordStore

TENANT = "org-1"
OTHER_TENANT = "org-2"
NOW = datetime(2026, 3, 15, 12, 0, 0)


# ---------------------------------------------------------------------------
# Record factories, shared by all test suites
# ---------------------------------------------------------------------------


def make_line(
    product_id: str = "p-widget",
    quantity: float = 1,
    unit_price: float = 100.0,
    cost_at_sale: float = 40.0,
    name: Optional[str] = None,
) -> LineItem:
    """Factory function for sale line items."""
    return LineItem(
        product_id=product_id,
        name=name or product_id.removeprefix("p-").title(),
        quantity=quantity,
        unit_price=unit_price,
        cost_at_sale=cost_at_sale,
    )


def make_sale(
    timestamp: datetime = NOW,
    items: Optional[list[LineItem]] = None,
    total_amount: Optional[float] = None,
    tenant_id: str = TENANT,
    branch_id: str = "main",
    customer_id: Optional[str] = None,
    status: TransactionStatus = TransactionStatus.ACTIVE,
    due_amount: float = 0.0,
    **overrides,
) -> SaleTransaction:
    """Factory for sales; the total defaults to the sum of line totals."""
    items = items if items is not None else [make_line()]
    if total_amount is None:
        total_amount = sum(item.line_total for item in items)
    defaults = dict(
        id=f"s-{uuid4().hex[:8]}",
        tenant_id=tenant_id,
        branch_id=branch_id,
        customer_id=customer_id,
        timestamp=timestamp,
        status=status,
        items=items,
        total_amount=total_amount,
        due_amount=due_amount,
    )
    defaults.update(overrides)
    return SaleTransaction(**defaults)


def make_purchase(
    timestamp: datetime = NOW,
    total_amount: float = 100.0,
    tenant_id: str = TENANT,
    branch_id: str = "main",
    supplier_id: str = "sup-1",
    **overrides,
) -> PurchaseTransaction:
    defaults = dict(
        id=f"pu-{uuid4().hex[:8]}",
        tenant_id=tenant_id,
        branch_id=branch_id,
        supplier_id=supplier_id,
        timestamp=timestamp,
        total_amount=total_amount,
    )
    defaults.update(overrides)
    return PurchaseTransaction(**defaults)


def make_payment(
    amount: float = 100.0,
    date: datetime = NOW,
    method: str = "cash",
    direction: PaymentDirection = PaymentDirection.INFLOW,
    tenant_id: str = TENANT,
    branch_id: str = "main",
    **overrides,
) -> PaymentRecord:
    defaults = dict(
        tenant_id=tenant_id,
        branch_id=branch_id,
        direction=direction,
        method=method,
        amount=amount,
        date=date,
    )
    defaults.update(overrides)
    return PaymentRecord(**defaults)


def make_entry(
    date: datetime = NOW,
    credit: float = 0.0,
    reference_type: str = "payment",
    tenant_id: str = TENANT,
    **overrides,
) -> AccountingEntry:
    defaults = dict(
        tenant_id=tenant_id,
        branch_id="main",
        credit=credit,
        reference_type=reference_type,
        date=date,
    )
    defaults.update(overrides)
    return AccountingEntry(**defaults)


def make_customer(
    customer_id: Optional[str] = None,
    name: str = "Customer",
    created_at: datetime = datetime(2025, 1, 1),
    customer_type: CustomerType = CustomerType.INDIVIDUAL,
    tenant_id: str = TENANT,
    **overrides,
) -> Customer:
    defaults = dict(
        id=customer_id or f"c-{uuid4().hex[:8]}",
        tenant_id=tenant_id,
        name=name,
        customer_type=customer_type,
        created_at=created_at,
    )
    defaults.update(overrides)
    return Customer(**defaults)


def make_product(
    product_id: Optional[str] = None,
    name: str = "Product",
    purchase_price: float = 10.0,
    selling_price: float = 20.0,
    stock: Optional[dict[str, tuple[float, float]]] = None,
    tenant_id: str = TENANT,
    **overrides,
) -> Product:
    """Factory for products; `stock` maps branch id -> (quantity, reorder level)."""
    stock = stock if stock is not None else {"main": (10, 2)}
    defaults = dict(
        id=product_id or f"p-{uuid4().hex[:8]}",
        tenant_id=tenant_id,
        name=name,
        purchase_price=purchase_price,
        selling_price=selling_price,
        inventory=[
            InventoryLevel(branch_id=branch, quantity=qty, reorder_level=reorder)
            for branch, (qty, reorder) in stock.items()
        ],
    )
    defaults.update(overrides)
    return Product(**defaults)


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Reference dataset
# ---------------------------------------------------------------------------


def seed_reference_data(store) -> None:
    """
    A small tenant whose report values are easy to check by hand.

    Current month (2026-03): three active sales (350 + 100 + 60) and one
    cancelled sale; earlier months: 160 in February and 90 in January.
    """
    widget = lambda qty: make_line("p-widget", qty, 100.0, 40.0, name="Widget")  # noqa: E731
    gadget = lambda qty: make_line("p-gadget", qty, 30.0, 10.0, name="Gadget")  # noqa: E731

    store.insert(
        Collection.PRODUCTS.value,
        [
            make_product(
                "p-widget", "Widget", 40.0, 100.0, {"main": (5, 20), "north": (50, 10)},
                sku="W-1", category="tools",
            ),
            make_product("p-gadget", "Gadget", 10.0, 30.0, {"main": (100, 10)}, sku="G-1"),
            make_product("p-relic", "Relic", 25.0, 50.0, {"main": (8, 2)}, sku="R-1"),
            make_product("p-other", "Other", 1.0, 2.0, {"main": (3, 1)}, tenant_id=OTHER_TENANT),
        ],
    )
    store.insert(
        Collection.CUSTOMERS.value,
        [
            make_customer(
                "c-alice", "Alice", datetime(2025, 1, 10), CustomerType.BUSINESS,
                phone="555-0101", outstanding_balance=500.0, credit_limit=1000.0,
            ),
            make_customer("c-bob", "Bob", datetime(2026, 3, 2), phone="555-0102"),
            make_customer(
                "c-corp", "Corp Ltd", datetime(2024, 6, 1), CustomerType.BUSINESS,
                outstanding_balance=1200.0, credit_limit=2000.0,
            ),
        ],
    )
    store.insert(
        Collection.SALES.value,
        [
            make_sale(
                datetime(2026, 3, 2, 10), [widget(2), gadget(5)], id="s1", customer_id="c-alice",
                due_amount=100.0, tax_total=50.0, created_by="u-anna", invoice_number="INV-1",
            ),
            make_sale(
                datetime(2026, 3, 10, 15), [widget(1)], id="s2", customer_id="c-bob",
                discount_total=10.0, created_by="u-ben", invoice_number="INV-2",
            ),
            make_sale(datetime(2026, 3, 12, 9), [gadget(2)], id="s3", branch_id="north"),
            make_sale(
                datetime(2026, 3, 5, 11), [widget(3)], id="s4", customer_id="c-alice",
                status=TransactionStatus.CANCELLED,
            ),
            make_sale(
                datetime(2026, 2, 10, 10), [widget(1), gadget(2)], id="s5", customer_id="c-alice",
                due_amount=160.0, due_date=datetime(2026, 2, 10, 10),
            ),
            make_sale(datetime(2026, 1, 20, 10), [gadget(3)], id="s6", customer_id="c-alice"),
            make_sale(datetime(2026, 3, 3, 10), [widget(9)], id="x1", tenant_id=OTHER_TENANT),
        ],
    )
    store.insert(
        Collection.PURCHASES.value,
        [
            make_purchase(
                datetime(2026, 3, 3, 9), 220.0, id="pu1", supplier_name="Acme Supply",
                tax_total=20.0, due_amount=50.0,
            ),
            make_purchase(datetime(2026, 2, 20, 9), 100.0, id="pu2", supplier_name="Acme Supply"),
        ],
    )
    store.insert(
        Collection.PAYMENTS.value,
        [
            make_payment(250.0, datetime(2026, 3, 2, 10), "cash", invoice_id="s1", customer_id="c-alice"),
            make_payment(100.0, datetime(2026, 3, 10, 15), "card", invoice_id="s2", customer_id="c-bob"),
            make_payment(
                80.0, datetime(2026, 3, 4), "bank", direction=PaymentDirection.OUTFLOW
            ),
        ],
    )
    store.insert(
        Collection.ACCOUNTING_ENTRIES.value,
        [
            make_entry(
                datetime(2026, 3, 6, 10), 250.0, customer_id="c-alice", invoice_id="s1",
                reference_id="pay-1",
            ),
        ],
    )


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings():
    """Settings isolated from the environment and any .env file."""
    return Settings(_env_file=None, cache_enabled=False, fanout_max_workers=4)


@pytest.fixture
def memory_store():
    return MemoryRecordStore()


@pytest.fixture
def populated_store(memory_store):
    seed_reference_data(memory_store)
    return memory_store


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def report_cache(settings, fake_clock):
    return InMemoryReportCache(settings.cache_freshness_seconds, clock=fake_clock)


@pytest.fixture
def service(populated_store, settings):
    """Facade over the reference dataset with no cache."""
    return AnalyticsService(populated_store, settings=settings, clock=lambda: NOW)


@pytest.fixture
def cached_service(populated_store, settings, report_cache):
    return AnalyticsService(populated_store, cache=report_cache, settings=settings, clock=lambda: NOW)
