#!/usr/bin/env python3
"""
bizpulse demo: seed a synthetic tenant and print one report as JSON.

Generates a few months of sales, purchases, payments and ledger postings for
a small multi-branch shop, then runs a report through the analytics facade.

Usage:
    python scripts/demo_run.py                         # Executive dashboard
    python scripts/demo_run.py --report chart --interval week
    python scripts/demo_run.py --report basket --months 6 --seed 7
    python scripts/demo_run.py --store duckdb --db-path ./data/demo.duckdb
"""

import argparse
import json
import random
import sys
from datetime import datetime, timedelta
from pathlib import Path
from uuid import uuid4

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from bizpulse.config import get_settings
from bizpulse.models.enums import (
    Collection,
    CustomerType,
    PaymentDirection,
    ReportType,
    TransactionStatus,
)
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
from bizpulse.storage import DuckDBRecordStore, MemoryRecordStore
from bizpulse.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

TENANT = "demo-org"


class DemoDataGenerator:
    """
    Synthetic retail data for one tenant.

    Produces a product catalogue with per-branch stock, a customer base mixing
    walk-in and business buyers, daily sales with occasional cancellations and
    credit, weekly supplier bills, and payment postings for settled invoices.
    """

    BRANCHES = ["main", "downtown", "airport"]
    PAYMENT_METHODS = ["cash", "card", "bank", "mobile"]
    STAFF = ["u-amira", "u-ben", "u-chen", "u-dana"]

    # (name, category, purchase price, selling price)
    CATALOGUE = [
        ("Espresso Beans 1kg", "coffee", 12.0, 24.0),
        ("Filter Papers", "supplies", 1.5, 4.0),
        ("Ceramic Mug", "merchandise", 3.0, 9.5),
        ("Cold Brew Bottle", "coffee", 2.2, 5.5),
        ("Oat Milk 1L", "dairy", 1.1, 2.8),
        ("Grinder", "equipment", 45.0, 89.0),
        ("Tea Sampler", "tea", 6.0, 15.0),
        ("Gift Card", "merchandise", 0.0, 25.0),
    ]

    SUPPLIERS = [("sup-roast", "Roastery Direct"), ("sup-pack", "PackRight"), ("sup-dairy", "Valley Dairy")]

    def __init__(self, now: datetime, months: int = 4, seed: int = 42):
        self.now = now
        self.start = now - timedelta(days=30 * months)
        self.rng = random.Random(seed)

    def products(self) -> list[Product]:
        products = []
        for i, (name, category, cost, price) in enumerate(self.CATALOGUE):
            products.append(
                Product(
                    id=f"p-{i + 1:03d}",
                    tenant_id=TENANT,
                    name=name,
                    sku=f"SKU-{i + 1:03d}",
                    category=category,
                    purchase_price=cost,
                    selling_price=price,
                    inventory=[
                        InventoryLevel(
                            branch_id=branch,
                            quantity=self.rng.randint(0, 60),
                            reorder_level=self.rng.choice([5, 10, 15]),
                        )
                        for branch in self.BRANCHES
                    ],
                )
            )
        return products

    def customers(self, count: int = 40) -> list[Customer]:
        customers = []
        for i in range(count):
            business = self.rng.random() < 0.25
            created = self.start + timedelta(days=self.rng.randint(-120, (self.now - self.start).days))
            customers.append(
                Customer(
                    id=f"c-{i + 1:03d}",
                    tenant_id=TENANT,
                    name=f"{'Cafe' if business else 'Guest'} {i + 1:03d}",
                    phone=f"555-{1000 + i}",
                    customer_type=CustomerType.BUSINESS if business else CustomerType.INDIVIDUAL,
                    outstanding_balance=round(self.rng.uniform(0, 800), 2) if business else 0.0,
                    credit_limit=1000.0 if business else 0.0,
                    created_at=created,
                )
            )
        return customers

    def sales(self, products: list[Product], customers: list[Customer]) -> list[SaleTransaction]:
        sales = []
        day = self.start
        while day <= self.now:
            for _ in range(self.rng.randint(3, 12)):
                timestamp = day.replace(hour=self.rng.randint(7, 19), minute=self.rng.randint(0, 59))
                if timestamp > self.now:
                    continue
                picks = self.rng.sample(products, k=self.rng.randint(1, 3))
                items = [
                    LineItem(
                        product_id=p.id,
                        name=p.name,
                        quantity=self.rng.randint(1, 4),
                        unit_price=p.selling_price,
                        cost_at_sale=p.purchase_price,
                    )
                    for p in picks
                ]
                subtotal = round(sum(item.line_total for item in items), 2)
                discount = round(subtotal * 0.1, 2) if self.rng.random() < 0.1 else 0.0
                tax = round((subtotal - discount) * 0.08, 2)
                total = round(subtotal - discount + tax, 2)
                on_credit = self.rng.random() < 0.15
                customer = self.rng.choice(customers) if self.rng.random() < 0.6 else None
                sales.append(
                    SaleTransaction(
                        id=f"s-{uuid4().hex[:10]}",
                        tenant_id=TENANT,
                        branch_id=self.rng.choice(self.BRANCHES),
                        customer_id=customer.id if customer else None,
                        invoice_number=f"INV-{len(sales) + 1:05d}",
                        created_by=self.rng.choice(self.STAFF),
                        timestamp=timestamp,
                        due_date=timestamp + timedelta(days=14) if on_credit else None,
                        status=(
                            TransactionStatus.CANCELLED
                            if self.rng.random() < 0.03
                            else TransactionStatus.ACTIVE
                        ),
                        items=items,
                        subtotal=subtotal,
                        tax_total=tax,
                        discount_total=discount,
                        total_amount=total,
                        due_amount=total if on_credit else 0.0,
                    )
                )
            day += timedelta(days=1)
        return sales

    def purchases(self) -> list[PurchaseTransaction]:
        purchases = []
        day = self.start
        while day <= self.now:
            supplier_id, supplier_name = self.rng.choice(self.SUPPLIERS)
            total = round(self.rng.uniform(150, 900), 2)
            purchases.append(
                PurchaseTransaction(
                    id=f"pu-{uuid4().hex[:10]}",
                    tenant_id=TENANT,
                    branch_id=self.rng.choice(self.BRANCHES),
                    supplier_id=supplier_id,
                    supplier_name=supplier_name,
                    timestamp=day.replace(hour=8),
                    tax_total=round(total * 0.08, 2),
                    total_amount=total,
                    due_amount=round(total * 0.5, 2) if self.rng.random() < 0.2 else 0.0,
                )
            )
            day += timedelta(days=7)
        return purchases

    def payments(self, sales: list[SaleTransaction]) -> tuple[list[PaymentRecord], list[AccountingEntry]]:
        """Immediate payments for cash sales, delayed ledger postings for credit sales."""
        payments, entries = [], []
        for sale in sales:
            if sale.status != TransactionStatus.ACTIVE.value:
                continue
            paid_at = sale.timestamp
            if sale.due_amount > 0:
                paid_at = sale.timestamp + timedelta(days=self.rng.randint(1, 45))
                if paid_at > self.now or sale.customer_id is None:
                    continue
                entries.append(
                    AccountingEntry(
                        tenant_id=TENANT,
                        branch_id=sale.branch_id,
                        credit=sale.due_amount,
                        reference_type="payment",
                        reference_id=f"pay-{sale.id}",
                        date=paid_at,
                        customer_id=sale.customer_id,
                        invoice_id=sale.id,
                    )
                )
            payments.append(
                PaymentRecord(
                    tenant_id=TENANT,
                    branch_id=sale.branch_id,
                    direction=PaymentDirection.INFLOW,
                    method=self.rng.choice(self.PAYMENT_METHODS),
                    amount=sale.total_amount,
                    date=paid_at,
                    invoice_id=sale.id,
                    customer_id=sale.customer_id,
                )
            )
        return payments, entries

    def seed(self, store) -> dict[str, int]:
        products = self.products()
        customers = self.customers()
        sales = self.sales(products, customers)
        payments, entries = self.payments(sales)
        counts = {
            Collection.PRODUCTS.value: store.insert(Collection.PRODUCTS.value, products),
            Collection.CUSTOMERS.value: store.insert(Collection.CUSTOMERS.value, customers),
            Collection.SALES.value: store.insert(Collection.SALES.value, sales),
            Collection.PURCHASES.value: store.insert(Collection.PURCHASES.value, self.purchases()),
            Collection.PAYMENTS.value: store.insert(Collection.PAYMENTS.value, payments),
            Collection.ACCOUNTING_ENTRIES.value: store.insert(Collection.ACCOUNTING_ENTRIES.value, entries),
        }
        logger.info("demo_data_seeded", tenant_id=TENANT, **counts)
        return counts


def main():
    parser = argparse.ArgumentParser(description="Run a bizpulse report over synthetic data")
    parser.add_argument(
        "--report",
        default=ReportType.EXECUTIVE.value,
        choices=[r.value for r in ReportType],
        help="Report to compute",
    )
    parser.add_argument("--branch", default=None, help="Restrict to one branch")
    parser.add_argument("--start-date", default=None, help="Window start (ISO date)")
    parser.add_argument("--end-date", default=None, help="Window end (ISO date)")
    parser.add_argument("--interval", default=None, help="Chart interval (auto|day|week|month|year)")
    parser.add_argument("--export-type", default="sales", help="Export type for --report export")
    parser.add_argument("--months", type=int, default=4, help="Months of history to generate")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--store", choices=["memory", "duckdb"], default="memory", help="Record store")
    parser.add_argument("--db-path", default="./data/demo.duckdb", help="DuckDB file for --store duckdb")
    args = parser.parse_args()

    configure_logging()
    settings = get_settings()

    store = DuckDBRecordStore(db_path=args.db_path) if args.store == "duckdb" else MemoryRecordStore()
    try:
        DemoDataGenerator(datetime.now(), months=args.months, seed=args.seed).seed(store)
        service = AnalyticsService(store, settings=settings)

        params = {"tenant_id": TENANT}
        if args.report == ReportType.EXPORT.value:
            params["export_type"] = args.export_type
        if args.report != ReportType.BRANCH_COMPARISON.value and args.branch:
            params["branch_id"] = args.branch
        if args.start_date:
            params["start_date"] = args.start_date
        if args.end_date:
            params["end_date"] = args.end_date
        if args.interval:
            params["interval"] = args.interval

        response = service.run(args.report, **params)
    finally:
        store.close()

    print(json.dumps(response.model_dump(mode="json"), indent=2))
    if not response.success:
        sys.exit(1)


if __name__ == "__main__":
    main()
