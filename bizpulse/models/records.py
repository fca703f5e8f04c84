"""
Transactional record models read by the analytics engine.

These records are owned and mutated by the platform's write path (sales,
purchasing, payments, ledger postings). The engine only queries them; the
models exist to validate and normalize documents entering a record store.
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .enums import Collection, CustomerType, PaymentDirection, TransactionStatus


class _Record(BaseModel):
    """Common configuration: enum values are stored as plain strings."""

    model_config = ConfigDict(use_enum_values=True, extra="ignore")

    id: str = Field(default_factory=lambda: str(uuid4()), description="Record identifier")
    tenant_id: str = Field(description="Owning tenant (organization)")

    @field_validator("tenant_id")
    @classmethod
    def validate_tenant_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("tenant_id cannot be empty")
        return v

    @field_validator("*")
    @classmethod
    def to_naive_local(cls, v):
        """Store aware datetimes as naive local time so they compare with request windows."""
        if isinstance(v, datetime) and v.tzinfo is not None:
            return v.astimezone().replace(tzinfo=None)
        return v


class LineItem(BaseModel):
    """
    A single line of a sale.

    `cost_at_sale` is the product cost snapshotted when the sale was posted,
    so realized profit does not drift when the product's cost changes later.
    """

    model_config = ConfigDict(extra="ignore")

    product_id: str
    name: Optional[str] = None
    quantity: float = Field(ge=0)
    unit_price: float = Field(ge=0)
    cost_at_sale: float = Field(default=0.0, ge=0)
    line_total: Optional[float] = None

    @model_validator(mode="after")
    def default_line_total(self) -> "LineItem":
        if self.line_total is None:
            self.line_total = round(self.quantity * self.unit_price, 2)
        return self

    @property
    def profit(self) -> float:
        return self.quantity * (self.unit_price - self.cost_at_sale)


class SaleTransaction(_Record):
    """A posted sale (invoice) with its line items."""

    branch_id: str
    customer_id: Optional[str] = None
    invoice_number: Optional[str] = None
    created_by: Optional[str] = None
    timestamp: datetime
    due_date: Optional[datetime] = None
    status: TransactionStatus = TransactionStatus.ACTIVE
    items: list[LineItem] = Field(default_factory=list)
    subtotal: float = 0.0
    tax_total: float = Field(default=0.0, ge=0)
    discount_total: float = Field(default=0.0, ge=0)
    total_amount: float = Field(ge=0)
    due_amount: float = Field(default=0.0, ge=0)

    @model_validator(mode="after")
    def validate_due_not_above_total(self) -> "SaleTransaction":
        if self.due_amount > self.total_amount + 1e-9:
            raise ValueError("due_amount cannot exceed total_amount")
        if not self.subtotal:
            self.subtotal = round(sum(item.line_total or 0.0 for item in self.items), 2)
        return self


class PurchaseTransaction(_Record):
    """A supplier purchase (bill)."""

    branch_id: str
    supplier_id: str
    supplier_name: Optional[str] = None
    timestamp: datetime
    status: TransactionStatus = TransactionStatus.ACTIVE
    tax_total: float = Field(default=0.0, ge=0)
    total_amount: float = Field(ge=0)
    due_amount: float = Field(default=0.0, ge=0)


class PaymentRecord(_Record):
    """Money moving in or out of a branch."""

    branch_id: str
    direction: PaymentDirection
    method: str = "cash"
    amount: float = Field(ge=0)
    date: datetime
    invoice_id: Optional[str] = None
    customer_id: Optional[str] = None


class AccountingEntry(_Record):
    """A ledger posting; payment postings link back to the settled invoice."""

    branch_id: Optional[str] = None
    debit: float = Field(default=0.0, ge=0)
    credit: float = Field(default=0.0, ge=0)
    reference_type: str
    reference_id: Optional[str] = None
    date: datetime
    customer_id: Optional[str] = None
    invoice_id: Optional[str] = None


class Customer(_Record):
    name: str = "Unknown"
    phone: Optional[str] = None
    email: Optional[str] = None
    customer_type: CustomerType = CustomerType.INDIVIDUAL
    outstanding_balance: float = 0.0
    credit_limit: float = 0.0
    created_at: datetime


class InventoryLevel(BaseModel):
    """Stock of one product at one branch."""

    model_config = ConfigDict(extra="ignore")

    branch_id: str
    quantity: float = 0.0
    reorder_level: float = 0.0


class Product(_Record):
    name: str
    sku: Optional[str] = None
    category: Optional[str] = None
    purchase_price: float = Field(default=0.0, ge=0)
    selling_price: float = Field(default=0.0, ge=0)
    is_active: bool = True
    inventory: list[InventoryLevel] = Field(default_factory=list)


RECORD_MODELS: dict[str, type[_Record]] = {
    Collection.SALES.value: SaleTransaction,
    Collection.PURCHASES.value: PurchaseTransaction,
    Collection.PAYMENTS.value: PaymentRecord,
    Collection.ACCOUNTING_ENTRIES.value: AccountingEntry,
    Collection.CUSTOMERS.value: Customer,
    Collection.PRODUCTS.value: Product,
}

# Field each collection is windowed on; products are not time-scoped.
DATE_FIELDS: dict[str, Optional[str]] = {
    Collection.SALES.value: "timestamp",
    Collection.PURCHASES.value: "timestamp",
    Collection.PAYMENTS.value: "date",
    Collection.ACCOUNTING_ENTRIES.value: "date",
    Collection.CUSTOMERS.value: "created_at",
    Collection.PRODUCTS.value: None,
}
