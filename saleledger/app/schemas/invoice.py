from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


# ─── Collections ─────────────────────────────────────────────────────────────


class InvoicePaymentCreate(BaseModel):
    payment_method_id: UUID
    amount: Decimal = Field(gt=0)
    reference: str | None = Field(default=None, max_length=100)
    notes: str | None = None


class InvoicePaymentOut(BaseModel):
    id: UUID
    payment_method_id: UUID
    amount: str
    reference: str | None = None
    invoice_status: str
    invoice_balance: str


# ─── Invoice detail ──────────────────────────────────────────────────────────


class ItemTaxOut(BaseModel):
    tax_key: str
    name: str
    rate: str
    base: str
    amount: str


class InvoiceItemOut(BaseModel):
    id: UUID
    product_id: UUID
    variant_id: UUID | None
    description: str
    quantity: str
    unit_price: str
    discount: str
    subtotal: str
    tax_amount: str
    total: str
    taxes: list[ItemTaxOut] = []


class PaymentOut(BaseModel):
    id: UUID
    payment_method_id: UUID
    amount: str
    reference: str | None = None


class InvoiceOut(BaseModel):
    id: UUID
    number: str
    status: str
    customer_id: UUID
    warehouse_id: UUID
    shift_id: UUID | None
    subtotal: str
    discount: str
    tax: str
    total: str
    balance: str
    issued_at: str
    items: list[InvoiceItemOut] = []
    tax_summaries: list[ItemTaxOut] = []
    payments: list[PaymentOut] = []
