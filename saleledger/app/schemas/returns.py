from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


# ─── Request Schemas ──────────────────────────────────────────────────────────


class ReturnLineIn(BaseModel):
    invoice_item_id: UUID
    quantity: Decimal

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("quantity must be greater than 0")
        return v


class RefundIn(BaseModel):
    payment_method_id: UUID
    amount: Decimal = Field(gt=0)
    reference: str | None = Field(default=None, max_length=100)


class ReturnCreate(BaseModel):
    items: list[ReturnLineIn]
    reason: str | None = None
    refunds: list[RefundIn] | None = None
    issue_credit_note: bool = False

    @field_validator("items")
    @classmethod
    def items_not_empty(cls, v: list[ReturnLineIn]) -> list[ReturnLineIn]:
        if len(v) == 0:
            raise ValueError("At least one return item is required")
        return v


# ─── Response Schemas ─────────────────────────────────────────────────────────


class ReturnItemOut(BaseModel):
    invoice_item_id: UUID
    product_id: UUID
    quantity: str
    subtotal: str
    tax: str
    total: str


class CreditNoteOut(BaseModel):
    id: UUID
    number: str
    total: str


class ReturnOut(BaseModel):
    id: UUID
    invoice_id: UUID
    subtotal: str
    discount: str
    tax: str
    total: str
    items: list[ReturnItemOut]
    credit_note: CreditNoteOut | None = None
