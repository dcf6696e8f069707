from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator


# ─── Checkout request ────────────────────────────────────────────────────────


class SaleLineIn(BaseModel):
    product_id: UUID
    variant_id: UUID | None = None
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal = Decimal("0")
    # Legacy flat percentage; ignored when applied_taxes is given
    tax_rate: Decimal | None = None
    applied_taxes: list[UUID] | None = None

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Quantity must be greater than zero")
        return v

    @field_validator("unit_price")
    @classmethod
    def unit_price_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Unit price cannot be negative")
        return v

    @field_validator("discount", "tax_rate")
    @classmethod
    def percentage_range(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and not (0 <= v <= 100):
            raise ValueError("Percentage must be between 0 and 100")
        return v


class PaymentIn(BaseModel):
    payment_method_id: UUID
    amount: Decimal
    reference: str | None = Field(default=None, max_length=100)
    notes: str | None = None

    @field_validator("amount")
    @classmethod
    def amount_minimum(cls, v: Decimal) -> Decimal:
        if v < Decimal("0.01"):
            raise ValueError("Payment amount must be at least 0.01")
        return v


class CheckoutRequest(BaseModel):
    customer_id: UUID | None = None
    warehouse_id: UUID
    items: list[SaleLineIn]
    payment_method_id: UUID | None = None
    payments: list[PaymentIn] | None = None
    discount: Decimal = Decimal("0")
    cash_received: Decimal | None = None
    discount_override_token: str | None = None
    notes: str | None = None

    @field_validator("items")
    @classmethod
    def at_least_one_item(cls, v: list[SaleLineIn]) -> list[SaleLineIn]:
        if not v:
            raise ValueError("Cart must contain at least one item")
        return v

    @field_validator("discount", "cash_received")
    @classmethod
    def non_negative(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and v < 0:
            raise ValueError("Amount cannot be negative")
        return v

    @model_validator(mode="after")
    def one_payment_mode(self) -> "CheckoutRequest":
        has_split = bool(self.payments)
        if has_split == (self.payment_method_id is not None):
            raise ValueError("Provide either payment_method_id or payments")
        return self

    @property
    def has_discount(self) -> bool:
        return self.discount > 0 or any(item.discount > 0 for item in self.items)


# ─── Checkout response ───────────────────────────────────────────────────────


class ReceiptOut(BaseModel):
    invoice_id: UUID
    invoice_number: str
    total: str
    change: str
    status: str


# ─── Discount override ───────────────────────────────────────────────────────


class DiscountOverrideRequest(BaseModel):
    username: str
    password: str


class DiscountOverrideOut(BaseModel):
    token: str
    expires_in: int
