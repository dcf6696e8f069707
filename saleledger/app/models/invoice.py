from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from saleledger.app.core.database import Base


class InvoiceStatus(str, enum.Enum):
    PAID = "PAID"
    CREDIT_PENDING = "CREDIT_PENDING"
    VOID = "VOID"


class Invoice(Base):
    """Committed sale document.

    Totals are written once at checkout; only ``balance`` and ``status``
    move afterwards (collections, returns against a credit sale).
    """

    __tablename__ = "invoices"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    prefix: Mapped[str] = mapped_column(String(10), nullable=False)
    consecutive: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[InvoiceStatus] = mapped_column(Enum(InvoiceStatus), nullable=False)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("customers.id"), nullable=False
    )
    warehouse_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("warehouses.id"), nullable=False
    )
    shift_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("shifts.id"), nullable=True
    )
    subtotal: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    discount: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    tax: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    balance: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Set once the document has been sent to the tax authority
    transmitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_by: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False
    )
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    items: Mapped[list[InvoiceItem]] = relationship(
        back_populates="invoice", cascade="all, delete-orphan"
    )
    tax_summaries: Mapped[list[InvoiceTaxSummary]] = relationship(
        back_populates="invoice", cascade="all, delete-orphan"
    )
    payments: Mapped[list[Payment]] = relationship(
        back_populates="invoice", order_by="Payment.created_at"
    )
    customer: Mapped["Customer"] = relationship()  # noqa: F821

    __table_args__ = (
        CheckConstraint("subtotal >= 0", name="ck_invoice_subtotal_non_negative"),
        CheckConstraint("discount >= 0", name="ck_invoice_discount_non_negative"),
        CheckConstraint("total >= 0", name="ck_invoice_total_non_negative"),
        CheckConstraint("balance >= 0", name="ck_invoice_balance_non_negative"),
        Index("ix_invoices_customer", "customer_id"),
        Index("ix_invoices_shift", "shift_id"),
        Index("ix_invoices_status", "status"),
    )


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("invoices.id"), nullable=False
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id"), nullable=False
    )
    variant_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("product_variants.id"), nullable=True
    )
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    discount: Mapped[Decimal] = mapped_column(
        Numeric(precision=5, scale=2), nullable=False, default=Decimal("0")
    )
    subtotal: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)

    invoice: Mapped[Invoice] = relationship(back_populates="items")
    taxes: Mapped[list[InvoiceItemTax]] = relationship(
        back_populates="invoice_item", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_invoice_item_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_invoice_item_price_non_negative"),
        CheckConstraint(
            "discount >= 0 AND discount <= 100", name="ck_invoice_item_discount_range"
        ),
        Index("ix_invoice_items_invoice", "invoice_id"),
    )


class InvoiceItemTax(Base):
    __tablename__ = "invoice_item_taxes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    invoice_item_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("invoice_items.id"), nullable=False
    )
    tax_rate_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("tax_rates.id"), nullable=True
    )
    tax_key: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(precision=7, scale=4), nullable=False)
    base: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)

    invoice_item: Mapped[InvoiceItem] = relationship(back_populates="taxes")


class InvoiceTaxSummary(Base):
    """Per-document tax totals, one row per rate identity."""

    __tablename__ = "invoice_tax_summaries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("invoices.id"), nullable=False
    )
    tax_rate_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("tax_rates.id"), nullable=True
    )
    tax_key: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(precision=7, scale=4), nullable=False)
    base: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)

    invoice: Mapped[Invoice] = relationship(back_populates="tax_summaries")

    __table_args__ = (
        UniqueConstraint("invoice_id", "tax_key", name="uq_invoice_tax_summary_key"),
    )


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("invoices.id"), nullable=False
    )
    payment_method_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("payment_methods.id"), nullable=False
    )
    shift_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("shifts.id"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    invoice: Mapped[Invoice] = relationship(back_populates="payments")
    payment_method: Mapped["PaymentMethod"] = relationship()  # noqa: F821

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        Index("ix_payments_invoice", "invoice_id"),
    )


class DocumentSequence(Base):
    """Last issued consecutive per document prefix; locked while numbering."""

    __tablename__ = "document_sequences"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    prefix: Mapped[str] = mapped_column(String(10), unique=True, nullable=False)
    last_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
