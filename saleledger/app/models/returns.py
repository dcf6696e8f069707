from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from saleledger.app.core.database import Base


class Return(Base):
    """Partial or full reversal of an invoice. The invoice row itself is
    never edited except for its outstanding balance."""

    __tablename__ = "returns"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("invoices.id"), nullable=False
    )
    shift_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("shifts.id"), nullable=True
    )
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    # Share of the invoice's document discount given back with these lines
    discount: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    tax: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    created_by: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    items: Mapped[list[ReturnItem]] = relationship(
        back_populates="return_", cascade="all, delete-orphan"
    )
    refunds: Mapped[list[ReturnRefund]] = relationship(
        back_populates="return_", cascade="all, delete-orphan"
    )
    credit_note: Mapped[CreditNote | None] = relationship(back_populates="return_")

    __table_args__ = (
        Index("ix_returns_invoice", "invoice_id"),
    )


class ReturnItem(Base):
    __tablename__ = "return_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    return_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("returns.id"), nullable=False
    )
    invoice_item_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("invoice_items.id"), nullable=False
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id"), nullable=False
    )
    variant_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("product_variants.id"), nullable=True
    )
    quantity: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    tax: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)

    return_: Mapped[Return] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_return_item_quantity_positive"),
        Index("ix_return_items_invoice_item", "invoice_item_id"),
    )


class ReturnRefund(Base):
    __tablename__ = "return_refunds"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    return_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("returns.id"), nullable=False
    )
    payment_method_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("payment_methods.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    return_: Mapped[Return] = relationship(back_populates="refunds")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_return_refund_amount_positive"),
    )


class CreditNote(Base):
    __tablename__ = "credit_notes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    prefix: Mapped[str] = mapped_column(String(10), nullable=False)
    consecutive: Mapped[int] = mapped_column(Integer, nullable=False)
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("invoices.id"), nullable=False
    )
    return_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("returns.id"), unique=True, nullable=False
    )
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    tax: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    transmitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    return_: Mapped[Return] = relationship(back_populates="credit_note")
