from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from saleledger.app.core.database import Base


class PaymentMethodType(str, enum.Enum):
    CASH = "CASH"
    ELECTRONIC = "ELECTRONIC"
    CREDIT = "CREDIT"


class ShiftStatus(str, enum.Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class CashMovementType(str, enum.Enum):
    IN = "IN"
    OUT = "OUT"


class PaymentMethod(Base):
    __tablename__ = "payment_methods"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    type: Mapped[PaymentMethodType] = mapped_column(
        Enum(PaymentMethodType), nullable=False
    )
    # Ledger account debited when this method settles a sale
    account_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Shift(Base):
    """Cashier session. At most one OPEN shift per user."""

    __tablename__ = "shifts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False
    )
    status: Mapped[ShiftStatus] = mapped_column(
        Enum(ShiftStatus), nullable=False, default=ShiftStatus.OPEN
    )
    opened_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    starting_cash: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    expected_cash: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    counted_cash: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=20, scale=4), nullable=True
    )
    difference: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=20, scale=4), nullable=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    summaries: Mapped[list[ShiftSummary]] = relationship(back_populates="shift")
    movements: Mapped[list[CashMovement]] = relationship(
        back_populates="shift", order_by="CashMovement.created_at"
    )

    __table_args__ = (
        CheckConstraint("starting_cash >= 0", name="ck_shift_starting_cash_non_negative"),
        Index(
            "uq_shifts_one_open_per_user",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'OPEN'"),
            sqlite_where=text("status = 'OPEN'"),
        ),
        Index("ix_shifts_status", "status"),
    )


class ShiftSummary(Base):
    """Running expected total per payment method within one shift."""

    __tablename__ = "shift_summaries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    shift_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("shifts.id"), nullable=False
    )
    payment_method_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("payment_methods.id"), nullable=False
    )
    expected_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )

    shift: Mapped[Shift] = relationship(back_populates="summaries")
    payment_method: Mapped[PaymentMethod] = relationship()

    __table_args__ = (
        UniqueConstraint("shift_id", "payment_method_id", name="uq_shift_summary_method"),
    )


class CashMovement(Base):
    """Append-only drawer log; never updated or deleted."""

    __tablename__ = "cash_movements"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    shift_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("shifts.id"), nullable=False
    )
    movement_type: Mapped[CashMovementType] = mapped_column(
        Enum(CashMovementType), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    reason: Mapped[str] = mapped_column(String(255), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_by: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    shift: Mapped[Shift] = relationship(back_populates="movements")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_cash_movement_amount_positive"),
        Index("ix_cash_movements_shift", "shift_id"),
    )
