from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Numeric,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from saleledger.app.core.database import Base

WALK_IN_KEY = "WALK_IN"


class Customer(Base):
    """Buyer of record.

    ``credit_limit`` NULL or 0 means the limit is not enforced; a positive
    value caps ``current_balance`` after a credit sale. The anonymous
    walk-in customer is the single row whose ``walk_in_key`` is set.
    """

    __tablename__ = "customers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    tax_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    credit_limit: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=20, scale=4), nullable=True
    )
    current_balance: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    is_walk_in: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    walk_in_key: Mapped[str | None] = mapped_column(
        String(20), unique=True, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "credit_limit IS NULL OR credit_limit >= 0",
            name="ck_customer_credit_limit_non_negative",
        ),
        Index("ix_customers_name", "name"),
    )
