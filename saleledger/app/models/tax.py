from __future__ import annotations

import enum
import uuid
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Enum, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from saleledger.app.core.database import Base


class TaxKind(str, enum.Enum):
    VAT = "VAT"
    CONSUMPTION = "CONSUMPTION"
    WITHHOLDING = "WITHHOLDING"
    OTHER = "OTHER"


class TaxRate(Base):
    __tablename__ = "tax_rates"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(precision=7, scale=4), nullable=False)
    kind: Mapped[TaxKind] = mapped_column(Enum(TaxKind), nullable=False, default=TaxKind.VAT)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("rate >= 0 AND rate <= 100", name="ck_tax_rate_range"),
    )
