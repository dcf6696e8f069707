from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from saleledger.app.models.pos import CashMovementType


class ShiftOpenRequest(BaseModel):
    starting_cash: Decimal = Field(ge=0)
    notes: str | None = None


class ShiftCloseRequest(BaseModel):
    counted_cash: Decimal = Field(ge=0)
    notes: str | None = None


class CashMovementCreate(BaseModel):
    movement_type: CashMovementType
    amount: Decimal = Field(gt=0)
    reason: str = Field(min_length=1, max_length=255)


class ShiftSummaryOut(BaseModel):
    payment_method_id: UUID
    payment_method: str
    method_type: str
    expected_amount: str


class CashMovementOut(BaseModel):
    id: UUID
    movement_type: str
    amount: str
    reason: str
    reference: str | None = None


class ShiftOut(BaseModel):
    id: UUID
    user_id: UUID
    username: str
    status: str
    opened_at: str | None
    closed_at: str | None
    starting_cash: str
    expected_cash: str
    counted_cash: str | None
    difference: str | None
    notes: str | None
    summaries: list[ShiftSummaryOut] = []
    movements: list[CashMovementOut] = []
