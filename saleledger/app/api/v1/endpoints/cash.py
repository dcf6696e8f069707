from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from saleledger.app.api.deps import client_ip
from saleledger.app.api.permission_deps import require_permission
from saleledger.app.core.database import get_db
from saleledger.app.models.user import User
from saleledger.app.schemas.cash import (
    CashMovementCreate,
    CashMovementOut,
    ShiftCloseRequest,
    ShiftOpenRequest,
    ShiftOut,
)
from saleledger.app.services.shift import (
    close_shift,
    get_active_shift,
    open_shift,
    register_cash_movement,
    shift_report,
    shift_to_out,
)

router = APIRouter()


# ─── Shifts ──────────────────────────────────────────────────────────────────


@router.get("/shifts/active", response_model=ShiftOut | None)
def get_my_active_shift(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("pos:shift")),
) -> ShiftOut | None:
    return get_active_shift(db, current_user.id)


@router.post("/shifts/open", response_model=ShiftOut, status_code=status.HTTP_201_CREATED)
def open_new_shift(
    payload: ShiftOpenRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("pos:shift")),
) -> ShiftOut:
    shift = open_shift(
        db,
        user_id=current_user.id,
        starting_cash=payload.starting_cash,
        notes=payload.notes,
        ip_address=client_ip(request),
    )
    return shift_to_out(db, shift)


@router.post("/shifts/{shift_id}/close", response_model=ShiftOut)
def close_existing_shift(
    shift_id: UUID,
    payload: ShiftCloseRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("pos:shift")),
) -> ShiftOut:
    shift = close_shift(
        db,
        shift_id=shift_id,
        user_id=current_user.id,
        counted_cash=payload.counted_cash,
        notes=payload.notes,
        ip_address=client_ip(request),
    )
    return shift_to_out(db, shift)


@router.get("/shifts/{shift_id}", response_model=ShiftOut)
def get_shift(
    shift_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("pos:shift")),
) -> ShiftOut:
    return shift_report(db, shift_id)


# ─── Drawer movements ────────────────────────────────────────────────────────


@router.post("/movements", response_model=CashMovementOut, status_code=status.HTTP_201_CREATED)
def create_cash_movement(
    payload: CashMovementCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("pos:shift")),
) -> CashMovementOut:
    movement = register_cash_movement(
        db,
        user_id=current_user.id,
        movement_type=payload.movement_type,
        amount=payload.amount,
        reason=payload.reason,
        ip_address=client_ip(request),
    )
    return CashMovementOut(
        id=movement.id,
        movement_type=movement.movement_type.value,
        amount=str(movement.amount),
        reason=movement.reason,
        reference=movement.reference,
    )
