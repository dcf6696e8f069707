from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from saleledger.app.core.errors import (
    NotFoundError,
    PermissionDeniedError,
    ShiftAlreadyOpenError,
    ShiftNotOpenError,
    ValidationFailedError,
)
from saleledger.app.core.retry import with_db_retry
from saleledger.app.models.pos import (
    CashMovement,
    CashMovementType,
    Shift,
    ShiftStatus,
    ShiftSummary,
)
from saleledger.app.models.user import User
from saleledger.app.schemas.cash import CashMovementOut, ShiftOut, ShiftSummaryOut
from saleledger.app.services.audit import log_action
from saleledger.app.services.outbox import SHIFT_CLOSED, dispatch_events, enqueue_event
from saleledger.app.services.tax import ZERO, money

logger = logging.getLogger(__name__)


# ─── Ledger primitives (no commit; run inside the caller's transaction) ──────


def get_open_shift(db: Session, user_id: UUID, *, lock: bool = False) -> Shift | None:
    query = db.query(Shift).filter(
        Shift.user_id == user_id, Shift.status == ShiftStatus.OPEN
    )
    if lock:
        query = query.with_for_update()
    return query.first()


def require_open_shift(db: Session, user_id: UUID) -> Shift:
    """Return the operator's OPEN shift, row-locked for the transaction."""
    shift = get_open_shift(db, user_id, lock=True)
    if shift is None:
        raise ShiftNotOpenError(field="shift")
    return shift


def _summary_query(db: Session, shift_id: UUID, payment_method_id: UUID):
    return (
        db.query(ShiftSummary)
        .filter(
            ShiftSummary.shift_id == shift_id,
            ShiftSummary.payment_method_id == payment_method_id,
        )
        .with_for_update()
    )


def apply_to_method(
    db: Session, shift: Shift, payment_method_id: UUID, amount: Decimal
) -> ShiftSummary:
    """Add *amount* (may be negative for refunds) to the method's running total.

    Creates the summary row on first use; a concurrent creator losing the
    unique-constraint race re-reads the winner's row.
    """
    if shift.status != ShiftStatus.OPEN:
        raise ShiftNotOpenError(field="shift")
    summary = _summary_query(db, shift.id, payment_method_id).first()
    if summary is None:
        try:
            with db.begin_nested():
                db.add(
                    ShiftSummary(
                        shift_id=shift.id,
                        payment_method_id=payment_method_id,
                        expected_amount=ZERO,
                    )
                )
        except IntegrityError:
            logger.debug(
                "Shift summary %s/%s created concurrently; re-reading",
                shift.id,
                payment_method_id,
            )
        summary = _summary_query(db, shift.id, payment_method_id).one()

    summary.expected_amount = money(summary.expected_amount + amount)
    return summary


def adjust_expected_cash(shift: Shift, amount: Decimal) -> None:
    shift.expected_cash = money(shift.expected_cash + amount)


def record_cash_movement(
    db: Session,
    shift: Shift,
    *,
    movement_type: CashMovementType,
    amount: Decimal,
    reason: str,
    user_id: UUID,
    reference: str | None = None,
) -> CashMovement:
    movement = CashMovement(
        shift_id=shift.id,
        movement_type=movement_type,
        amount=money(amount),
        reason=reason,
        reference=reference,
        created_by=user_id,
    )
    db.add(movement)
    return movement


# ─── Shift lifecycle ─────────────────────────────────────────────────────────


def open_shift(
    db: Session,
    *,
    user_id: UUID,
    starting_cash: Decimal,
    notes: str | None = None,
    ip_address: str | None = None,
) -> Shift:
    if get_open_shift(db, user_id) is not None:
        raise ShiftAlreadyOpenError(field="shift")

    shift = Shift(
        user_id=user_id,
        status=ShiftStatus.OPEN,
        starting_cash=money(starting_cash),
        expected_cash=money(starting_cash),
        notes=notes,
    )
    try:
        with db.begin_nested():
            db.add(shift)
    except IntegrityError as exc:
        raise ShiftAlreadyOpenError(field="shift") from exc

    log_action(
        db,
        user_id=user_id,
        action="SHIFT_OPENED",
        resource_type="shifts",
        resource_id=str(shift.id),
        ip_address=ip_address,
        changes={"starting_cash": str(shift.starting_cash)},
    )

    db.commit()
    db.refresh(shift)
    return shift


def close_shift(
    db: Session,
    *,
    shift_id: UUID,
    user_id: UUID,
    counted_cash: Decimal,
    notes: str | None = None,
    ip_address: str | None = None,
) -> Shift:
    """Close the operator's shift and record the counted-vs-expected difference.

    A non-zero difference is announced through the outbox so accounting can
    post the shortage or overage.
    """
    shift = db.query(Shift).filter(Shift.id == shift_id).with_for_update().first()
    if shift is None:
        raise NotFoundError(field="shift_id", id=shift_id)
    if shift.user_id != user_id:
        raise PermissionDeniedError("errors.shift_not_owner", field="shift_id")
    if shift.status != ShiftStatus.OPEN:
        raise ShiftNotOpenError("errors.shift_already_closed", field="shift_id")

    counted = money(counted_cash)
    difference = money(counted - shift.expected_cash)

    shift.status = ShiftStatus.CLOSED
    shift.closed_at = datetime.now(timezone.utc)
    shift.counted_cash = counted
    shift.difference = difference
    if notes:
        shift.notes = notes

    event = None
    if difference != ZERO:
        event = enqueue_event(
            db,
            event_type=SHIFT_CLOSED,
            aggregate_type="shift",
            aggregate_id=str(shift.id),
            payload={
                "shift_id": str(shift.id),
                "user_id": str(user_id),
                "difference": str(difference),
            },
        )

    log_action(
        db,
        user_id=user_id,
        action="SHIFT_CLOSED",
        resource_type="shifts",
        resource_id=str(shift.id),
        ip_address=ip_address,
        changes={
            "counted_cash": str(counted),
            "expected_cash": str(shift.expected_cash),
            "difference": str(difference),
        },
    )

    db.commit()
    if event is not None:
        dispatch_events([event.id])
    db.refresh(shift)
    return shift


def register_cash_movement(
    db: Session,
    *,
    user_id: UUID,
    movement_type: CashMovementType,
    amount: Decimal,
    reason: str,
    ip_address: str | None = None,
) -> CashMovement:
    """Manual drawer deposit or withdrawal against the open shift."""
    amount = money(amount)
    if amount <= ZERO:
        raise ValidationFailedError("errors.amount_positive", field="amount")

    shift = require_open_shift(db, user_id)
    signed = amount if movement_type == CashMovementType.IN else -amount
    adjust_expected_cash(shift, signed)
    movement = record_cash_movement(
        db,
        shift,
        movement_type=movement_type,
        amount=amount,
        reason=reason,
        user_id=user_id,
    )
    db.flush()

    log_action(
        db,
        user_id=user_id,
        action="CASH_MOVEMENT",
        resource_type="cash_movements",
        resource_id=str(movement.id),
        ip_address=ip_address,
        changes={
            "shift_id": str(shift.id),
            "type": movement_type.value,
            "amount": str(amount),
            "reason": reason,
        },
    )

    db.commit()
    db.refresh(movement)
    return movement


# ─── Read side ───────────────────────────────────────────────────────────────


def shift_to_out(db: Session, shift: Shift) -> ShiftOut:
    user = db.query(User).filter(User.id == shift.user_id).first()
    return ShiftOut(
        id=shift.id,
        user_id=shift.user_id,
        username=user.username if user else "unknown",
        status=shift.status.value,
        opened_at=shift.opened_at.isoformat() if shift.opened_at else None,
        closed_at=shift.closed_at.isoformat() if shift.closed_at else None,
        starting_cash=str(shift.starting_cash),
        expected_cash=str(shift.expected_cash),
        counted_cash=str(shift.counted_cash) if shift.counted_cash is not None else None,
        difference=str(shift.difference) if shift.difference is not None else None,
        notes=shift.notes,
        summaries=[
            ShiftSummaryOut(
                payment_method_id=s.payment_method_id,
                payment_method=s.payment_method.name,
                method_type=s.payment_method.type.value,
                expected_amount=str(s.expected_amount),
            )
            for s in shift.summaries
        ],
        movements=[
            CashMovementOut(
                id=m.id,
                movement_type=m.movement_type.value,
                amount=str(m.amount),
                reason=m.reason,
                reference=m.reference,
            )
            for m in shift.movements
        ],
    )


@with_db_retry
def get_active_shift(db: Session, user_id: UUID) -> ShiftOut | None:
    shift = get_open_shift(db, user_id)
    if shift is None:
        return None
    return shift_to_out(db, shift)


@with_db_retry
def shift_report(db: Session, shift_id: UUID) -> ShiftOut:
    shift = db.query(Shift).filter(Shift.id == shift_id).first()
    if shift is None:
        raise NotFoundError(field="shift_id", id=shift_id)
    return shift_to_out(db, shift)
