"""Payment allocation for checkout.

Tendered amounts are grouped per method, checked against the sale total and
turned into the amounts actually applied. Change is always handed back from
the drawer, so it is taken off the cash legs only.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from saleledger.app.core.config import settings
from saleledger.app.core.errors import (
    ChangeRequiresCashError,
    InsufficientFundsError,
    NotFoundError,
    ValidationFailedError,
)
from saleledger.app.models.invoice import Invoice, Payment
from saleledger.app.models.pos import CashMovementType, PaymentMethod, PaymentMethodType, Shift
from saleledger.app.services.shift import adjust_expected_cash, apply_to_method, record_cash_movement
from saleledger.app.services.tax import ZERO, money


@dataclass(frozen=True)
class TenderLine:
    method: PaymentMethod
    amount: Decimal
    reference: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class AppliedPayment:
    method: PaymentMethod
    tendered: Decimal
    amount: Decimal
    reference: str | None = None
    notes: str | None = None

    @property
    def is_cash(self) -> bool:
        return self.method.type == PaymentMethodType.CASH


@dataclass(frozen=True)
class Allocation:
    total: Decimal
    tendered: Decimal
    change: Decimal
    payments: list[AppliedPayment]

    @property
    def applied(self) -> Decimal:
        return sum((p.amount for p in self.payments), ZERO)


def load_payment_methods(db: Session, method_ids: Sequence[UUID]) -> dict[UUID, PaymentMethod]:
    """Fetch active payment methods by id; unknown or inactive ids fail."""
    unique_ids = list(dict.fromkeys(method_ids))
    rows = db.query(PaymentMethod).filter(PaymentMethod.id.in_(unique_ids)).all()
    by_id = {m.id: m for m in rows if m.is_active}
    for method_id in unique_ids:
        if method_id not in by_id:
            raise NotFoundError(
                "errors.payment_method_not_found", field="payments", id=method_id
            )
    return by_id


def _group_by_method(tenders: Sequence[TenderLine]) -> list[TenderLine]:
    grouped: dict[UUID, TenderLine] = {}
    for tender in tenders:
        current = grouped.get(tender.method.id)
        if current is None:
            grouped[tender.method.id] = TenderLine(
                method=tender.method,
                amount=money(tender.amount),
                reference=tender.reference,
                notes=tender.notes,
            )
        else:
            grouped[tender.method.id] = TenderLine(
                method=current.method,
                amount=money(current.amount + tender.amount),
                reference=current.reference or tender.reference,
                notes=current.notes or tender.notes,
            )
    return list(grouped.values())


def allocate(
    total: Decimal,
    tenders: Sequence[TenderLine],
    *,
    epsilon: Decimal | None = None,
) -> Allocation:
    """Split *total* across *tenders* and compute the change owed.

    Raises ``InsufficientFundsError`` when the tender falls short by more
    than *epsilon*, and ``ChangeRequiresCashError`` when change is owed but
    the cash legs cannot cover it.
    """
    eps = settings.PAYMENT_EPSILON if epsilon is None else epsilon
    total = money(total)
    if not tenders:
        raise ValidationFailedError("errors.payment_required", field="payments")
    if any(t.method.type == PaymentMethodType.CREDIT for t in tenders):
        raise ValidationFailedError("errors.credit_exclusive", field="payments")

    legs = _group_by_method(tenders)
    tendered = sum((leg.amount for leg in legs), ZERO)
    if tendered < total - eps:
        raise InsufficientFundsError(
            field="payments", total=total, tendered=tendered
        )

    change = max(ZERO, money(tendered - total))
    cash_tendered = sum(
        (leg.amount for leg in legs if leg.method.type == PaymentMethodType.CASH), ZERO
    )
    if change > ZERO and change > cash_tendered:
        raise ChangeRequiresCashError(
            field="payments", change=change, cash=cash_tendered
        )

    remaining_change = change
    applied: list[AppliedPayment] = []
    for leg in legs:
        amount = leg.amount
        if leg.method.type == PaymentMethodType.CASH and remaining_change > ZERO:
            deducted = min(amount, remaining_change)
            amount -= deducted
            remaining_change -= deducted
        if amount > ZERO:
            applied.append(
                AppliedPayment(
                    method=leg.method,
                    tendered=leg.amount,
                    amount=amount,
                    reference=leg.reference,
                    notes=leg.notes,
                )
            )

    return Allocation(total=total, tendered=tendered, change=change, payments=applied)


def allocate_legacy(
    total: Decimal,
    method: PaymentMethod,
    cash_received: Decimal | None = None,
    *,
    epsilon: Decimal | None = None,
) -> Allocation:
    """Single-method checkout. Cash may tender more than the total; other
    methods are charged exactly the total."""
    if method.type == PaymentMethodType.CASH and cash_received is not None:
        tendered = cash_received
    else:
        tendered = total
    return allocate(total, [TenderLine(method=method, amount=tendered)], epsilon=epsilon)


def create_payments(
    db: Session,
    *,
    invoice: Invoice,
    allocation: Allocation,
    shift: Shift,
    user_id: UUID,
) -> list[Payment]:
    """Persist Payment rows and feed each leg into the shift ledger.

    Cash legs also raise the drawer's expected cash and log a cash movement
    for the amount kept (tendered minus change).
    """
    payments: list[Payment] = []
    for leg in allocation.payments:
        payment = Payment(
            invoice_id=invoice.id,
            payment_method_id=leg.method.id,
            shift_id=shift.id,
            amount=leg.amount,
            reference=leg.reference,
            notes=leg.notes,
            created_by=user_id,
        )
        db.add(payment)
        payments.append(payment)

        apply_to_method(db, shift, leg.method.id, leg.amount)
        if leg.is_cash:
            adjust_expected_cash(shift, leg.amount)
            record_cash_movement(
                db,
                shift,
                movement_type=CashMovementType.IN,
                amount=leg.amount,
                reason=f"POS sale {invoice.number}",
                reference=invoice.number,
                user_id=user_id,
            )
    return payments
