from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from saleledger.app.core.config import settings
from saleledger.app.core.errors import (
    CreditLimitExceededError,
    CreditNotAllowedError,
    NotFoundError,
    ValidationFailedError,
)
from saleledger.app.models.customer import Customer
from saleledger.app.models.invoice import Invoice, InvoiceStatus, Payment
from saleledger.app.models.pos import CashMovementType, PaymentMethod, PaymentMethodType
from saleledger.app.services.audit import log_action
from saleledger.app.services.outbox import (
    INVOICE_PAYMENT_RECEIVED,
    dispatch_events,
    enqueue_event,
)
from saleledger.app.services.shift import (
    adjust_expected_cash,
    apply_to_method,
    get_open_shift,
    record_cash_movement,
    require_open_shift,
)
from saleledger.app.services.tax import ZERO, money

logger = logging.getLogger(__name__)


def is_credit_method(method: PaymentMethod) -> bool:
    return method.type == PaymentMethodType.CREDIT


def lock_customer(db: Session, customer_id: UUID) -> Customer:
    customer = (
        db.query(Customer).filter(Customer.id == customer_id).with_for_update().first()
    )
    if customer is None:
        raise NotFoundError("errors.customer_not_found", field="customer_id", id=customer_id)
    return customer


def check_credit_available(customer: Customer | None, total: Decimal) -> Customer:
    """Validate that *customer* may take *total* on credit.

    The limit applies only when it is positive; NULL or zero leaves the
    balance uncapped.
    """
    if customer is None or customer.is_walk_in:
        raise CreditNotAllowedError(field="customer_id")
    limit = customer.credit_limit
    if limit is not None and limit > ZERO:
        projected = customer.current_balance + total
        if projected > limit:
            raise CreditLimitExceededError(
                field="customer_id",
                limit=money(limit),
                balance=money(customer.current_balance),
                total=money(total),
            )
    return customer


def apply_credit_sale(db: Session, *, invoice: Invoice, customer: Customer) -> None:
    """Put *invoice* on the customer's account. No payments, no drawer."""
    check_credit_available(customer, invoice.total)
    invoice.status = InvoiceStatus.CREDIT_PENDING
    invoice.balance = invoice.total
    customer.current_balance = money(customer.current_balance + invoice.total)
    logger.debug(
        "Credit sale %s: customer %s balance now %s",
        invoice.number,
        customer.id,
        customer.current_balance,
    )


# ─── Collections ─────────────────────────────────────────────────────────────


def collect_invoice_payment(
    db: Session,
    *,
    invoice_id: UUID,
    payment_method_id: UUID,
    amount: Decimal,
    user_id: UUID,
    reference: str | None = None,
    notes: str | None = None,
    ip_address: str | None = None,
) -> Payment:
    """Record a payment against a credit-pending invoice.

    Lowers the invoice balance and the customer's running balance; the
    invoice flips to PAID once nothing is left outstanding. Cash collections
    need the collector's open shift; other methods are added to it when one
    is open.
    """
    amount = money(amount)
    if amount <= ZERO:
        raise ValidationFailedError("errors.amount_positive", field="amount")

    try:
        invoice = (
            db.query(Invoice).filter(Invoice.id == invoice_id).with_for_update().first()
        )
        if invoice is None:
            raise NotFoundError("errors.invoice_not_found", field="invoice_id", id=invoice_id)
        if invoice.status != InvoiceStatus.CREDIT_PENDING:
            raise ValidationFailedError("errors.invoice_not_credit_pending", field="invoice_id")
        if amount > invoice.balance + settings.PAYMENT_EPSILON:
            raise ValidationFailedError(
                "errors.payment_exceeds_balance", field="amount", balance=money(invoice.balance)
            )

        method = db.query(PaymentMethod).filter(PaymentMethod.id == payment_method_id).first()
        if method is None or not method.is_active:
            raise NotFoundError(
                "errors.payment_method_not_found", field="payment_method_id", id=payment_method_id
            )
        if is_credit_method(method):
            raise ValidationFailedError(
                "errors.credit_method_not_allowed", field="payment_method_id"
            )

        if method.type == PaymentMethodType.CASH:
            shift = require_open_shift(db, user_id)
        else:
            shift = get_open_shift(db, user_id, lock=True)

        applied = min(amount, invoice.balance)
        payment = Payment(
            invoice_id=invoice.id,
            payment_method_id=method.id,
            shift_id=shift.id if shift else None,
            amount=applied,
            reference=reference,
            notes=notes,
            created_by=user_id,
        )
        db.add(payment)

        invoice.balance = money(invoice.balance - applied)
        if invoice.balance <= settings.PAYMENT_EPSILON:
            invoice.balance = ZERO
            invoice.status = InvoiceStatus.PAID

        customer = lock_customer(db, invoice.customer_id)
        customer.current_balance = max(ZERO, money(customer.current_balance - applied))

        if shift is not None:
            apply_to_method(db, shift, method.id, applied)
            if method.type == PaymentMethodType.CASH:
                adjust_expected_cash(shift, applied)
                record_cash_movement(
                    db,
                    shift,
                    movement_type=CashMovementType.IN,
                    amount=applied,
                    reason=f"Invoice collection {invoice.number}",
                    reference=invoice.number,
                    user_id=user_id,
                )
        db.flush()

        event = enqueue_event(
            db,
            event_type=INVOICE_PAYMENT_RECEIVED,
            aggregate_type="payment",
            aggregate_id=str(payment.id),
            payload={
                "payment_id": str(payment.id),
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.number,
                "amount": str(applied),
                "payment_method_id": str(method.id),
            },
        )

        log_action(
            db,
            user_id=user_id,
            action="INVOICE_PAYMENT",
            resource_type="invoices",
            resource_id=invoice.number,
            ip_address=ip_address,
            changes={
                "payment_id": str(payment.id),
                "amount": str(applied),
                "method": method.name,
                "balance": str(invoice.balance),
                "status": invoice.status.value,
            },
        )

        db.commit()
    except Exception:
        db.rollback()
        raise

    dispatch_events([event.id])
    db.refresh(payment)
    return payment
