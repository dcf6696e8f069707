"""Sales returns.

A return is its own document: stock comes back through IN movements, money
goes back through refunds or by lowering the customer's outstanding balance,
and a credit note is issued when the invoice was already transmitted. The
invoice's lines and totals are never edited.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from saleledger.app.core.config import settings
from saleledger.app.core.errors import NotFoundError, ValidationFailedError
from saleledger.app.models.inventory import Product
from saleledger.app.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from saleledger.app.models.pos import CashMovementType, PaymentMethodType, Shift
from saleledger.app.models.returns import CreditNote, Return, ReturnItem, ReturnRefund
from saleledger.app.models.user import User
from saleledger.app.schemas.returns import RefundIn, ReturnLineIn
from saleledger.app.services.audit import log_action
from saleledger.app.services.credit import lock_customer
from saleledger.app.services.numbering import next_document_number
from saleledger.app.services.outbox import RETURN_COMPLETED, dispatch_events, enqueue_event
from saleledger.app.services.payments import load_payment_methods
from saleledger.app.services.shift import (
    adjust_expected_cash,
    apply_to_method,
    get_open_shift,
    record_cash_movement,
    require_open_shift,
)
from saleledger.app.services.stock import StockLine, restock_for_return
from saleledger.app.services.tax import ZERO, money

logger = logging.getLogger(__name__)


def returned_quantities(db: Session, invoice_id: UUID) -> dict[UUID, tuple[Decimal, Decimal, Decimal]]:
    """Already-returned (quantity, subtotal, tax) per invoice item."""
    rows = (
        db.query(
            ReturnItem.invoice_item_id,
            func.sum(ReturnItem.quantity),
            func.sum(ReturnItem.subtotal),
            func.sum(ReturnItem.tax),
        )
        .join(Return, Return.id == ReturnItem.return_id)
        .filter(Return.invoice_id == invoice_id)
        .group_by(ReturnItem.invoice_item_id)
        .all()
    )
    return {
        item_id: (Decimal(qty or 0), Decimal(sub or 0), Decimal(tax or 0))
        for item_id, qty, sub, tax in rows
    }


def _line_amounts(
    item: InvoiceItem, qty: Decimal, prior: tuple[Decimal, Decimal, Decimal]
) -> tuple[Decimal, Decimal]:
    prior_qty, prior_subtotal, prior_tax = prior
    if prior_qty + qty == item.quantity:
        # Final slice takes whatever is left so rounding never drifts
        return money(item.subtotal - prior_subtotal), money(item.tax_amount - prior_tax)
    share = qty / item.quantity
    return money(item.subtotal * share), money(item.tax_amount * share)


def _discount_share(
    db: Session,
    invoice: Invoice,
    subtotal: Decimal,
    prior: dict[UUID, tuple[Decimal, Decimal, Decimal]],
) -> Decimal:
    """Portion of the document discount given back with *subtotal*."""
    if invoice.discount <= ZERO or invoice.subtotal <= ZERO:
        return ZERO
    prior_discount = Decimal(
        db.query(func.coalesce(func.sum(Return.discount), 0))
        .filter(Return.invoice_id == invoice.id)
        .scalar()
    )
    remaining = money(invoice.discount - prior_discount)
    prior_subtotal = sum((sub for _, sub, _ in prior.values()), ZERO)
    if prior_subtotal + subtotal >= invoice.subtotal:
        # Last return on the invoice absorbs the rounding
        return remaining
    return min(remaining, money(invoice.discount * subtotal / invoice.subtotal))


def process_return(
    db: Session,
    *,
    invoice_id: UUID,
    lines: list[ReturnLineIn],
    user: User,
    refunds: list[RefundIn] | None = None,
    reason: str | None = None,
    issue_credit_note: bool = False,
    ip_address: str | None = None,
) -> Return:
    try:
        invoice = (
            db.query(Invoice).filter(Invoice.id == invoice_id).with_for_update().first()
        )
        if invoice is None:
            raise NotFoundError("errors.invoice_not_found", field="invoice_id", id=invoice_id)
        if invoice.status == InvoiceStatus.VOID:
            raise ValidationFailedError("errors.invoice_void", field="invoice_id")

        items = {item.id: item for item in invoice.items}
        prior = returned_quantities(db, invoice.id)

        requested: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for index, line in enumerate(lines):
            if line.invoice_item_id not in items:
                raise NotFoundError(
                    "errors.invoice_item_not_found",
                    field=f"items.{index}.invoice_item_id",
                    id=line.invoice_item_id,
                )
            requested[line.invoice_item_id] += line.quantity

        # ── Amounts ──────────────────────────────────────────────────────
        return_items: list[ReturnItem] = []
        stock_lines: list[StockLine] = []
        for item_id, qty in requested.items():
            item = items[item_id]
            already = prior.get(item_id, (ZERO, ZERO, ZERO))
            returnable = item.quantity - already[0]
            if qty > returnable:
                raise ValidationFailedError(
                    "errors.return_exceeds_sold",
                    field="items",
                    item=item.description,
                    returnable=returnable,
                )
            subtotal, tax = _line_amounts(item, qty, already)
            return_items.append(
                ReturnItem(
                    invoice_item_id=item.id,
                    product_id=item.product_id,
                    variant_id=item.variant_id,
                    quantity=qty,
                    subtotal=subtotal,
                    tax=tax,
                    total=subtotal + tax,
                )
            )
            stock_lines.append(
                StockLine(
                    product=db.get(Product, item.product_id),
                    variant_id=item.variant_id,
                    quantity=qty,
                )
            )

        subtotal = sum((ri.subtotal for ri in return_items), ZERO)
        tax = sum((ri.tax for ri in return_items), ZERO)
        discount = _discount_share(db, invoice, subtotal, prior)
        total = subtotal - discount + tax

        # ── Settlement: outstanding balance first, refunds for the rest ──
        credited = min(total, invoice.balance)
        to_refund = total - credited
        refunds = refunds or []
        refund_sum = money(sum((r.amount for r in refunds), ZERO))
        if abs(refund_sum - to_refund) > settings.PAYMENT_EPSILON:
            raise ValidationFailedError(
                "errors.refund_mismatch", field="refunds", expected=to_refund, given=refund_sum
            )

        shift: Shift | None = None
        methods = load_payment_methods(db, [r.payment_method_id for r in refunds]) if refunds else {}
        if any(m.type == PaymentMethodType.CREDIT for m in methods.values()):
            raise ValidationFailedError("errors.credit_method_not_allowed", field="refunds")
        if any(m.type == PaymentMethodType.CASH for m in methods.values()):
            shift = require_open_shift(db, user.id)
        elif refunds:
            shift = get_open_shift(db, user.id, lock=True)

        return_ = Return(
            invoice_id=invoice.id,
            shift_id=shift.id if shift else None,
            reason=reason,
            subtotal=subtotal,
            discount=discount,
            tax=tax,
            total=total,
            created_by=user.id,
        )
        return_.items = return_items
        db.add(return_)
        db.flush()

        # Absorb the tolerated rounding gap in the last refund
        amounts = [money(r.amount) for r in refunds]
        if amounts:
            amounts[-1] += to_refund - refund_sum
        for refund, amount in zip(refunds, amounts):
            if amount <= ZERO:
                continue
            method = methods[refund.payment_method_id]
            return_.refunds.append(
                ReturnRefund(
                    payment_method_id=method.id,
                    amount=amount,
                    reference=refund.reference,
                )
            )
            # Cash refunds always have a shift: require_open_shift ran above
            if shift is not None:
                apply_to_method(db, shift, method.id, -amount)
                if method.type == PaymentMethodType.CASH:
                    adjust_expected_cash(shift, -amount)
                    record_cash_movement(
                        db,
                        shift,
                        movement_type=CashMovementType.OUT,
                        amount=amount,
                        reason=f"Refund on {invoice.number}",
                        reference=invoice.number,
                        user_id=user.id,
                    )

        if credited > ZERO:
            invoice.balance = money(invoice.balance - credited)
            if invoice.status == InvoiceStatus.CREDIT_PENDING and invoice.balance <= ZERO:
                invoice.status = InvoiceStatus.PAID
            customer = lock_customer(db, invoice.customer_id)
            customer.current_balance = max(ZERO, money(customer.current_balance - credited))

        # ── Stock back in ────────────────────────────────────────────────
        movements = restock_for_return(
            db,
            lines=stock_lines,
            warehouse_id=invoice.warehouse_id,
            invoice_number=invoice.number,
            user_id=user.id,
        )
        db.flush()
        restock_cost = money(
            sum((m.quantity * db.get(Product, m.product_id).cost for m in movements), ZERO)
        )

        # ── Credit note ──────────────────────────────────────────────────
        if invoice.transmitted_at is not None or issue_credit_note:
            consecutive, number = next_document_number(db, settings.CREDIT_NOTE_PREFIX)
            db.add(
                CreditNote(
                    number=number,
                    prefix=settings.CREDIT_NOTE_PREFIX,
                    consecutive=consecutive,
                    invoice_id=invoice.id,
                    return_id=return_.id,
                    reason=reason,
                    subtotal=subtotal - discount,
                    tax=tax,
                    total=total,
                )
            )
        db.flush()

        event = enqueue_event(
            db,
            event_type=RETURN_COMPLETED,
            aggregate_type="return",
            aggregate_id=str(return_.id),
            payload={
                "return_id": str(return_.id),
                "invoice_id": str(invoice.id),
                "total": str(total),
                "restock_cost": str(restock_cost),
            },
        )

        log_action(
            db,
            user_id=user.id,
            action="RETURN_COMPLETED",
            resource_type="invoices",
            resource_id=invoice.number,
            ip_address=ip_address,
            changes={
                "return_id": str(return_.id),
                "total": str(total),
                "credited_to_balance": str(credited),
                "refunded": str(to_refund),
                "items": len(return_items),
            },
        )

        db.commit()
    except Exception:
        db.rollback()
        raise

    dispatch_events([event.id])
    db.refresh(return_)
    logger.info("Return %s on %s committed: total %s", return_.id, invoice.number, total)
    return return_
