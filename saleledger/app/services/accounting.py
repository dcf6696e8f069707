"""Journal postings driven by integration events.

Every posting is keyed by ``(source_type, source_id)``; replaying an event
finds the existing entry and does nothing.

    Sale:        DEBIT  payment accounts / AR (1300)   total
                 DEBIT  Sales Discounts (4100)          document discount
                 CREDIT Sales (4000)                    subtotal
                 CREDIT Tax Payable (2200)              tax
    COGS:        DEBIT  COGS (5000) / CREDIT Inventory (1100)
    Collection:  DEBIT  payment account / CREDIT AR (1300)
    Return:      reverse of the sale lines, refunded through the refund
                 methods (or AR for credit sales), plus inventory back in
    Shift close: shortage DEBIT Cash Shortage (5300) / CREDIT Cash (1000),
                 overage  DEBIT Cash (1000) / CREDIT Other Income (4200)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from saleledger.app.models.accounting import Account, JournalEntry, TransactionSplit
from saleledger.app.models.invoice import Invoice, InvoiceStatus, Payment
from saleledger.app.models.outbox import IntegrationEvent
from saleledger.app.models.pos import PaymentMethod, PaymentMethodType, Shift
from saleledger.app.models.returns import Return
from saleledger.app.services.tax import ZERO, money

logger = logging.getLogger(__name__)

CASH_ACCOUNT_CODE = "1000"
INVENTORY_ACCOUNT_CODE = "1100"
BANK_ACCOUNT_CODE = "1200"
RECEIVABLE_ACCOUNT_CODE = "1300"
TAX_PAYABLE_ACCOUNT_CODE = "2200"
SALES_ACCOUNT_CODE = "4000"
DISCOUNT_ACCOUNT_CODE = "4100"
OTHER_INCOME_ACCOUNT_CODE = "4200"
COGS_ACCOUNT_CODE = "5000"
CASH_SHORTAGE_ACCOUNT_CODE = "5300"

DEFAULT_METHOD_ACCOUNTS: dict[PaymentMethodType, str] = {
    PaymentMethodType.CASH: CASH_ACCOUNT_CODE,
    PaymentMethodType.ELECTRONIC: BANK_ACCOUNT_CODE,
    PaymentMethodType.CREDIT: RECEIVABLE_ACCOUNT_CODE,
}

PostingLine = tuple[str, Decimal, Decimal]


def _get_account(db: Session, code: str) -> Account:
    account = db.query(Account).filter(Account.code == code).first()
    if not account:
        raise LookupError(f"Account {code} not found in chart of accounts")
    return account


def method_account_code(method: PaymentMethod) -> str:
    return method.account_code or DEFAULT_METHOD_ACCOUNTS[method.type]


def _existing(db: Session, source_type: str, source_id: str) -> JournalEntry | None:
    return (
        db.query(JournalEntry)
        .filter(JournalEntry.source_type == source_type, JournalEntry.source_id == source_id)
        .first()
    )


def _post(
    db: Session,
    *,
    source_type: str,
    source_id: str,
    description: str,
    reference: str | None,
    lines: list[PostingLine],
    user_id: UUID | None = None,
) -> JournalEntry | None:
    """Create a balanced journal entry once per source document.

    Zero lines are dropped; nothing is posted if every line is zero.
    """
    existing = _existing(db, source_type, source_id)
    if existing is not None:
        logger.debug("Journal for %s %s already posted", source_type, source_id)
        return existing

    lines = [(code, money(dr), money(cr)) for code, dr, cr in lines]
    lines = [(code, dr, cr) for code, dr, cr in lines if dr > ZERO or cr > ZERO]
    if not lines:
        return None

    debits = sum((dr for _, dr, _ in lines), ZERO)
    credits = sum((cr for _, _, cr in lines), ZERO)
    if debits != credits:
        raise ValueError(
            f"Unbalanced posting for {source_type} {source_id}: "
            f"debits {debits} != credits {credits}"
        )

    entry = JournalEntry(
        entry_date=datetime.now(timezone.utc),
        description=description,
        reference=reference,
        source_type=source_type,
        source_id=source_id,
        created_by=user_id,
    )
    db.add(entry)
    db.flush()
    for code, dr, cr in lines:
        db.add(
            TransactionSplit(
                journal_entry_id=entry.id,
                account_id=_get_account(db, code).id,
                debit_amount=dr,
                credit_amount=cr,
            )
        )
    db.flush()
    return entry


def _load_invoice(db: Session, invoice_id: str) -> Invoice:
    invoice = db.query(Invoice).filter(Invoice.id == UUID(invoice_id)).first()
    if invoice is None:
        raise LookupError(f"Invoice {invoice_id} not found")
    return invoice


# ─── Postings ────────────────────────────────────────────────────────────────


def post_sale_journal(
    db: Session, invoice: Invoice, *, on_credit: bool
) -> JournalEntry | None:
    lines: list[PostingLine] = []
    if on_credit:
        lines.append((RECEIVABLE_ACCOUNT_CODE, invoice.total, ZERO))
        settled = invoice.total
    else:
        settled = ZERO
        for payment in invoice.payments:
            lines.append((method_account_code(payment.payment_method), payment.amount, ZERO))
            settled += payment.amount

    # Tender accepted within rounding tolerance is written off as discount
    write_off = max(ZERO, invoice.total - settled)
    lines.append((DISCOUNT_ACCOUNT_CODE, invoice.discount + write_off, ZERO))
    lines.append((SALES_ACCOUNT_CODE, ZERO, invoice.subtotal))
    lines.append((TAX_PAYABLE_ACCOUNT_CODE, ZERO, invoice.tax))

    return _post(
        db,
        source_type="invoice",
        source_id=str(invoice.id),
        description=f"POS sale {invoice.number}",
        reference=invoice.number,
        lines=lines,
        user_id=invoice.created_by,
    )


def post_cost_of_sales(db: Session, invoice: Invoice, cost: Decimal) -> JournalEntry | None:
    return _post(
        db,
        source_type="invoice_cogs",
        source_id=str(invoice.id),
        description=f"Cost of sales {invoice.number}",
        reference=invoice.number,
        lines=[
            (COGS_ACCOUNT_CODE, cost, ZERO),
            (INVENTORY_ACCOUNT_CODE, ZERO, cost),
        ],
        user_id=invoice.created_by,
    )


def post_collection_journal(db: Session, payment: Payment) -> JournalEntry | None:
    return _post(
        db,
        source_type="payment",
        source_id=str(payment.id),
        description=f"Collection on {payment.invoice.number}",
        reference=payment.invoice.number,
        lines=[
            (method_account_code(payment.payment_method), payment.amount, ZERO),
            (RECEIVABLE_ACCOUNT_CODE, ZERO, payment.amount),
        ],
        user_id=payment.created_by,
    )


def post_return_journal(
    db: Session, return_: Return, invoice: Invoice, restock_cost: Decimal
) -> JournalEntry | None:
    lines: list[PostingLine] = [
        (SALES_ACCOUNT_CODE, return_.subtotal, ZERO),
        (TAX_PAYABLE_ACCOUNT_CODE, return_.tax, ZERO),
        (DISCOUNT_ACCOUNT_CODE, ZERO, return_.discount),
    ]
    refunded = ZERO
    for refund in return_.refunds:
        method = db.query(PaymentMethod).filter(PaymentMethod.id == refund.payment_method_id).one()
        lines.append((method_account_code(method), ZERO, refund.amount))
        refunded += refund.amount
    remainder = return_.total - refunded
    if remainder > ZERO:
        lines.append((RECEIVABLE_ACCOUNT_CODE, ZERO, remainder))
    lines.append((INVENTORY_ACCOUNT_CODE, restock_cost, ZERO))
    lines.append((COGS_ACCOUNT_CODE, ZERO, restock_cost))

    return _post(
        db,
        source_type="return",
        source_id=str(return_.id),
        description=f"Return on {invoice.number}",
        reference=invoice.number,
        lines=lines,
        user_id=return_.created_by,
    )


def post_shift_discrepancy(db: Session, shift: Shift) -> JournalEntry | None:
    difference = shift.difference or ZERO
    if difference < ZERO:
        lines = [
            (CASH_SHORTAGE_ACCOUNT_CODE, -difference, ZERO),
            (CASH_ACCOUNT_CODE, ZERO, -difference),
        ]
        description = f"Cash shortage on shift close: {-difference}"
    else:
        lines = [
            (CASH_ACCOUNT_CODE, difference, ZERO),
            (OTHER_INCOME_ACCOUNT_CODE, ZERO, difference),
        ]
        description = f"Cash overage on shift close: {difference}"
    return _post(
        db,
        source_type="shift_close",
        source_id=str(shift.id),
        description=description,
        reference=f"SHIFT-{str(shift.id)[:8]}",
        lines=lines,
        user_id=shift.user_id,
    )


# ─── Outbox handlers ─────────────────────────────────────────────────────────


def handle_sale_completed(db: Session, event: IntegrationEvent) -> None:
    invoice = _load_invoice(db, event.payload["invoice_id"])
    on_credit = event.payload.get("status") == InvoiceStatus.CREDIT_PENDING.value
    post_sale_journal(db, invoice, on_credit=on_credit)
    post_cost_of_sales(db, invoice, Decimal(event.payload.get("cost_of_sales", "0")))


def handle_shift_closed(db: Session, event: IntegrationEvent) -> None:
    shift = db.query(Shift).filter(Shift.id == UUID(event.payload["shift_id"])).first()
    if shift is None:
        raise LookupError(f"Shift {event.payload['shift_id']} not found")
    post_shift_discrepancy(db, shift)


def handle_invoice_payment(db: Session, event: IntegrationEvent) -> None:
    payment = db.query(Payment).filter(Payment.id == UUID(event.payload["payment_id"])).first()
    if payment is None:
        raise LookupError(f"Payment {event.payload['payment_id']} not found")
    post_collection_journal(db, payment)


def handle_return_completed(db: Session, event: IntegrationEvent) -> None:
    return_ = db.query(Return).filter(Return.id == UUID(event.payload["return_id"])).first()
    if return_ is None:
        raise LookupError(f"Return {event.payload['return_id']} not found")
    invoice = _load_invoice(db, event.payload["invoice_id"])
    post_return_journal(
        db, return_, invoice, Decimal(event.payload.get("restock_cost", "0"))
    )
