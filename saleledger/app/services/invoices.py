"""Read side for invoices and returns."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from saleledger.app.core.errors import NotFoundError
from saleledger.app.core.retry import with_db_retry
from saleledger.app.models.invoice import Invoice, Payment
from saleledger.app.models.returns import Return
from saleledger.app.schemas.invoice import (
    InvoiceItemOut,
    InvoiceOut,
    InvoicePaymentOut,
    ItemTaxOut,
    PaymentOut,
)
from saleledger.app.schemas.returns import CreditNoteOut, ReturnItemOut, ReturnOut
from saleledger.app.services.tax import money


def _tax_out(row) -> ItemTaxOut:
    return ItemTaxOut(
        tax_key=row.tax_key,
        name=row.name,
        rate=str(row.rate),
        base=str(money(row.base)),
        amount=str(money(row.amount)),
    )


def invoice_to_out(invoice: Invoice) -> InvoiceOut:
    return InvoiceOut(
        id=invoice.id,
        number=invoice.number,
        status=invoice.status.value,
        customer_id=invoice.customer_id,
        warehouse_id=invoice.warehouse_id,
        shift_id=invoice.shift_id,
        subtotal=str(money(invoice.subtotal)),
        discount=str(money(invoice.discount)),
        tax=str(money(invoice.tax)),
        total=str(money(invoice.total)),
        balance=str(money(invoice.balance)),
        issued_at=invoice.issued_at.isoformat(),
        items=[
            InvoiceItemOut(
                id=item.id,
                product_id=item.product_id,
                variant_id=item.variant_id,
                description=item.description,
                quantity=str(item.quantity),
                unit_price=str(money(item.unit_price)),
                discount=str(item.discount),
                subtotal=str(money(item.subtotal)),
                tax_amount=str(money(item.tax_amount)),
                total=str(money(item.total)),
                taxes=[_tax_out(t) for t in item.taxes],
            )
            for item in invoice.items
        ],
        tax_summaries=[_tax_out(s) for s in invoice.tax_summaries],
        payments=[
            PaymentOut(
                id=p.id,
                payment_method_id=p.payment_method_id,
                amount=str(money(p.amount)),
                reference=p.reference,
            )
            for p in invoice.payments
        ],
    )


@with_db_retry
def get_invoice_detail(db: Session, invoice_id: UUID) -> InvoiceOut:
    invoice = db.query(Invoice).filter(Invoice.id == invoice_id).first()
    if invoice is None:
        raise NotFoundError("errors.invoice_not_found", field="invoice_id", id=invoice_id)
    return invoice_to_out(invoice)


def payment_to_out(payment: Payment) -> InvoicePaymentOut:
    invoice = payment.invoice
    return InvoicePaymentOut(
        id=payment.id,
        payment_method_id=payment.payment_method_id,
        amount=str(money(payment.amount)),
        reference=payment.reference,
        invoice_status=invoice.status.value,
        invoice_balance=str(money(invoice.balance)),
    )


def return_to_out(return_: Return) -> ReturnOut:
    note = return_.credit_note
    return ReturnOut(
        id=return_.id,
        invoice_id=return_.invoice_id,
        subtotal=str(money(return_.subtotal)),
        discount=str(money(return_.discount)),
        tax=str(money(return_.tax)),
        total=str(money(return_.total)),
        items=[
            ReturnItemOut(
                invoice_item_id=ri.invoice_item_id,
                product_id=ri.product_id,
                quantity=str(ri.quantity),
                subtotal=str(money(ri.subtotal)),
                tax=str(money(ri.tax)),
                total=str(money(ri.total)),
            )
            for ri in return_.items
        ],
        credit_note=(
            CreditNoteOut(id=note.id, number=note.number, total=str(money(note.total)))
            if note is not None
            else None
        ),
    )
