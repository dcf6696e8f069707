from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from saleledger.app.api.deps import client_ip
from saleledger.app.api.permission_deps import require_permission
from saleledger.app.core.database import get_db
from saleledger.app.models.user import User
from saleledger.app.schemas.invoice import InvoiceOut, InvoicePaymentCreate, InvoicePaymentOut
from saleledger.app.schemas.returns import ReturnCreate, ReturnOut
from saleledger.app.services.credit import collect_invoice_payment
from saleledger.app.services.invoices import get_invoice_detail, payment_to_out, return_to_out
from saleledger.app.services.returns import process_return

router = APIRouter()


@router.get("/{invoice_id}", response_model=InvoiceOut)
def get_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("invoice:read")),
) -> InvoiceOut:
    return get_invoice_detail(db, invoice_id)


@router.post(
    "/{invoice_id}/payments",
    response_model=InvoicePaymentOut,
    status_code=status.HTTP_201_CREATED,
)
def record_payment(
    invoice_id: UUID,
    body: InvoicePaymentCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("invoice:write")),
) -> InvoicePaymentOut:
    payment = collect_invoice_payment(
        db,
        invoice_id=invoice_id,
        payment_method_id=body.payment_method_id,
        amount=body.amount,
        user_id=current_user.id,
        reference=body.reference,
        notes=body.notes,
        ip_address=client_ip(request),
    )
    return payment_to_out(payment)


@router.post(
    "/{invoice_id}/returns",
    response_model=ReturnOut,
    status_code=status.HTTP_201_CREATED,
)
def create_return(
    invoice_id: UUID,
    body: ReturnCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("returns:process")),
) -> ReturnOut:
    return_ = process_return(
        db,
        invoice_id=invoice_id,
        lines=body.items,
        refunds=body.refunds,
        reason=body.reason,
        issue_credit_note=body.issue_credit_note,
        user=current_user,
        ip_address=client_ip(request),
    )
    return return_to_out(return_)
