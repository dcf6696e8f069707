from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from saleledger.app.api.deps import client_ip
from saleledger.app.api.permission_deps import require_permission
from saleledger.app.core.config import settings
from saleledger.app.core.database import get_db
from saleledger.app.middleware.rate_limit import InMemoryRateLimiter
from saleledger.app.models.user import User
from saleledger.app.schemas.pos import (
    CheckoutRequest,
    DiscountOverrideOut,
    DiscountOverrideRequest,
    ReceiptOut,
)
from saleledger.app.services.discounts import issue_discount_override
from saleledger.app.services.sale import process_checkout

router = APIRouter()

# Supervisor passwords are checked here; throttle per client IP.
_override_limiter = InMemoryRateLimiter(window_seconds=60, max_attempts=5)


# ─── POS Sales ───────────────────────────────────────────────────────────────


@router.post("/sale", response_model=ReceiptOut, status_code=status.HTTP_201_CREATED)
def create_sale(
    payload: CheckoutRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("pos:sale")),
) -> ReceiptOut:
    receipt = process_checkout(
        db,
        request=payload,
        user=current_user,
        ip_address=client_ip(request),
    )
    return ReceiptOut(
        invoice_id=receipt.invoice_id,
        invoice_number=receipt.invoice_number,
        total=str(receipt.total),
        change=str(receipt.change),
        status=receipt.status.value,
    )


# ─── Discount override ───────────────────────────────────────────────────────


@router.post("/discount-override", response_model=DiscountOverrideOut)
def create_discount_override(
    payload: DiscountOverrideRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("pos:sale")),
) -> DiscountOverrideOut:
    ip = client_ip(request) or "unknown"
    _override_limiter.check(ip)
    token = issue_discount_override(
        db,
        cashier=current_user,
        supervisor_username=payload.username,
        supervisor_password=payload.password,
        ip_address=ip,
    )
    return DiscountOverrideOut(
        token=token,
        expires_in=settings.DISCOUNT_OVERRIDE_EXPIRE_MINUTES * 60,
    )
