"""Sale orchestration: one checkout, one transaction.

    RECEIVED → VALIDATED → PRICED → PAID | CREDIT_PENDING → STOCK_SYNCED → COMMITTED

Every step before COMMITTED runs inside the caller's session transaction;
any error rolls the whole checkout back. The accounting posting is announced
through an outbox row written in the same commit and dispatched afterwards.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from saleledger.app.core.config import settings
from saleledger.app.core.errors import NotFoundError, ValidationFailedError
from saleledger.app.models.customer import WALK_IN_KEY, Customer
from saleledger.app.models.inventory import Product, ProductVariant, Warehouse
from saleledger.app.models.invoice import (
    Invoice,
    InvoiceItem,
    InvoiceItemTax,
    InvoiceStatus,
    InvoiceTaxSummary,
)
from saleledger.app.models.pos import PaymentMethod
from saleledger.app.models.user import User
from saleledger.app.schemas.pos import CheckoutRequest, SaleLineIn
from saleledger.app.services.audit import log_action
from saleledger.app.services.credit import (
    apply_credit_sale,
    check_credit_available,
    is_credit_method,
    lock_customer,
)
from saleledger.app.services.discounts import authorize_discount
from saleledger.app.services.numbering import next_document_number
from saleledger.app.services.outbox import SALE_COMPLETED, dispatch_events, enqueue_event
from saleledger.app.services.payments import (
    Allocation,
    TenderLine,
    allocate,
    allocate_legacy,
    create_payments,
    load_payment_methods,
)
from saleledger.app.services.shift import require_open_shift
from saleledger.app.services.stock import StockLine, sync_stock_for_sale
from saleledger.app.services.tax import (
    ZERO,
    LineTaxResult,
    TaxSummary,
    compute_line_taxes,
    line_subtotal,
    money,
    resolve_rates,
)

logger = logging.getLogger(__name__)


# ─── State machine ───────────────────────────────────────────────────────────


class SaleState(str, enum.Enum):
    RECEIVED = "RECEIVED"
    VALIDATED = "VALIDATED"
    PRICED = "PRICED"
    PAID = "PAID"
    CREDIT_PENDING = "CREDIT_PENDING"
    STOCK_SYNCED = "STOCK_SYNCED"
    COMMITTED = "COMMITTED"


_TRANSITIONS: dict[SaleState, frozenset[SaleState]] = {
    SaleState.RECEIVED: frozenset({SaleState.VALIDATED}),
    SaleState.VALIDATED: frozenset({SaleState.PRICED}),
    SaleState.PRICED: frozenset({SaleState.PAID, SaleState.CREDIT_PENDING}),
    SaleState.PAID: frozenset({SaleState.STOCK_SYNCED}),
    SaleState.CREDIT_PENDING: frozenset({SaleState.STOCK_SYNCED}),
    SaleState.STOCK_SYNCED: frozenset({SaleState.COMMITTED}),
    SaleState.COMMITTED: frozenset(),
}


class SaleStateMachine:
    def __init__(self) -> None:
        self.state = SaleState.RECEIVED
        self.history: list[SaleState] = [SaleState.RECEIVED]

    def advance(self, target: SaleState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal sale transition {self.state.value} -> {target.value}")
        logger.debug("Checkout %s -> %s", self.state.value, target.value)
        self.state = target
        self.history.append(target)


# ─── Pricing ─────────────────────────────────────────────────────────────────


@dataclass
class PricedLine:
    request: SaleLineIn
    product: Product
    variant: ProductVariant | None
    subtotal: Decimal
    taxes: LineTaxResult

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.taxes.total

    @property
    def description(self) -> str:
        if self.variant is not None:
            return f"{self.product.name} - {self.variant.name}"
        return self.product.name


@dataclass
class PricedSale:
    lines: list[PricedLine]
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    summary: TaxSummary = field(default_factory=TaxSummary)

    @property
    def total(self) -> Decimal:
        return self.subtotal - self.discount + self.tax


def price_lines(db: Session, request: CheckoutRequest) -> PricedSale:
    """Price every requested line and roll up the document totals."""
    product_ids = {line.product_id for line in request.items}
    products = {
        p.id: p for p in db.query(Product).filter(Product.id.in_(product_ids)).all()
    }

    lines: list[PricedLine] = []
    summary = TaxSummary()
    for index, line in enumerate(request.items):
        product = products.get(line.product_id)
        if product is None or not product.is_active:
            raise NotFoundError(
                "errors.product_not_found",
                code="PRODUCT_NOT_FOUND",
                field=f"items.{index}.product_id",
                id=line.product_id,
            )
        variant = None
        if line.variant_id is not None:
            variant = db.query(ProductVariant).filter(ProductVariant.id == line.variant_id).first()
            if variant is None or variant.product_id != product.id:
                raise NotFoundError(
                    "errors.variant_not_found",
                    field=f"items.{index}.variant_id",
                    id=line.variant_id,
                )

        base = line_subtotal(line.quantity, line.unit_price, line.discount)
        rates = resolve_rates(
            db, applied_tax_ids=line.applied_taxes, legacy_rate=line.tax_rate
        )
        taxes = compute_line_taxes(base, rates)
        summary.add(taxes)
        lines.append(
            PricedLine(request=line, product=product, variant=variant, subtotal=base, taxes=taxes)
        )

    subtotal = sum((pl.subtotal for pl in lines), ZERO)
    discount = money(request.discount)
    if discount > subtotal:
        raise ValidationFailedError(
            "errors.discount_exceeds_subtotal", field="discount", subtotal=subtotal
        )
    return PricedSale(
        lines=lines, subtotal=subtotal, discount=discount, tax=summary.total, summary=summary
    )


# ─── Customer ────────────────────────────────────────────────────────────────


def get_or_create_walk_in(db: Session) -> Customer:
    """Return the shared walk-in customer, creating it on first use.

    A concurrent creator trips the unique ``walk_in_key``; the loser
    re-reads the winner's row.
    """
    customer = db.query(Customer).filter(Customer.walk_in_key == WALK_IN_KEY).first()
    if customer is not None:
        return customer
    try:
        with db.begin_nested():
            customer = Customer(
                name=settings.WALK_IN_CUSTOMER_NAME,
                is_walk_in=True,
                walk_in_key=WALK_IN_KEY,
            )
            db.add(customer)
        return customer
    except IntegrityError:
        logger.debug("Walk-in customer created concurrently; re-reading")
    return db.query(Customer).filter(Customer.walk_in_key == WALK_IN_KEY).one()


def resolve_customer(db: Session, customer_id: UUID | None, *, lock: bool) -> Customer:
    if customer_id is None:
        return get_or_create_walk_in(db)
    if lock:
        return lock_customer(db, customer_id)
    customer = db.query(Customer).filter(Customer.id == customer_id).first()
    if customer is None:
        raise NotFoundError("errors.customer_not_found", field="customer_id", id=customer_id)
    return customer


# ─── Payment plan ────────────────────────────────────────────────────────────


@dataclass
class PaymentPlan:
    credit_method: PaymentMethod | None = None
    tenders: list[TenderLine] = field(default_factory=list)
    legacy_method: PaymentMethod | None = None

    @property
    def on_credit(self) -> bool:
        return self.credit_method is not None


def build_payment_plan(db: Session, request: CheckoutRequest) -> PaymentPlan:
    """Resolve payment methods and decide between credit and tender."""
    if request.payments:
        methods = load_payment_methods(db, [p.payment_method_id for p in request.payments])
        credit_legs = [p for p in request.payments if is_credit_method(methods[p.payment_method_id])]
        if credit_legs:
            if len(request.payments) != 1:
                raise ValidationFailedError("errors.credit_exclusive", field="payments")
            return PaymentPlan(credit_method=methods[credit_legs[0].payment_method_id])
        return PaymentPlan(
            tenders=[
                TenderLine(
                    method=methods[p.payment_method_id],
                    amount=p.amount,
                    reference=p.reference,
                    notes=p.notes,
                )
                for p in request.payments
            ]
        )

    if request.payment_method_id is None:
        raise ValidationFailedError("errors.payment_required", field="payment_method_id")
    method = load_payment_methods(db, [request.payment_method_id])[request.payment_method_id]
    if is_credit_method(method):
        return PaymentPlan(credit_method=method)
    return PaymentPlan(legacy_method=method)


# ─── Checkout ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Receipt:
    invoice_id: UUID
    invoice_number: str
    total: Decimal
    change: Decimal
    status: InvoiceStatus


def _persist_invoice(
    db: Session,
    *,
    priced: PricedSale,
    customer: Customer,
    warehouse_id: UUID,
    shift_id: UUID,
    user_id: UUID,
    notes: str | None,
) -> Invoice:
    consecutive, number = next_document_number(db, settings.INVOICE_PREFIX)
    invoice = Invoice(
        number=number,
        prefix=settings.INVOICE_PREFIX,
        consecutive=consecutive,
        status=InvoiceStatus.PAID,
        customer_id=customer.id,
        warehouse_id=warehouse_id,
        shift_id=shift_id,
        subtotal=priced.subtotal,
        discount=priced.discount,
        tax=priced.tax,
        total=priced.total,
        balance=ZERO,
        notes=notes,
        created_by=user_id,
        issued_at=datetime.now(timezone.utc),
    )
    db.add(invoice)

    for pl in priced.lines:
        item = InvoiceItem(
            product_id=pl.product.id,
            variant_id=pl.variant.id if pl.variant else None,
            description=pl.description,
            quantity=pl.request.quantity,
            unit_price=pl.request.unit_price,
            discount=pl.request.discount,
            subtotal=pl.subtotal,
            tax_amount=pl.taxes.total,
            total=pl.total,
        )
        item.taxes = [
            InvoiceItemTax(
                tax_rate_id=t.descriptor.tax_rate_id,
                tax_key=t.descriptor.key,
                name=t.descriptor.name,
                rate=t.descriptor.rate,
                base=t.base,
                amount=t.amount,
            )
            for t in pl.taxes.taxes
        ]
        invoice.items.append(item)

    invoice.tax_summaries = [
        InvoiceTaxSummary(
            tax_rate_id=row.descriptor.tax_rate_id,
            tax_key=key,
            name=row.descriptor.name,
            rate=row.descriptor.rate,
            base=row.base,
            amount=row.amount,
        )
        for key, row in priced.summary.rows.items()
    ]
    db.flush()
    return invoice


def process_checkout(
    db: Session,
    *,
    request: CheckoutRequest,
    user: User,
    ip_address: str | None = None,
) -> Receipt:
    """Run a complete checkout and commit it, or roll everything back."""
    machine = SaleStateMachine()
    try:
        # ── Validate ─────────────────────────────────────────────────────
        supervisor_id = None
        if request.has_discount:
            supervisor_id = authorize_discount(
                db, user=user, override_token=request.discount_override_token
            )
        shift = require_open_shift(db, user.id)
        warehouse = db.query(Warehouse).filter(Warehouse.id == request.warehouse_id).first()
        if warehouse is None or not warehouse.is_active:
            raise NotFoundError(
                "errors.warehouse_not_found", field="warehouse_id", id=request.warehouse_id
            )
        plan = build_payment_plan(db, request)
        machine.advance(SaleState.VALIDATED)

        # ── Price ────────────────────────────────────────────────────────
        priced = price_lines(db, request)
        machine.advance(SaleState.PRICED)

        # ── Customer and settlement checks (nothing persisted yet) ───────
        customer = resolve_customer(db, request.customer_id, lock=plan.on_credit)
        allocation: Allocation | None = None
        if plan.on_credit:
            check_credit_available(customer, priced.total)
        elif plan.legacy_method is not None:
            allocation = allocate_legacy(
                priced.total, plan.legacy_method, request.cash_received
            )
        else:
            allocation = allocate(priced.total, plan.tenders)

        # ── Persist ──────────────────────────────────────────────────────
        invoice = _persist_invoice(
            db,
            priced=priced,
            customer=customer,
            warehouse_id=warehouse.id,
            shift_id=shift.id,
            user_id=user.id,
            notes=request.notes,
        )

        # ── Settle ───────────────────────────────────────────────────────
        change = ZERO
        if allocation is None:
            apply_credit_sale(db, invoice=invoice, customer=customer)
            machine.advance(SaleState.CREDIT_PENDING)
        else:
            create_payments(
                db, invoice=invoice, allocation=allocation, shift=shift, user_id=user.id
            )
            change = allocation.change
            machine.advance(SaleState.PAID)

        # ── Stock ────────────────────────────────────────────────────────
        movements = sync_stock_for_sale(
            db,
            lines=[
                StockLine(
                    product=pl.product,
                    variant_id=pl.variant.id if pl.variant else None,
                    quantity=pl.request.quantity,
                )
                for pl in priced.lines
            ],
            warehouse_id=warehouse.id,
            invoice_number=invoice.number,
            user_id=user.id,
        )
        machine.advance(SaleState.STOCK_SYNCED)
        db.flush()

        cost_of_sales = money(
            sum(
                (m.quantity * db.get(Product, m.product_id).cost for m in movements),
                ZERO,
            )
        )
        event = enqueue_event(
            db,
            event_type=SALE_COMPLETED,
            aggregate_type="invoice",
            aggregate_id=str(invoice.id),
            payload={
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.number,
                "status": invoice.status.value,
                "total": str(invoice.total),
                "cost_of_sales": str(cost_of_sales),
            },
        )

        log_action(
            db,
            user_id=user.id,
            action="SALE_COMPLETED",
            resource_type="invoices",
            resource_id=invoice.number,
            ip_address=ip_address,
            changes={
                "invoice_id": str(invoice.id),
                "status": invoice.status.value,
                "customer_id": str(customer.id),
                "subtotal": str(invoice.subtotal),
                "discount": str(invoice.discount),
                "tax": str(invoice.tax),
                "total": str(invoice.total),
                "change": str(change),
                "payments": [
                    {"method": p.method.name, "amount": str(p.amount)}
                    for p in (allocation.payments if allocation else [])
                ],
                "discount_authorized_by": str(supervisor_id) if supervisor_id else None,
                "stock_movements": len(movements),
            },
        )

        db.commit()
        machine.advance(SaleState.COMMITTED)
    except Exception:
        db.rollback()
        logger.info("Checkout rolled back in state %s", machine.state.value)
        raise

    dispatch_events([event.id])
    logger.info(
        "Sale %s committed: total %s, status %s", invoice.number, invoice.total, invoice.status.value
    )
    return Receipt(
        invoice_id=invoice.id,
        invoice_number=invoice.number,
        total=money(invoice.total),
        change=money(change),
        status=invoice.status,
    )
