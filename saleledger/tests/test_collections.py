"""Tests for collecting payments on credit-pending invoices."""
from __future__ import annotations

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from saleledger.app.core.errors import ShiftNotOpenError, ValidationFailedError
from saleledger.app.models.accounting import Account, JournalEntry
from saleledger.app.models.customer import Customer
from saleledger.app.models.inventory import Product, Warehouse
from saleledger.app.models.invoice import Invoice, InvoiceStatus
from saleledger.app.models.outbox import IntegrationEvent
from saleledger.app.models.pos import CashMovement, CashMovementType, PaymentMethod, Shift
from saleledger.app.models.user import User
from saleledger.app.schemas.pos import CheckoutRequest, SaleLineIn
from saleledger.app.services.credit import collect_invoice_payment
from saleledger.app.services.outbox import INVOICE_PAYMENT_RECEIVED, process_pending_events
from saleledger.app.services.sale import process_checkout
from saleledger.tests.conftest import auth


@pytest.fixture()
def credit_invoice(
    db: Session,
    cashier_user: User,
    cashier_shift: Shift,
    warehouse: Warehouse,
    catering: Product,
    vip_customer: Customer,
    payment_methods: dict[str, PaymentMethod],
) -> Invoice:
    """Catering for 50,000 on the VIP customer's account."""
    receipt = process_checkout(
        db,
        request=CheckoutRequest(
            customer_id=vip_customer.id,
            warehouse_id=warehouse.id,
            items=[
                SaleLineIn(product_id=catering.id, quantity=Decimal("1"), unit_price=Decimal("50000"))
            ],
            payment_method_id=payment_methods["CREDIT"].id,
        ),
        user=cashier_user,
    )
    return db.get(Invoice, receipt.invoice_id)


class TestCollectInvoicePayment:
    def test_partial_then_full_payment(
        self,
        db: Session,
        credit_invoice: Invoice,
        cashier_user: User,
        cashier_shift: Shift,
        vip_customer: Customer,
        payment_methods: dict[str, PaymentMethod],
    ) -> None:
        first = collect_invoice_payment(
            db,
            invoice_id=credit_invoice.id,
            payment_method_id=payment_methods["CASH"].id,
            amount=Decimal("20000"),
            user_id=cashier_user.id,
        )
        assert first.shift_id == cashier_shift.id

        db.refresh(credit_invoice)
        db.refresh(vip_customer)
        db.refresh(cashier_shift)
        assert credit_invoice.status == InvoiceStatus.CREDIT_PENDING
        assert credit_invoice.balance == Decimal("30000")
        assert vip_customer.current_balance == Decimal("90000")
        assert cashier_shift.expected_cash == Decimal("120000")

        movement = (
            db.query(CashMovement)
            .filter(
                CashMovement.shift_id == cashier_shift.id,
                CashMovement.movement_type == CashMovementType.IN,
                CashMovement.reference == credit_invoice.number,
            )
            .one()
        )
        assert movement.amount == Decimal("20000")

        collect_invoice_payment(
            db,
            invoice_id=credit_invoice.id,
            payment_method_id=payment_methods["CARD"].id,
            amount=Decimal("30000"),
            user_id=cashier_user.id,
            reference="AUTH-5521",
        )
        db.refresh(credit_invoice)
        db.refresh(vip_customer)
        db.refresh(cashier_shift)
        assert credit_invoice.status == InvoiceStatus.PAID
        assert credit_invoice.balance == Decimal("0")
        assert vip_customer.current_balance == Decimal("60000")
        # Card collections do not touch the drawer
        assert cashier_shift.expected_cash == Decimal("120000")

        events = (
            db.query(IntegrationEvent)
            .filter(IntegrationEvent.event_type == INVOICE_PAYMENT_RECEIVED)
            .count()
        )
        assert events == 2

    def test_overpayment_rejected(
        self,
        db: Session,
        credit_invoice: Invoice,
        cashier_user: User,
        payment_methods: dict[str, PaymentMethod],
    ) -> None:
        with pytest.raises(ValidationFailedError) as exc_info:
            collect_invoice_payment(
                db,
                invoice_id=credit_invoice.id,
                payment_method_id=payment_methods["CASH"].id,
                amount=Decimal("60000"),
                user_id=cashier_user.id,
            )
        assert exc_info.value.message_key == "errors.payment_exceeds_balance"
        assert exc_info.value.params["balance"] == "50000.00"

    def test_paid_invoice_rejected(
        self,
        db: Session,
        cashier_user: User,
        cashier_shift: Shift,
        warehouse: Warehouse,
        catering: Product,
        payment_methods: dict[str, PaymentMethod],
    ) -> None:
        receipt = process_checkout(
            db,
            request=CheckoutRequest(
                warehouse_id=warehouse.id,
                items=[
                    SaleLineIn(product_id=catering.id, quantity=Decimal("1"), unit_price=Decimal("50000"))
                ],
                payment_method_id=payment_methods["CARD"].id,
            ),
            user=cashier_user,
        )
        with pytest.raises(ValidationFailedError) as exc_info:
            collect_invoice_payment(
                db,
                invoice_id=receipt.invoice_id,
                payment_method_id=payment_methods["CASH"].id,
                amount=Decimal("1000"),
                user_id=cashier_user.id,
            )
        assert exc_info.value.message_key == "errors.invoice_not_credit_pending"

    def test_credit_method_rejected(
        self,
        db: Session,
        credit_invoice: Invoice,
        cashier_user: User,
        payment_methods: dict[str, PaymentMethod],
    ) -> None:
        with pytest.raises(ValidationFailedError) as exc_info:
            collect_invoice_payment(
                db,
                invoice_id=credit_invoice.id,
                payment_method_id=payment_methods["CREDIT"].id,
                amount=Decimal("1000"),
                user_id=cashier_user.id,
            )
        assert exc_info.value.message_key == "errors.credit_method_not_allowed"

    def test_cash_collection_needs_open_shift(
        self,
        db: Session,
        credit_invoice: Invoice,
        supervisor_user: User,
        payment_methods: dict[str, PaymentMethod],
    ) -> None:
        with pytest.raises(ShiftNotOpenError):
            collect_invoice_payment(
                db,
                invoice_id=credit_invoice.id,
                payment_method_id=payment_methods["CASH"].id,
                amount=Decimal("1000"),
                user_id=supervisor_user.id,
            )
        db.refresh(credit_invoice)
        assert credit_invoice.balance == Decimal("50000")

    def test_collection_posts_to_receivable(
        self,
        db: Session,
        seed_accounts: dict[str, Account],
        credit_invoice: Invoice,
        supervisor_user: User,
        payment_methods: dict[str, PaymentMethod],
    ) -> None:
        payment = collect_invoice_payment(
            db,
            invoice_id=credit_invoice.id,
            payment_method_id=payment_methods["TRANSFER"].id,
            amount=Decimal("50000"),
            user_id=supervisor_user.id,
        )
        assert payment.shift_id is None

        assert process_pending_events(db)["processed"] == 2
        entry = (
            db.query(JournalEntry)
            .filter(JournalEntry.source_type == "payment", JournalEntry.source_id == str(payment.id))
            .one()
        )
        lines = {s.account.code: (s.debit_amount, s.credit_amount) for s in entry.splits}
        assert lines == {
            "1200": (Decimal("50000"), Decimal("0")),
            "1300": (Decimal("0"), Decimal("50000")),
        }


# ─── API ─────────────────────────────────────────────────────────────────────


class TestInvoiceAPI:
    def test_get_invoice(
        self, client: TestClient, credit_invoice: Invoice, cashier_token: str
    ) -> None:
        resp = client.get(f"/api/v1/invoices/{credit_invoice.id}", headers=auth(cashier_token))
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["number"] == "FV-000001"
        assert data["status"] == "CREDIT_PENDING"
        assert data["balance"] == "50000.00"
        assert data["payments"] == []

    def test_missing_invoice_404(self, client: TestClient, cashier_token: str) -> None:
        resp = client.get(
            "/api/v1/invoices/00000000-0000-0000-0000-000000000000", headers=auth(cashier_token)
        )
        assert resp.status_code == 404
        assert resp.json()["code"] == "NOT_FOUND"

    def test_record_payment(
        self,
        client: TestClient,
        credit_invoice: Invoice,
        supervisor_token: str,
        payment_methods: dict[str, PaymentMethod],
    ) -> None:
        resp = client.post(
            f"/api/v1/invoices/{credit_invoice.id}/payments",
            json={"payment_method_id": str(payment_methods["CARD"].id), "amount": "50000"},
            headers=auth(supervisor_token),
        )
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["amount"] == "50000.00"
        assert data["invoice_status"] == "PAID"
        assert data["invoice_balance"] == "0.00"

    def test_cashier_cannot_record_payment(
        self,
        client: TestClient,
        credit_invoice: Invoice,
        cashier_token: str,
        payment_methods: dict[str, PaymentMethod],
    ) -> None:
        resp = client.post(
            f"/api/v1/invoices/{credit_invoice.id}/payments",
            json={"payment_method_id": str(payment_methods["CARD"].id), "amount": "1000"},
            headers=auth(cashier_token),
        )
        assert resp.status_code == 403
