"""Tests for credit-limit checks and credit sales."""
from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from saleledger.app.core.errors import CreditLimitExceededError, CreditNotAllowedError
from saleledger.app.models.customer import Customer
from saleledger.app.models.inventory import Product, Warehouse
from saleledger.app.models.invoice import Invoice, InvoiceStatus, Payment
from saleledger.app.models.outbox import IntegrationEvent
from saleledger.app.models.pos import PaymentMethod, Shift
from saleledger.app.models.user import User
from saleledger.app.schemas.pos import CheckoutRequest, SaleLineIn
from saleledger.app.services.credit import check_credit_available
from saleledger.app.services.sale import process_checkout


def _credit_sale(
    warehouse: Warehouse,
    product: Product,
    customer: Customer | None,
    method: PaymentMethod,
) -> CheckoutRequest:
    return CheckoutRequest(
        customer_id=customer.id if customer else None,
        warehouse_id=warehouse.id,
        items=[SaleLineIn(product_id=product.id, quantity=Decimal("1"), unit_price=product.unit_price)],
        payment_method_id=method.id,
    )


class TestCheckCreditAvailable:
    def test_exceeding_limit_rejected(self, credit_customer: Customer) -> None:
        with pytest.raises(CreditLimitExceededError) as exc_info:
            check_credit_available(credit_customer, Decimal("50000"))
        assert exc_info.value.params["limit"] == "100000.00"
        assert exc_info.value.params["balance"] == "60000.00"

    def test_reaching_limit_exactly_allowed(self, credit_customer: Customer) -> None:
        assert check_credit_available(credit_customer, Decimal("40000")) is credit_customer

    def test_zero_limit_is_unlimited(self, db: Session) -> None:
        c = Customer(name="Open Account", credit_limit=Decimal("0"), current_balance=Decimal("5000000"))
        db.add(c)
        db.commit()
        assert check_credit_available(c, Decimal("1000000")) is c

    def test_null_limit_is_unlimited(self, db: Session) -> None:
        c = Customer(name="No Limit", credit_limit=None)
        db.add(c)
        db.commit()
        assert check_credit_available(c, Decimal("1000000")) is c

    def test_walk_in_not_allowed(self, db: Session) -> None:
        c = Customer(name="Walk-in", is_walk_in=True, walk_in_key="WALK_IN")
        db.add(c)
        db.commit()
        with pytest.raises(CreditNotAllowedError):
            check_credit_available(c, Decimal("1"))

    def test_missing_customer_not_allowed(self) -> None:
        with pytest.raises(CreditNotAllowedError):
            check_credit_available(None, Decimal("1"))


class TestCreditSale:
    def test_credit_sale_within_limit(
        self,
        db: Session,
        seed_accounts: dict,
        cashier_user: User,
        cashier_shift: Shift,
        warehouse: Warehouse,
        catering: Product,
        vip_customer: Customer,
        payment_methods: dict[str, PaymentMethod],
    ) -> None:
        receipt = process_checkout(
            db,
            request=_credit_sale(warehouse, catering, vip_customer, payment_methods["CREDIT"]),
            user=cashier_user,
        )

        assert receipt.status == InvoiceStatus.CREDIT_PENDING
        assert receipt.total == Decimal("50000.00")
        assert receipt.change == Decimal("0.00")

        db.refresh(vip_customer)
        assert vip_customer.current_balance == Decimal("110000")

        invoice = db.get(Invoice, receipt.invoice_id)
        assert invoice.balance == Decimal("50000")
        assert db.query(Payment).filter(Payment.invoice_id == invoice.id).count() == 0

        db.refresh(cashier_shift)
        assert cashier_shift.expected_cash == Decimal("100000")
        assert cashier_shift.summaries == []

        event = db.query(IntegrationEvent).one()
        assert event.payload["status"] == "CREDIT_PENDING"

    def test_credit_sale_over_limit_rolls_back(
        self,
        db: Session,
        cashier_user: User,
        cashier_shift: Shift,
        warehouse: Warehouse,
        catering: Product,
        credit_customer: Customer,
        payment_methods: dict[str, PaymentMethod],
    ) -> None:
        with pytest.raises(CreditLimitExceededError):
            process_checkout(
                db,
                request=_credit_sale(warehouse, catering, credit_customer, payment_methods["CREDIT"]),
                user=cashier_user,
            )

        db.refresh(credit_customer)
        assert credit_customer.current_balance == Decimal("60000")
        assert db.query(Invoice).count() == 0
        assert db.query(IntegrationEvent).count() == 0

    def test_credit_sale_to_walk_in_rejected(
        self,
        db: Session,
        cashier_user: User,
        cashier_shift: Shift,
        warehouse: Warehouse,
        catering: Product,
        payment_methods: dict[str, PaymentMethod],
    ) -> None:
        with pytest.raises(CreditNotAllowedError):
            process_checkout(
                db,
                request=_credit_sale(warehouse, catering, None, payment_methods["CREDIT"]),
                user=cashier_user,
            )
        assert db.query(Invoice).count() == 0
