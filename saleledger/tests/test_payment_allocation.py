"""Tests for tender allocation and change computation (no database)."""
from __future__ import annotations

import uuid
from decimal import Decimal

import pytest

from saleledger.app.core.errors import (
    ChangeRequiresCashError,
    InsufficientFundsError,
    ValidationFailedError,
)
from saleledger.app.models.pos import PaymentMethod, PaymentMethodType
from saleledger.app.services.payments import TenderLine, allocate, allocate_legacy


def _method(name: str, mtype: PaymentMethodType) -> PaymentMethod:
    return PaymentMethod(id=uuid.uuid4(), name=name, type=mtype, is_active=True)


@pytest.fixture()
def cash() -> PaymentMethod:
    return _method("CASH", PaymentMethodType.CASH)


@pytest.fixture()
def card() -> PaymentMethod:
    return _method("CARD", PaymentMethodType.ELECTRONIC)


@pytest.fixture()
def credit() -> PaymentMethod:
    return _method("CREDIT", PaymentMethodType.CREDIT)


class TestAllocate:
    def test_exact_split_payment(self, cash: PaymentMethod, card: PaymentMethod) -> None:
        alloc = allocate(
            Decimal("23800"),
            [
                TenderLine(method=cash, amount=Decimal("15000")),
                TenderLine(method=card, amount=Decimal("8800")),
            ],
        )
        assert alloc.change == Decimal("0")
        assert alloc.tendered == Decimal("23800.00")
        assert [(p.method.name, p.amount) for p in alloc.payments] == [
            ("CASH", Decimal("15000.00")),
            ("CARD", Decimal("8800.00")),
        ]
        assert alloc.applied == Decimal("23800.00")

    def test_cash_overpayment_returns_change(self, cash: PaymentMethod) -> None:
        alloc = allocate(Decimal("23800"), [TenderLine(method=cash, amount=Decimal("25000"))])
        assert alloc.change == Decimal("1200.00")
        assert alloc.payments[0].tendered == Decimal("25000.00")
        assert alloc.payments[0].amount == Decimal("23800.00")

    def test_change_taken_from_cash_leg_only(
        self, cash: PaymentMethod, card: PaymentMethod
    ) -> None:
        alloc = allocate(
            Decimal("23800"),
            [
                TenderLine(method=card, amount=Decimal("20000")),
                TenderLine(method=cash, amount=Decimal("5000")),
            ],
        )
        assert alloc.change == Decimal("1200.00")
        by_name = {p.method.name: p.amount for p in alloc.payments}
        assert by_name == {"CARD": Decimal("20000.00"), "CASH": Decimal("3800.00")}

    def test_same_method_legs_are_grouped(self, cash: PaymentMethod) -> None:
        alloc = allocate(
            Decimal("100"),
            [
                TenderLine(method=cash, amount=Decimal("60")),
                TenderLine(method=cash, amount=Decimal("40")),
            ],
        )
        assert len(alloc.payments) == 1
        assert alloc.payments[0].amount == Decimal("100.00")

    def test_insufficient_funds(self, cash: PaymentMethod, card: PaymentMethod) -> None:
        with pytest.raises(InsufficientFundsError) as exc_info:
            allocate(
                Decimal("23800"),
                [
                    TenderLine(method=cash, amount=Decimal("10000")),
                    TenderLine(method=card, amount=Decimal("8800")),
                ],
            )
        assert exc_info.value.code == "INSUFFICIENT_FUNDS"
        assert exc_info.value.params == {"total": "23800.00", "tendered": "18800.00"}

    def test_shortfall_within_epsilon_accepted(self, card: PaymentMethod) -> None:
        alloc = allocate(Decimal("100.00"), [TenderLine(method=card, amount=Decimal("99.99"))])
        assert alloc.change == Decimal("0")
        assert alloc.applied == Decimal("99.99")

    def test_change_requires_cash(self, card: PaymentMethod) -> None:
        with pytest.raises(ChangeRequiresCashError):
            allocate(Decimal("23800"), [TenderLine(method=card, amount=Decimal("25000"))])

    def test_change_larger_than_cash_leg(
        self, cash: PaymentMethod, card: PaymentMethod
    ) -> None:
        with pytest.raises(ChangeRequiresCashError) as exc_info:
            allocate(
                Decimal("100"),
                [
                    TenderLine(method=card, amount=Decimal("150")),
                    TenderLine(method=cash, amount=Decimal("10")),
                ],
            )
        assert exc_info.value.params["change"] == "60.00"
        assert exc_info.value.params["cash"] == "10.00"

    def test_credit_tender_rejected(self, credit: PaymentMethod) -> None:
        with pytest.raises(ValidationFailedError) as exc_info:
            allocate(Decimal("100"), [TenderLine(method=credit, amount=Decimal("100"))])
        assert exc_info.value.message_key == "errors.credit_exclusive"

    def test_empty_tender_rejected(self) -> None:
        with pytest.raises(ValidationFailedError) as exc_info:
            allocate(Decimal("100"), [])
        assert exc_info.value.message_key == "errors.payment_required"


class TestAllocateLegacy:
    def test_cash_with_received_amount(self, cash: PaymentMethod) -> None:
        alloc = allocate_legacy(Decimal("23800"), cash, Decimal("25000"))
        assert alloc.change == Decimal("1200.00")

    def test_cash_without_received_amount_is_exact(self, cash: PaymentMethod) -> None:
        alloc = allocate_legacy(Decimal("23800"), cash)
        assert alloc.change == Decimal("0")
        assert alloc.applied == Decimal("23800.00")

    def test_card_ignores_cash_received(self, card: PaymentMethod) -> None:
        alloc = allocate_legacy(Decimal("23800"), card, Decimal("30000"))
        assert alloc.change == Decimal("0")
        assert alloc.payments[0].amount == Decimal("23800.00")
