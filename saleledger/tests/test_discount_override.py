"""Tests for discount permissions and supervisor override tokens."""
from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from saleledger.app.api.v1.endpoints.pos import _override_limiter
from saleledger.app.core.errors import (
    DiscountOverrideError,
    PermissionDeniedError,
    TooManyAttemptsError,
)
from saleledger.app.core.security import (
    create_discount_override_token,
    verify_discount_override_token,
)
from saleledger.app.middleware.rate_limit import InMemoryRateLimiter
from saleledger.app.models.audit import AuditLog
from saleledger.app.models.inventory import Product, Warehouse
from saleledger.app.models.pos import PaymentMethod, Shift
from saleledger.app.models.user import User
from saleledger.app.schemas.pos import CheckoutRequest, SaleLineIn
from saleledger.app.services.discounts import authorize_discount, issue_discount_override
from saleledger.app.services.sale import process_checkout
from saleledger.tests.conftest import auth


@pytest.fixture(autouse=True)
def _reset_limiter() -> Generator[None, None, None]:
    _override_limiter.reset()
    yield
    _override_limiter.reset()


class TestOverrideToken:
    def test_round_trip_claims(self) -> None:
        token = create_discount_override_token(authorized_by="sup-1", issued_for="cash-1")
        claims = verify_discount_override_token(token, acting_user_id="cash-1")
        assert claims["authorized_user_id"] == "sup-1"
        assert claims["perm"] == "pos:discount"

    def test_wrong_cashier_rejected(self) -> None:
        token = create_discount_override_token(authorized_by="sup-1", issued_for="cash-1")
        with pytest.raises(DiscountOverrideError) as exc_info:
            verify_discount_override_token(token, acting_user_id="cash-2")
        assert exc_info.value.code == "DISCOUNT_OVERRIDE_WRONG_USER"

    def test_expired_rejected(self) -> None:
        token = create_discount_override_token(
            authorized_by="sup-1", issued_for="cash-1", expires_delta=timedelta(seconds=-5)
        )
        with pytest.raises(DiscountOverrideError) as exc_info:
            verify_discount_override_token(token, acting_user_id="cash-1")
        assert exc_info.value.code == "DISCOUNT_OVERRIDE_EXPIRED"

    def test_garbage_rejected(self) -> None:
        with pytest.raises(DiscountOverrideError) as exc_info:
            verify_discount_override_token("not-a-token", acting_user_id="cash-1")
        assert exc_info.value.code == "DISCOUNT_OVERRIDE_INVALID"


class TestAuthorizeDiscount:
    def test_permission_holder_needs_no_token(
        self, db: Session, supervisor_user: User
    ) -> None:
        assert authorize_discount(db, user=supervisor_user, override_token=None) is None

    def test_cashier_without_token_rejected(self, db: Session, cashier_user: User) -> None:
        with pytest.raises(PermissionDeniedError) as exc_info:
            authorize_discount(db, user=cashier_user, override_token=None)
        assert exc_info.value.message_key == "errors.discount_permission_required"

    def test_cashier_with_supervisor_token(
        self, db: Session, cashier_user: User, supervisor_user: User
    ) -> None:
        token = issue_discount_override(
            db,
            cashier=cashier_user,
            supervisor_username="test_supervisor",
            supervisor_password="pass",
        )
        assert authorize_discount(db, user=cashier_user, override_token=token) == supervisor_user.id
        assert db.query(AuditLog).filter(AuditLog.action == "DISCOUNT_OVERRIDE_ISSUED").count() == 1


class TestIssueOverride:
    def test_bad_password(self, db: Session, cashier_user: User, supervisor_user: User) -> None:
        with pytest.raises(PermissionDeniedError) as exc_info:
            issue_discount_override(
                db,
                cashier=cashier_user,
                supervisor_username="test_supervisor",
                supervisor_password="wrong",
            )
        assert exc_info.value.message_key == "errors.invalid_supervisor_credentials"

    def test_supervisor_without_discount_permission(
        self, db: Session, cashier_user: User
    ) -> None:
        with pytest.raises(PermissionDeniedError) as exc_info:
            issue_discount_override(
                db,
                cashier=cashier_user,
                supervisor_username="test_cashier",
                supervisor_password="pass",
            )
        assert exc_info.value.message_key == "errors.discount_permission_required"


class TestDiscountedCheckout:
    def _request(
        self,
        warehouse: Warehouse,
        coffee: Product,
        method: PaymentMethod,
        token: str | None = None,
    ) -> CheckoutRequest:
        return CheckoutRequest(
            warehouse_id=warehouse.id,
            items=[
                SaleLineIn(
                    product_id=coffee.id,
                    quantity=Decimal("1"),
                    unit_price=Decimal("20000"),
                    discount=Decimal("10"),
                )
            ],
            payment_method_id=method.id,
            discount_override_token=token,
        )

    def test_line_discount_needs_permission(
        self,
        db: Session,
        cashier_user: User,
        cashier_shift: Shift,
        warehouse: Warehouse,
        coffee: Product,
        payment_methods: dict[str, PaymentMethod],
    ) -> None:
        with pytest.raises(PermissionDeniedError):
            process_checkout(
                db,
                request=self._request(warehouse, coffee, payment_methods["CARD"]),
                user=cashier_user,
            )

    def test_override_token_allows_discount(
        self,
        db: Session,
        cashier_user: User,
        supervisor_user: User,
        cashier_shift: Shift,
        warehouse: Warehouse,
        coffee: Product,
        payment_methods: dict[str, PaymentMethod],
    ) -> None:
        token = create_discount_override_token(
            authorized_by=str(supervisor_user.id), issued_for=str(cashier_user.id)
        )
        receipt = process_checkout(
            db,
            request=self._request(warehouse, coffee, payment_methods["CARD"], token),
            user=cashier_user,
        )
        assert receipt.total == Decimal("18000.00")

        audit = db.query(AuditLog).filter(AuditLog.action == "SALE_COMPLETED").one()
        assert audit.changes["discount_authorized_by"] == str(supervisor_user.id)


# ─── API ─────────────────────────────────────────────────────────────────────


class TestOverrideAPI:
    def test_issue_override(
        self, client: TestClient, cashier_token: str, supervisor_user: User
    ) -> None:
        resp = client.post(
            "/api/v1/pos/discount-override",
            json={"username": "test_supervisor", "password": "pass"},
            headers=auth(cashier_token),
        )
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["token"]
        assert data["expires_in"] == 300

    def test_bad_credentials_forbidden(
        self, client: TestClient, cashier_token: str, supervisor_user: User
    ) -> None:
        resp = client.post(
            "/api/v1/pos/discount-override",
            json={"username": "test_supervisor", "password": "nope"},
            headers=auth(cashier_token),
        )
        assert resp.status_code == 403
        assert resp.json()["code"] == "PERMISSION_DENIED"

    def test_attempts_are_throttled(
        self, client: TestClient, cashier_token: str, supervisor_user: User
    ) -> None:
        responses = [
            client.post(
                "/api/v1/pos/discount-override",
                json={"username": "test_supervisor", "password": "nope"},
                headers=auth(cashier_token),
            )
            for _ in range(6)
        ]
        assert [r.status_code for r in responses[:5]] == [403] * 5
        assert responses[5].status_code == 429
        assert responses[5].json()["code"] == "RATE_LIMITED"
        assert "60" in responses[5].json()["error"]


class TestRateLimiter:
    def test_blocks_after_max_attempts(self) -> None:
        now = [0.0]
        limiter = InMemoryRateLimiter(window_seconds=60, max_attempts=2, clock=lambda: now[0])
        limiter.check("10.0.0.1")
        limiter.check("10.0.0.1")
        with pytest.raises(TooManyAttemptsError):
            limiter.check("10.0.0.1")

        now[0] = 61.0
        limiter.check("10.0.0.1")

    def test_idle_keys_are_evicted(self) -> None:
        now = [0.0]
        limiter = InMemoryRateLimiter(window_seconds=60, max_attempts=5, clock=lambda: now[0])
        for octet in range(10):
            limiter.check(f"10.0.0.{octet}")
        assert len(limiter) == 10

        now[0] = 60.0
        limiter.check("10.0.0.99")
        assert len(limiter) == 1
