"""Tests for SQLSTATE classification and the connection-exhaustion retry."""
from __future__ import annotations

import types
import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import DBAPIError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from saleledger.app.core.config import settings
from saleledger.app.core.errors import ResourceExhaustedError
from saleledger.app.core.retry import EXHAUSTED_SQLSTATES, classify_db_error, with_db_retry
from saleledger.app.services.permissions import fetch_user_permissions, load_user_permissions
from saleledger.tests.conftest import auth


class _DriverError(Exception):
    def __init__(self, pgcode: str | None) -> None:
        super().__init__(f"driver error {pgcode}")
        self.pgcode = pgcode


def _db_error(sqlstate: str | None) -> DBAPIError:
    return DBAPIError("SELECT 1", {}, _DriverError(sqlstate))


class TestClassify:
    @pytest.mark.parametrize("sqlstate", sorted(EXHAUSTED_SQLSTATES))
    def test_exhaustion_codes(self, sqlstate: str) -> None:
        classified = classify_db_error(_db_error(sqlstate))
        assert isinstance(classified, ResourceExhaustedError)
        assert classified.status_code == 503

    def test_pool_timeout(self) -> None:
        assert isinstance(classify_db_error(PoolTimeoutError()), ResourceExhaustedError)

    @pytest.mark.parametrize("sqlstate", ["23505", "40001", None])
    def test_other_errors_unchanged(self, sqlstate: str | None) -> None:
        exc = _db_error(sqlstate)
        assert classify_db_error(exc) is exc

    def test_non_database_error_unchanged(self) -> None:
        exc = ValueError("boom")
        assert classify_db_error(exc) is exc


class TestWithDbRetry:
    def test_retries_then_succeeds(self) -> None:
        calls: list[int] = []

        @with_db_retry(max_attempts=3, base_delay=0, max_delay=0)
        def flaky() -> str:
            calls.append(1)
            if len(calls) < 3:
                raise _db_error("53300")
            return "ok"

        assert flaky() == "ok"
        assert len(calls) == 3

    def test_gives_up_after_max_attempts(self) -> None:
        calls: list[int] = []

        @with_db_retry(max_attempts=2, base_delay=0, max_delay=0)
        def exhausted() -> None:
            calls.append(1)
            raise _db_error("53300")

        with pytest.raises(ResourceExhaustedError) as exc_info:
            exhausted()
        assert len(calls) == 2
        assert isinstance(exc_info.value.__cause__, DBAPIError)

    def test_other_database_errors_not_retried(self) -> None:
        calls: list[int] = []

        @with_db_retry(max_attempts=3, base_delay=0, max_delay=0)
        def conflict() -> None:
            calls.append(1)
            raise _db_error("23505")

        with pytest.raises(DBAPIError):
            conflict()
        assert len(calls) == 1

    def test_bare_decorator_uses_settings(self) -> None:
        @with_db_retry
        def fine(x: int) -> int:
            return x * 2

        assert fine(21) == 42
        assert fine.__name__ == "fine"


class TestExhaustionRendering:
    def test_exhausted_read_returns_503(
        self, client: TestClient, admin_token: str, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def _exhausted(db, invoice_id):
            raise ResourceExhaustedError(reason="53300")

        monkeypatch.setattr(
            "saleledger.app.api.v1.endpoints.invoices.get_invoice_detail", _exhausted
        )
        resp = client.get(f"/api/v1/invoices/{uuid.uuid4()}", headers=auth(admin_token))
        assert resp.status_code == 503
        assert resp.json()["code"] == "RESOURCE_EXHAUSTED"


class TestPermissionReads:
    @pytest.fixture()
    def exhausted_db(self) -> types.SimpleNamespace:
        calls: list[int] = []

        def query(*entities):
            calls.append(1)
            raise _db_error("53300")

        return types.SimpleNamespace(query=query, calls=calls)

    def test_transactional_read_is_not_retried(self, exhausted_db: types.SimpleNamespace) -> None:
        user = types.SimpleNamespace(role_id=uuid.uuid4())
        with pytest.raises(DBAPIError):
            load_user_permissions(exhausted_db, user)
        assert len(exhausted_db.calls) == 1

    def test_request_level_read_is_retried(self, exhausted_db: types.SimpleNamespace) -> None:
        user = types.SimpleNamespace(role_id=uuid.uuid4())
        with pytest.raises(ResourceExhaustedError):
            fetch_user_permissions(exhausted_db, user)
        assert len(exhausted_db.calls) == settings.DB_RETRY_MAX_ATTEMPTS
