"""Tests for message catalogue lookup and interpolation."""
from __future__ import annotations

from saleledger.app.core.i18n import catalogue, translate


def test_spanish_message() -> None:
    assert translate("es", "errors.shift_not_open") == (
        "Debe abrir un turno antes de registrar ventas"
    )


def test_unsupported_language_falls_back_to_english() -> None:
    assert catalogue("fr") == {}
    assert translate("fr", "errors.not_authenticated") == "Could not validate credentials"


def test_unknown_key_returned_as_is() -> None:
    assert translate("en", "errors.no_such_message") == "errors.no_such_message"


def test_placeholders_interpolated() -> None:
    assert translate("en", "errors.too_many_attempts", seconds="60") == (
        "Too many attempts. Try again in 60 seconds"
    )


def test_missing_placeholder_left_visible() -> None:
    assert translate("en", "errors.payment_exceeds_balance", other="x") == (
        "Payment exceeds the outstanding balance of {balance}"
    )


def test_catalogues_share_keys() -> None:
    assert set(catalogue("es")) == set(catalogue("en"))
