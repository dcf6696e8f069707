"""Business error taxonomy for the sale engine.

Services raise these; ``main.py`` renders them as
``{"error": <translated message>, "code": <machine code>, "field": ...}``
using the request's ``Accept-Language``.
"""

from __future__ import annotations

from typing import Any


class SaleEngineError(Exception):
    code: str = "BUSINESS_ERROR"
    status_code: int = 400
    message_key: str = "errors.business"
    headers: dict[str, str] | None = None

    def __init__(
        self,
        message_key: str | None = None,
        *,
        field: str | None = None,
        code: str | None = None,
        **params: Any,
    ) -> None:
        if message_key is not None:
            self.message_key = message_key
        if code is not None:
            self.code = code
        self.field = field
        self.params = {k: str(v) for k, v in params.items()}
        super().__init__(self.message_key)

    def __str__(self) -> str:
        if self.params:
            rendered = ", ".join(f"{k}={v}" for k, v in self.params.items())
            return f"{self.code}: {self.message_key} ({rendered})"
        return f"{self.code}: {self.message_key}"


class ValidationFailedError(SaleEngineError):
    code = "VALIDATION_ERROR"
    message_key = "errors.validation"


class NotFoundError(SaleEngineError):
    code = "NOT_FOUND"
    status_code = 404
    message_key = "errors.not_found"


class NotAuthenticatedError(SaleEngineError):
    code = "NOT_AUTHENTICATED"
    status_code = 401
    message_key = "errors.not_authenticated"
    headers = {"WWW-Authenticate": "Bearer"}


class PermissionDeniedError(SaleEngineError):
    code = "PERMISSION_DENIED"
    status_code = 403
    message_key = "errors.permission_denied"


class TooManyAttemptsError(SaleEngineError):
    code = "RATE_LIMITED"
    status_code = 429
    message_key = "errors.too_many_attempts"


class DiscountOverrideError(SaleEngineError):
    code = "DISCOUNT_OVERRIDE_INVALID"
    status_code = 403
    message_key = "errors.discount_override_invalid"


class ShiftNotOpenError(SaleEngineError):
    code = "SHIFT_NOT_OPEN"
    status_code = 409
    message_key = "errors.shift_not_open"


class ShiftAlreadyOpenError(SaleEngineError):
    code = "SHIFT_ALREADY_OPEN"
    status_code = 409
    message_key = "errors.shift_already_open"


class CreditNotAllowedError(SaleEngineError):
    code = "CREDIT_NOT_ALLOWED"
    message_key = "errors.credit_not_allowed"


class InsufficientFundsError(SaleEngineError):
    code = "INSUFFICIENT_FUNDS"
    message_key = "errors.insufficient_funds"


class ChangeRequiresCashError(SaleEngineError):
    code = "CHANGE_REQUIRES_CASH"
    message_key = "errors.change_requires_cash"


class CreditLimitExceededError(SaleEngineError):
    code = "CREDIT_LIMIT_EXCEEDED"
    message_key = "errors.credit_limit_exceeded"


class StockInsufficientError(SaleEngineError):
    code = "STOCK_INSUFFICIENT"
    message_key = "errors.stock_insufficient"


class RecipeCycleError(SaleEngineError):
    code = "RECIPE_CYCLE"
    message_key = "errors.recipe_cycle"


class ResourceExhaustedError(SaleEngineError):
    """The database refused a connection (pool or server slots exhausted)."""

    code = "RESOURCE_EXHAUSTED"
    status_code = 503
    message_key = "errors.resource_exhausted"
