"""Retry policy for connection exhaustion.

Driver errors are classified by SQLSTATE into ``ResourceExhaustedError``;
only that type is retried. Wrap reads that run outside a checkout
transaction; the checkout itself is never retried.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from saleledger.app.core.config import settings
from saleledger.app.core.errors import ResourceExhaustedError

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

# too_many_connections, configuration_limit_exceeded, connection rejected
EXHAUSTED_SQLSTATES = frozenset({"53300", "53400", "08004"})


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    if orig is None:
        return None
    for attr in ("pgcode", "sqlstate"):
        value = getattr(orig, attr, None)
        if value:
            return str(value)
    diag = getattr(orig, "diag", None)
    return getattr(diag, "sqlstate", None)


def classify_db_error(exc: BaseException) -> BaseException:
    """Map a driver exception to ``ResourceExhaustedError`` when it is one.

    Anything else is returned unchanged so the caller can re-raise it.
    """
    if isinstance(exc, ResourceExhaustedError):
        return exc
    if isinstance(exc, PoolTimeoutError):
        return ResourceExhaustedError(reason="pool_timeout")
    if isinstance(exc, DBAPIError) and _sqlstate(exc) in EXHAUSTED_SQLSTATES:
        return ResourceExhaustedError(reason=_sqlstate(exc))
    return exc


def with_db_retry(
    func: F | None = None,
    *,
    max_attempts: int | None = None,
    base_delay: float | None = None,
    max_delay: float | None = None,
) -> Any:
    """Decorate *func* so connection exhaustion is retried with backoff.

    Delays double from ``base_delay`` up to ``max_delay``; after
    ``max_attempts`` the last ``ResourceExhaustedError`` propagates.
    """

    def decorator(fn: F) -> F:
        attempts = max_attempts or settings.DB_RETRY_MAX_ATTEMPTS
        base = settings.DB_RETRY_BASE_DELAY if base_delay is None else base_delay
        cap = settings.DB_RETRY_MAX_DELAY if max_delay is None else max_delay

        @retry(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=base, min=base, max=cap),
            retry=retry_if_exception_type(ResourceExhaustedError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return fn(*args, **kwargs)
            except (DBAPIError, PoolTimeoutError) as exc:
                classified = classify_db_error(exc)
                if classified is exc:
                    raise
                raise classified from exc

        return wrapper  # type: ignore[return-value]

    if func is not None:
        return decorator(func)
    return decorator
