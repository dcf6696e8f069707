from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from saleledger.app.core.config import settings
from saleledger.app.core.errors import DiscountOverrideError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ALGORITHM = "HS256"

DISCOUNT_PERMISSION = "pos:discount"


def create_access_token(subject: str, expires_delta: timedelta | None = None) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta
        if expires_delta
        else timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {"sub": subject, "exp": expire}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


# ─── Discount override tokens ────────────────────────────────────────────────


def create_discount_override_token(
    *,
    authorized_by: str,
    issued_for: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Sign a short-lived token letting *issued_for* apply a discount once.

    *authorized_by* is the supervisor whose ``pos:discount`` permission
    backs the override.
    """
    now = datetime.now(timezone.utc)
    expire = now + (
        expires_delta
        if expires_delta
        else timedelta(minutes=settings.DISCOUNT_OVERRIDE_EXPIRE_MINUTES)
    )
    claims = {
        "sub": authorized_by,
        "perm": DISCOUNT_PERMISSION,
        "authorized_user_id": authorized_by,
        "issued_for_user_id": issued_for,
        "aud": settings.DISCOUNT_OVERRIDE_AUDIENCE,
        "iss": settings.DISCOUNT_OVERRIDE_ISSUER,
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=ALGORITHM)


def verify_discount_override_token(token: str, *, acting_user_id: str) -> dict[str, Any]:
    """Validate an override token for *acting_user_id* and return its claims.

    Raises ``DiscountOverrideError`` with a specific code for expired tokens,
    tokens issued for another cashier, and anything else that fails checks.
    """
    try:
        claims = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[ALGORITHM],
            audience=settings.DISCOUNT_OVERRIDE_AUDIENCE,
            issuer=settings.DISCOUNT_OVERRIDE_ISSUER,
        )
    except ExpiredSignatureError as exc:
        raise DiscountOverrideError(
            "errors.discount_override_expired",
            code="DISCOUNT_OVERRIDE_EXPIRED",
            field="discount_override_token",
        ) from exc
    except JWTError as exc:
        raise DiscountOverrideError(field="discount_override_token") from exc

    if claims.get("perm") != DISCOUNT_PERMISSION:
        raise DiscountOverrideError(field="discount_override_token")
    if claims.get("issued_for_user_id") != acting_user_id:
        raise DiscountOverrideError(
            "errors.discount_override_wrong_user",
            code="DISCOUNT_OVERRIDE_WRONG_USER",
            field="discount_override_token",
        )
    return claims
