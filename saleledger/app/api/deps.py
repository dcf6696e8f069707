from __future__ import annotations

from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from saleledger.app.core.config import settings
from saleledger.app.core.database import get_db
from saleledger.app.core.errors import NotAuthenticatedError, PermissionDeniedError
from saleledger.app.core.security import ALGORITHM
from saleledger.app.models.user import User

# Tokens are issued by the identity service; this API only verifies them.
# auto_error is off so a missing header renders the same envelope as a bad token.
oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="/api/v1/auth/login/access-token", auto_error=False
)


def get_current_user(
    db: Session = Depends(get_db),
    token: str | None = Depends(oauth2_scheme),
) -> User:
    if not token:
        raise NotAuthenticatedError(field="authorization")

    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
        user_uuid = UUID(payload["sub"])
    except (JWTError, KeyError, TypeError, ValueError):
        raise NotAuthenticatedError(field="authorization")

    user = db.query(User).filter(User.id == user_uuid).first()
    if user is None:
        raise NotAuthenticatedError(field="authorization")
    if not user.is_active:
        raise PermissionDeniedError("errors.inactive_user")
    return user


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None
