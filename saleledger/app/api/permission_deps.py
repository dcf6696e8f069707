"""Granular permission dependencies.

Usage in endpoints::

    @router.post("/sale")
    def create_sale(
        payload: CheckoutRequest,
        db: Session = Depends(get_db),
        current_user: User = Depends(require_permission("pos:sale")),
    ):
        ...
"""

from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from saleledger.app.api.deps import get_current_user
from saleledger.app.core.database import get_db
from saleledger.app.core.errors import PermissionDeniedError
from saleledger.app.models.user import User
from saleledger.app.services.permissions import fetch_user_permissions


def require_permission(*permission_codes: str):
    """FastAPI dependency factory; checks the user has **all** listed permissions.

    Returns the authenticated ``User`` so the endpoint can use it.
    """

    def _checker(
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> User:
        missing = set(permission_codes) - fetch_user_permissions(db, current_user)
        if missing:
            raise PermissionDeniedError(
                "errors.missing_permissions", permissions=", ".join(sorted(missing))
            )
        return current_user

    return _checker
