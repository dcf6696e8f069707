from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from saleledger.app.core.errors import PermissionDeniedError
from saleledger.app.core.security import (
    DISCOUNT_PERMISSION,
    create_discount_override_token,
    verify_discount_override_token,
    verify_password,
)
from saleledger.app.models.user import User
from saleledger.app.services.audit import log_action
from saleledger.app.services.permissions import has_permission

logger = logging.getLogger(__name__)


def authorize_discount(
    db: Session, *, user: User, override_token: str | None
) -> UUID | None:
    """Check that *user* may apply a discount.

    Returns the supervisor id when an override token was used, None when the
    user holds the permission directly.
    """
    if has_permission(db, user, DISCOUNT_PERMISSION):
        return None
    if not override_token:
        raise PermissionDeniedError("errors.discount_permission_required", field="discount")
    claims = verify_discount_override_token(override_token, acting_user_id=str(user.id))
    supervisor_id = UUID(claims["authorized_user_id"])
    logger.info("Discount for %s authorized by supervisor %s", user.username, supervisor_id)
    return supervisor_id


def issue_discount_override(
    db: Session,
    *,
    cashier: User,
    supervisor_username: str,
    supervisor_password: str,
    ip_address: str | None = None,
) -> str:
    """Authenticate a supervisor and sign an override bound to *cashier*."""
    supervisor = (
        db.query(User).filter(User.username == supervisor_username).first()
    )
    if (
        supervisor is None
        or not supervisor.is_active
        or not verify_password(supervisor_password, supervisor.hashed_password)
    ):
        raise PermissionDeniedError("errors.invalid_supervisor_credentials", field="username")
    if not has_permission(db, supervisor, DISCOUNT_PERMISSION):
        raise PermissionDeniedError("errors.discount_permission_required", field="username")

    token = create_discount_override_token(
        authorized_by=str(supervisor.id), issued_for=str(cashier.id)
    )

    log_action(
        db,
        user_id=supervisor.id,
        action="DISCOUNT_OVERRIDE_ISSUED",
        resource_type="users",
        resource_id=str(cashier.id),
        ip_address=ip_address,
        changes={"cashier": cashier.username, "supervisor": supervisor.username},
    )
    db.commit()
    return token
