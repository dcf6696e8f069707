from __future__ import annotations

from sqlalchemy.orm import Session

from saleledger.app.core.retry import with_db_retry
from saleledger.app.models.user import Permission, RolePermission, User


def load_user_permissions(db: Session, user: User) -> set[str]:
    """Return the permission codes granted to *user* through their role."""
    if user.role_id is None:
        return set()
    rows = (
        db.query(Permission.code)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .filter(RolePermission.role_id == user.role_id)
        .all()
    )
    return {r[0] for r in rows}


@with_db_retry
def fetch_user_permissions(db: Session, user: User) -> set[str]:
    """Request-level permission read, retried when connections run out.

    Only for use before a unit of work starts; code inside a sale or return
    transaction calls ``load_user_permissions`` directly.
    """
    return load_user_permissions(db, user)


def has_permission(db: Session, user: User, code: str) -> bool:
    return code in load_user_permissions(db, user)
