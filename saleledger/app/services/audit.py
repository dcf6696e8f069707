from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from saleledger.app.models.audit import AuditLog


def log_action(
    db: Session,
    *,
    user_id: UUID | None,
    action: str,
    resource_type: str,
    resource_id: str,
    changes: dict[str, Any] | None = None,
    ip_address: str | None = None,
) -> None:
    """Add an audit row to the caller's transaction.

    Never commits: the row becomes visible only if the surrounding business
    operation commits.
    """
    db.add(
        AuditLog(
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            user_id=user_id,
            changes=changes,
            ip_address=ip_address,
        )
    )
