from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from saleledger.app.api.permission_deps import require_permission
from saleledger.app.core.database import get_db
from saleledger.app.models.outbox import IntegrationEventStatus
from saleledger.app.models.user import User
from saleledger.app.schemas.integration import IntegrationEventOut
from saleledger.app.services.outbox import list_events, requeue_event

router = APIRouter()


@router.get("", response_model=list[IntegrationEventOut])
def get_integration_events(
    status: IntegrationEventStatus | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("integration:read")),
) -> list[IntegrationEventOut]:
    return [
        IntegrationEventOut.model_validate(e)
        for e in list_events(db, status=status, limit=limit)
    ]


@router.post("/{event_id}/requeue", response_model=IntegrationEventOut)
def requeue_integration_event(
    event_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("integration:write")),
) -> IntegrationEventOut:
    return IntegrationEventOut.model_validate(requeue_event(db, event_id))
