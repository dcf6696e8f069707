from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from saleledger.app.models.outbox import IntegrationEventStatus


class IntegrationEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    event_type: str
    aggregate_type: str
    aggregate_id: str
    payload: dict[str, Any]
    status: IntegrationEventStatus
    attempts: int
    max_attempts: int
    last_error: str | None
    available_at: datetime
    processed_at: datetime | None
