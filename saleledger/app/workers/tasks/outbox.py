"""Integration event delivery: accounting postings for committed sales."""

from __future__ import annotations

import logging
from uuid import UUID

from saleledger.app.workers.celery_app import celery

logger = logging.getLogger(__name__)


@celery.task(name="saleledger.app.workers.tasks.outbox.process_integration_event")
def process_integration_event(event_id: str) -> str | None:
    """Deliver one event right after the sale that produced it commits."""
    from saleledger.app.core.database import SessionLocal
    from saleledger.app.services.outbox import process_event

    db = SessionLocal()
    try:
        status = process_event(db, UUID(event_id))
        return status.value if status is not None else None
    finally:
        db.close()


@celery.task(name="saleledger.app.workers.tasks.outbox.process_pending_integration_events")
def process_pending_integration_events() -> dict:
    """Sweep PENDING events whose ``available_at`` has passed."""
    from saleledger.app.core.database import SessionLocal
    from saleledger.app.services.outbox import process_pending_events

    db = SessionLocal()
    try:
        counts = process_pending_events(db)
        if any(counts.values()):
            logger.info("Integration sweep: %s", counts)
        return counts
    finally:
        db.close()
