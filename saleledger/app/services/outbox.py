"""Transactional outbox for post-commit integrations (accounting posting).

``enqueue_event`` adds a row to the caller's transaction. Once that
transaction commits, ``dispatch_events`` hands the ids to the Celery worker;
if the broker is unreachable the periodic sweep picks them up later.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from saleledger.app.core.config import settings
from saleledger.app.core.errors import NotFoundError, ValidationFailedError
from saleledger.app.models.outbox import IntegrationEvent, IntegrationEventStatus

logger = logging.getLogger(__name__)

SALE_COMPLETED = "sale.completed"
SHIFT_CLOSED = "shift.closed"
INVOICE_PAYMENT_RECEIVED = "invoice.payment_received"
RETURN_COMPLETED = "return.completed"

EventHandler = Callable[[Session, IntegrationEvent], None]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def enqueue_event(
    db: Session,
    *,
    event_type: str,
    aggregate_type: str,
    aggregate_id: str,
    payload: dict[str, Any],
) -> IntegrationEvent:
    event = IntegrationEvent(
        event_type=event_type,
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        payload=payload,
        status=IntegrationEventStatus.PENDING,
        attempts=0,
        max_attempts=settings.OUTBOX_MAX_ATTEMPTS,
        available_at=_now(),
    )
    db.add(event)
    return event


def dispatch_events(event_ids: Iterable[UUID]) -> None:
    """Best-effort hand-off of committed events to the worker queue.

    Never raises: the sale is already durable and the periodic sweep
    retries anything not dispatched here.
    """
    if not settings.OUTBOX_DISPATCH_ON_COMMIT:
        return
    from saleledger.app.workers.tasks.outbox import process_integration_event

    for event_id in event_ids:
        try:
            process_integration_event.delay(str(event_id))
        except Exception:
            logger.warning(
                "Could not dispatch integration event %s; left for sweep",
                event_id,
                exc_info=True,
            )


def _handlers() -> dict[str, EventHandler]:
    from saleledger.app.services import accounting

    return {
        SALE_COMPLETED: accounting.handle_sale_completed,
        SHIFT_CLOSED: accounting.handle_shift_closed,
        INVOICE_PAYMENT_RECEIVED: accounting.handle_invoice_payment,
        RETURN_COMPLETED: accounting.handle_return_completed,
    }


def _backoff(attempts: int) -> timedelta:
    return timedelta(seconds=settings.OUTBOX_RETRY_BASE_SECONDS * 2 ** (attempts - 1))


def process_event(
    db: Session,
    event_id: UUID,
    handlers: dict[str, EventHandler] | None = None,
) -> IntegrationEventStatus | None:
    """Run the handler for one event and commit the outcome.

    The event row is locked while the handler runs; handler writes are
    isolated in a savepoint so a failure keeps only the bookkeeping update.
    Returns the resulting status, or None when the event is not runnable.
    """
    event = (
        db.query(IntegrationEvent)
        .filter(IntegrationEvent.id == event_id)
        .with_for_update()
        .first()
    )
    if event is None or event.status != IntegrationEventStatus.PENDING:
        db.rollback()
        return None

    handler = (handlers or _handlers()).get(event.event_type)
    event.attempts += 1
    try:
        if handler is None:
            raise LookupError(f"No handler for event type {event.event_type}")
        with db.begin_nested():
            handler(db, event)
    except Exception as exc:
        event.last_error = f"{type(exc).__name__}: {exc}"
        if event.attempts >= event.max_attempts:
            event.status = IntegrationEventStatus.DEAD_LETTER
            logger.error(
                "Integration event %s (%s) dead-lettered after %d attempts: %s",
                event.id,
                event.event_type,
                event.attempts,
                event.last_error,
            )
        else:
            event.available_at = _now() + _backoff(event.attempts)
            logger.warning(
                "Integration event %s (%s) failed attempt %d: %s",
                event.id,
                event.event_type,
                event.attempts,
                event.last_error,
            )
    else:
        event.status = IntegrationEventStatus.PROCESSED
        event.processed_at = _now()
        event.last_error = None
        logger.info("Integration event %s (%s) processed", event.id, event.event_type)

    status = event.status
    db.commit()
    return status


def process_pending_events(
    db: Session,
    *,
    limit: int | None = None,
    handlers: dict[str, EventHandler] | None = None,
) -> dict[str, int]:
    """Sweep PENDING events that are due. Returns counts by outcome."""
    due_ids = [
        row[0]
        for row in db.query(IntegrationEvent.id)
        .filter(
            IntegrationEvent.status == IntegrationEventStatus.PENDING,
            IntegrationEvent.available_at <= _now(),
        )
        .order_by(IntegrationEvent.created_at)
        .limit(limit or settings.OUTBOX_BATCH_SIZE)
        .all()
    ]
    db.rollback()

    counts = {"processed": 0, "failed": 0, "dead_letter": 0}
    for event_id in due_ids:
        status = process_event(db, event_id, handlers=handlers)
        if status == IntegrationEventStatus.PROCESSED:
            counts["processed"] += 1
        elif status == IntegrationEventStatus.DEAD_LETTER:
            counts["dead_letter"] += 1
        elif status == IntegrationEventStatus.PENDING:
            counts["failed"] += 1
    return counts


def list_events(
    db: Session,
    *,
    status: IntegrationEventStatus | None = None,
    limit: int = 100,
) -> list[IntegrationEvent]:
    query = db.query(IntegrationEvent)
    if status is not None:
        query = query.filter(IntegrationEvent.status == status)
    return query.order_by(IntegrationEvent.created_at.desc()).limit(limit).all()


def requeue_event(db: Session, event_id: UUID) -> IntegrationEvent:
    """Move a dead-lettered event back to PENDING with a fresh attempt budget."""
    event = db.query(IntegrationEvent).filter(IntegrationEvent.id == event_id).first()
    if event is None:
        raise NotFoundError(field="event_id", id=event_id)
    if event.status != IntegrationEventStatus.DEAD_LETTER:
        raise ValidationFailedError("errors.event_not_dead_letter", field="event_id")
    event.status = IntegrationEventStatus.PENDING
    event.attempts = 0
    event.last_error = None
    event.available_at = _now()
    db.commit()
    db.refresh(event)
    return event
