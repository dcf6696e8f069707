from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from saleledger.app.core.config import settings
from saleledger.app.models.invoice import DocumentSequence

logger = logging.getLogger(__name__)


def format_document_number(prefix: str, consecutive: int, padding: int | None = None) -> str:
    width = settings.DOCUMENT_NUMBER_PADDING if padding is None else padding
    return f"{prefix}-{consecutive:0{width}d}"


def _sequence_query(db: Session, prefix: str):
    return (
        db.query(DocumentSequence)
        .filter(DocumentSequence.prefix == prefix)
        .with_for_update()
    )


def next_document_number(db: Session, prefix: str) -> tuple[int, str]:
    """Reserve the next consecutive for *prefix* inside the caller's transaction.

    The sequence row stays locked until the caller commits, so concurrent
    checkouts are serialized on numbering and a rollback releases the number.
    """
    sequence = _sequence_query(db, prefix).first()
    if sequence is None:
        try:
            with db.begin_nested():
                db.add(DocumentSequence(prefix=prefix, last_number=0))
        except IntegrityError:
            logger.debug("Sequence %s created concurrently; re-reading", prefix)
        sequence = _sequence_query(db, prefix).one()

    sequence.last_number += 1
    db.flush()
    return sequence.last_number, format_document_number(prefix, sequence.last_number)
