"""Celery application instance.

Start the worker::

    celery -A saleledger.app.workers.celery_app worker --loglevel=info
    celery -A saleledger.app.workers.celery_app beat --loglevel=info
"""

from __future__ import annotations

from celery import Celery

from saleledger.app.core.config import settings

celery = Celery(
    "saleledger",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
)

# Auto-discover tasks in workers/tasks/*.py
celery.autodiscover_tasks(["saleledger.app.workers.tasks"], related_name="outbox")

# Beat schedule — the sweep catches events whose on-commit dispatch was lost
# and retries failed ones once their backoff has elapsed.
celery.conf.beat_schedule = {
    "process-pending-integration-events": {
        "task": "saleledger.app.workers.tasks.outbox.process_pending_integration_events",
        "schedule": 60.0,
    },
}
