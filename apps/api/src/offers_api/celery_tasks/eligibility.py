from __future__ import annotations

from typing import Any

from loguru import logger

from offers_api.celery_app import celery_app
from offers_api.core.settings import settings
from offers_api.services.eligibility.dispatch import COMPUTE_TASK_NAME, UnknownEntityTypeError
from offers_api.tasks.eligibility import process_eligibility_job_sync

_MAX_ATTEMPTS = max(settings.eligibility_max_attempts, 1)


@celery_app.task(
    bind=True,
    name=COMPUTE_TASK_NAME,
    queue=settings.eligibility_task_queue,
    autoretry_for=(Exception,),
    dont_autoretry_for=(UnknownEntityTypeError,),
    retry_backoff=settings.eligibility_retry_backoff_seconds,
    retry_backoff_max=300,
    retry_jitter=False,
    max_retries=_MAX_ATTEMPTS - 1,
    acks_late=True,
)
def compute_entity(self, payload: dict[str, Any]) -> dict[str, Any]:
    """Celery entrypoint recomputing eligibility for a single offer entity."""

    attempt = self.request.retries + 1
    try:
        return process_eligibility_job_sync(payload, attempt=attempt, max_attempts=_MAX_ATTEMPTS)
    except Exception:
        logger.exception(
            "Eligibility compute task failed",
            entity_type=payload.get("entityType"),
            entity_id=payload.get("entityId"),
            attempt=attempt,
        )
        raise
