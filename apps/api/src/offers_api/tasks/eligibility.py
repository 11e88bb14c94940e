"""Eligibility recompute execution helpers.

Celery, the in-process worker pool and the CLI all execute recompute jobs
through these helpers so queue bookkeeping stays identical across transports.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Mapping

from loguru import logger

from offers_api.core.options import EligibilityOptions
from offers_api.db.session import async_session
from offers_api.observability.eligibility import get_eligibility_store
from offers_api.services.eligibility.dispatch import EligibilityJob
from offers_api.services.eligibility.materializer import EligibilityComputationService
from offers_api.services.eligibility.queue import EligibilityQueueService

SessionFactory = Callable[[], Any]


async def process_eligibility_job(
    job: EligibilityJob,
    *,
    session_factory: SessionFactory | None = None,
    options: EligibilityOptions | None = None,
    attempt: int = 1,
    max_attempts: int | None = None,
) -> dict[str, Any]:
    """Run the materializer for one job and settle its queue entry.

    Exceptions propagate so the transport can retry; the queue entry is only
    marked Failed once ``attempt`` reaches ``max_attempts``.
    """

    factory = session_factory or async_session
    resolved_options = options or EligibilityOptions.from_settings()
    final_attempt = max_attempts or resolved_options.max_attempts
    entity_type = job.entity_type.value
    entity_id = str(job.entity_id)

    try:
        async with factory() as session:
            queue = EligibilityQueueService(session, options=resolved_options)
            await queue.mark_processing(job.entity_type, job.entity_id)
            service = EligibilityComputationService(session, options=resolved_options)
            records = await service.compute(job.entity_type, job.entity_id)
            await queue.mark_completed(job.entity_type, job.entity_id)
    except Exception as exc:
        get_eligibility_store().record_failure(entity_type, str(exc))
        if attempt >= final_attempt:
            logger.error(
                "Eligibility recompute failed permanently",
                entity_type=entity_type,
                entity_id=entity_id,
                attempt=attempt,
                error=str(exc),
            )
            async with factory() as session:
                await EligibilityQueueService(session, options=resolved_options).mark_failed(
                    job.entity_type, job.entity_id, str(exc)
                )
        else:
            logger.warning(
                "Eligibility recompute attempt failed",
                entity_type=entity_type,
                entity_id=entity_id,
                attempt=attempt,
                max_attempts=final_attempt,
                error=str(exc),
            )
        raise

    return {
        "entityType": entity_type,
        "entityId": entity_id,
        "records": records,
        "attempt": attempt,
        "status": "Completed",
    }


def process_eligibility_job_sync(
    payload: Mapping[str, Any],
    *,
    attempt: int = 1,
    max_attempts: int | None = None,
    session_factory: SessionFactory | None = None,
) -> dict[str, Any]:
    """Convenience wrapper so Celery and cron integrations can call the async worker."""

    job = EligibilityJob.from_payload(payload)
    return asyncio.run(
        process_eligibility_job(
            job,
            session_factory=session_factory,
            attempt=attempt,
            max_attempts=max_attempts,
        )
    )


__all__ = ["process_eligibility_job", "process_eligibility_job_sync"]
