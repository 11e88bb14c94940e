"""Scheduler runtime for eligibility maintenance jobs."""

from __future__ import annotations

import asyncio
import inspect
import time
from importlib import import_module
from pathlib import Path
from types import ModuleType
from typing import Any, Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger
from zoneinfo import ZoneInfo

from offers_api.core.options import EligibilityOptions
from offers_api.observability.scheduler import SchedulerObservabilityStore, get_scheduler_store
from offers_api.services.eligibility.dispatch import EligibilityDispatcher

from .config import JobDefinition, ScheduleConfig, load_job_definitions

SessionFactory = Callable[[], Awaitable[Any]] | Callable[[], Any]


class JobReportedError(RuntimeError):
    """A job returned a summary carrying an ``error`` entry."""


class EligibilityJobScheduler:
    """Register the configured eligibility jobs on an APScheduler event loop."""

    # meta: scheduler: eligibility-maintenance

    def __init__(
        self,
        *,
        session_factory: SessionFactory,
        config_path: Path,
        dispatcher: EligibilityDispatcher | None = None,
        options: EligibilityOptions | None = None,
        observability: SchedulerObservabilityStore | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._config_path = config_path
        self._dispatcher = dispatcher
        self._options = options or EligibilityOptions.from_settings()
        self._observability = observability or get_scheduler_store()
        self._config: ScheduleConfig | None = None
        self._scheduler: AsyncIOScheduler | None = None
        self._is_running = False

    @property
    def is_running(self) -> bool:
        return self._is_running

    def start(self) -> None:
        config = load_job_definitions(self._config_path)
        timezone = ZoneInfo(config.timezone)
        scheduler = AsyncIOScheduler(timezone=timezone)

        for job in config.jobs:
            if not job.enabled:
                logger.info("Eligibility job disabled in schedule", job_id=job.id)
                continue
            trigger = CronTrigger.from_crontab(job.cron, timezone=timezone)
            scheduler.add_job(
                self.build_runner(job),
                trigger=trigger,
                id=job.id,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            logger.info("Registered eligibility job", job_id=job.id, task=job.task, cron=job.cron)

        scheduler.start()
        self._config = config
        self._scheduler = scheduler
        self._is_running = True
        logger.info("Eligibility job scheduler started", jobs=len(scheduler.get_jobs()))

    async def stop(self) -> None:
        if not self._scheduler:
            return
        result = self._scheduler.shutdown(wait=False)
        if inspect.isawaitable(result):
            await result
        self._scheduler = None
        self._is_running = False
        logger.info("Eligibility job scheduler stopped")

    def build_runner(self, job: JobDefinition) -> Callable[[], Awaitable[dict[str, Any] | None]]:
        func = self._resolve_callable(job)

        async def _runner() -> dict[str, Any] | None:
            self._observability.record_dispatch(job.id, job.task)
            started_at = time.perf_counter()
            for attempt in range(1, job.max_attempts + 1):
                try:
                    result = await func(
                        session_factory=self._session_factory,
                        dispatcher=self._dispatcher,
                        options=self._options,
                        **job.kwargs,
                    )
                    if isinstance(result, dict) and result.get("error"):
                        raise JobReportedError(str(result["error"]))
                except Exception as exc:
                    error_message = str(exc)
                    self._observability.record_attempt_failure(job.id, job.task, attempts=attempt, error=error_message)
                    if attempt >= job.max_attempts:
                        self._observability.record_run_failure(
                            job.id,
                            job.task,
                            runtime_seconds=time.perf_counter() - started_at,
                            attempts=attempt,
                            error=error_message,
                        )
                        logger.error(
                            "Scheduled eligibility job failed",
                            job_id=job.id,
                            attempts=attempt,
                            error=error_message,
                        )
                        return None
                    delay = min(
                        job.base_backoff_seconds * (job.backoff_multiplier ** (attempt - 1)),
                        job.max_backoff_seconds or float("inf"),
                    )
                    self._observability.record_retry(job.id, job.task, attempts=attempt + 1)
                    logger.warning("Scheduled eligibility job retrying", job_id=job.id, attempt=attempt + 1, delay_seconds=delay)
                    if delay:
                        await asyncio.sleep(delay)
                    continue

                runtime_seconds = time.perf_counter() - started_at
                self._observability.record_success(
                    job.id,
                    job.task,
                    runtime_seconds=runtime_seconds,
                    attempts=attempt,
                    result=result if isinstance(result, dict) else None,
                )
                logger.info(
                    "Scheduled eligibility job completed",
                    job_id=job.id,
                    attempts=attempt,
                    runtime_seconds=round(runtime_seconds, 3),
                )
                return result
            return None

        return _runner

    @staticmethod
    def _resolve_callable(job: JobDefinition) -> Callable[..., Awaitable[Any]]:
        module_name, _, attr = job.task.rpartition(".")
        if not module_name:
            raise ValueError(f"Invalid task path: {job.task}")
        module: ModuleType = import_module(module_name)
        func = getattr(module, attr, None)
        if func is None:
            raise AttributeError(f"Task {job.task} not found")
        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"Task {job.task} must be an async function")
        return func

    def health(self) -> dict[str, object]:
        snapshot = self._observability.snapshot()
        config_jobs = self._config.jobs if self._config else []
        return {
            "running": self._is_running,
            "configured_jobs": len(config_jobs),
            "totals": snapshot.totals,
            "jobs": [
                {
                    "id": job.id,
                    "task": job.task,
                    "cron": job.cron,
                    "enabled": job.enabled,
                    "max_attempts": job.max_attempts,
                    "metrics": snapshot.jobs.get(job.id),
                }
                for job in config_jobs
            ],
        }


__all__ = ["EligibilityJobScheduler", "JobReportedError"]
