"""In-process worker pool executing eligibility recompute jobs without Celery."""

from __future__ import annotations

import asyncio
import itertools
from typing import Any, Awaitable, Callable

from loguru import logger

from offers_api.core.options import EligibilityOptions
from offers_api.services.eligibility.dispatch import EligibilityJob
from offers_api.tasks.eligibility import process_eligibility_job

JobProcessor = Callable[..., Awaitable[dict[str, Any]]]


class EligibilityWorkerPool:
    """Bounded pool of asyncio workers consuming a priority-ordered job queue.

    The pool doubles as an :class:`EligibilityDispatcher`: ``dispatch`` pushes
    onto the local queue, highest priority first and FIFO within a priority.
    Failed jobs are retried with exponential backoff up to ``max_attempts``.
    """

    def __init__(
        self,
        session_factory: Callable[[], Any],
        *,
        concurrency: int = 4,
        options: EligibilityOptions | None = None,
        processor: JobProcessor | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._concurrency = max(concurrency, 1)
        self._options = options or EligibilityOptions()
        self._processor = processor or process_eligibility_job
        self._queue: asyncio.PriorityQueue[tuple[int, int, EligibilityJob]] = asyncio.PriorityQueue()
        self._sequence = itertools.count()
        self._tasks: list[asyncio.Task] = []
        self.is_running: bool = False
        self.processed: int = 0
        self.failed: int = 0

    async def dispatch(self, job: EligibilityJob) -> None:
        await self._queue.put((-int(job.priority), next(self._sequence), job))

    def start(self) -> None:
        if self.is_running:
            return
        self._tasks = [
            asyncio.create_task(self._run_worker(index), name=f"eligibility-worker-{index}")
            for index in range(self._concurrency)
        ]
        self.is_running = True
        logger.info("Eligibility worker pool started", concurrency=self._concurrency)

    async def stop(self) -> None:
        if not self._tasks:
            return
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self.is_running = False
        logger.info("Eligibility worker pool stopped", pending=self._queue.qsize())

    async def join(self) -> None:
        """Wait until every dispatched job has been processed."""

        await self._queue.join()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def _run_worker(self, index: int) -> None:
        while True:
            _, _, job = await self._queue.get()
            try:
                await self._execute(job)
            finally:
                self._queue.task_done()

    async def _execute(self, job: EligibilityJob) -> None:
        max_attempts = self._options.max_attempts
        for attempt in range(1, max_attempts + 1):
            try:
                await self._processor(
                    job,
                    session_factory=self._session_factory,
                    options=self._options,
                    attempt=attempt,
                    max_attempts=max_attempts,
                )
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                if attempt >= max_attempts:
                    self.failed += 1
                    logger.error(
                        "Eligibility job exhausted retries",
                        entity_type=job.entity_type.value,
                        entity_id=str(job.entity_id),
                        attempts=attempt,
                        error=str(exc),
                    )
                    return
                delay = self._options.retry_backoff_seconds * (2 ** (attempt - 1))
                logger.info(
                    "Retrying eligibility job",
                    entity_type=job.entity_type.value,
                    entity_id=str(job.entity_id),
                    attempt=attempt,
                    delay_seconds=delay,
                )
                await asyncio.sleep(delay)
                continue
            self.processed += 1
            return


__all__ = ["EligibilityWorkerPool"]
