"""Job contract between the recomputation queue and its execution transport."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Mapping, Protocol
from uuid import UUID

from loguru import logger

from offers_api.models.eligibility import EligibilityEntityTypeEnum

COMPUTE_TASK_NAME = "eligibility.compute_entity"


class QueuePriority(IntEnum):
    """Suggested priority bands; higher runs sooner."""

    CRITICAL = 100
    HIGH = 75
    MEDIUM = 50
    LOW = 25


class EligibilityDispatchError(RuntimeError):
    """Raised when the execution transport refuses a job."""


class UnknownEntityTypeError(ValueError):
    """Raised when a job names an entity type no variant handles."""


@dataclass(frozen=True, slots=True)
class EligibilityJob:
    entity_type: EligibilityEntityTypeEnum
    entity_id: UUID
    reason: str
    priority: int = QueuePriority.MEDIUM

    def as_payload(self) -> dict[str, Any]:
        return {
            "entityType": self.entity_type.value,
            "entityId": str(self.entity_id),
            "reason": self.reason,
            "priority": int(self.priority),
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "EligibilityJob":
        try:
            entity_type = EligibilityEntityTypeEnum(payload["entityType"])
        except (KeyError, ValueError) as exc:
            raise UnknownEntityTypeError(f"Unknown eligibility entity type: {payload.get('entityType')}") from exc
        return cls(
            entity_type=entity_type,
            entity_id=UUID(str(payload["entityId"])),
            reason=str(payload.get("reason") or ""),
            priority=int(payload.get("priority") or QueuePriority.MEDIUM),
        )


class EligibilityDispatcher(Protocol):
    async def dispatch(self, job: EligibilityJob) -> None:
        ...


def broker_priority(priority: int) -> int:
    """Scale 0-100 queue priorities onto the 0-9 range brokers accept."""

    bounded = min(max(int(priority), 0), 100)
    return round(bounded * 9 / 100)


class CeleryEligibilityDispatcher:
    """Sends jobs to the ``eligibility.compute_entity`` Celery task."""

    def __init__(self, *, queue: str, celery_app: Any | None = None) -> None:
        if celery_app is None:
            from offers_api.celery_app import celery_app as default_app

            celery_app = default_app
        self._celery_app = celery_app
        self._queue = queue

    async def dispatch(self, job: EligibilityJob) -> None:
        try:
            await asyncio.to_thread(
                self._celery_app.send_task,
                COMPUTE_TASK_NAME,
                args=[job.as_payload()],
                queue=self._queue,
                priority=broker_priority(job.priority),
            )
        except Exception as exc:
            raise EligibilityDispatchError(str(exc)) from exc
        logger.debug(
            "Dispatched eligibility job to Celery",
            entity_type=job.entity_type.value,
            entity_id=str(job.entity_id),
            priority=int(job.priority),
        )


__all__ = [
    "COMPUTE_TASK_NAME",
    "CeleryEligibilityDispatcher",
    "EligibilityDispatchError",
    "EligibilityDispatcher",
    "EligibilityJob",
    "QueuePriority",
    "UnknownEntityTypeError",
    "broker_priority",
]
