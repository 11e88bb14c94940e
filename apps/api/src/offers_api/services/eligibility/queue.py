"""Durable, deduplicating recompute queue backed by ``eligibility_computation_queue``."""

from __future__ import annotations

from datetime import timedelta
from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from offers_api.core.options import EligibilityOptions
from offers_api.models.eligibility import (
    EligibilityComputationQueue,
    EligibilityEntityTypeEnum,
    NON_TERMINAL_QUEUE_STATUSES,
    QueueStatusEnum,
    UserOfferEligibility,
)
from offers_api.models.loyalty import LoyaltyProgram
from offers_api.models.offers import CashbackConfiguration, ExclusiveOffer
from offers_api.observability.eligibility import EligibilityObservabilityStore, get_eligibility_store
from offers_api.services.eligibility.dispatch import EligibilityDispatcher, EligibilityJob, QueuePriority
from offers_api.services.eligibility.rules import utcnow
from offers_api.services.offers.cache import OfferListCacheService


class EligibilityQueueService:
    """Records recompute requests and pushes them to the execution transport.

    Two paths reach the transport: ``enqueue`` dispatches new entries directly,
    and ``drain_pending`` re-dispatches whatever is still Pending. Both may
    deliver the same job; recomputes are idempotent so that is harmless.
    """

    def __init__(
        self,
        session: AsyncSession,
        dispatcher: EligibilityDispatcher | None = None,
        *,
        options: EligibilityOptions | None = None,
        observability: EligibilityObservabilityStore | None = None,
    ) -> None:
        self._session = session
        self._dispatcher = dispatcher
        self._options = options or EligibilityOptions()
        self._observability = observability or get_eligibility_store()

    async def enqueue(
        self,
        entity_type: EligibilityEntityTypeEnum | str,
        entity_id: UUID,
        reason: str,
        priority: int = QueuePriority.MEDIUM,
    ) -> EligibilityComputationQueue:
        entity_type = EligibilityEntityTypeEnum(entity_type)
        existing = await self._find_open_entry(entity_type, entity_id)
        if existing is not None:
            existing.reason = reason
            existing.priority = max(existing.priority or 0, int(priority))
            await self._session.commit()
            self._observability.record_enqueued(entity_type.value, deduplicated=True)
            logger.debug(
                "Eligibility recompute already queued; priority raised",
                entity_type=entity_type.value,
                entity_id=str(entity_id),
                priority=existing.priority,
            )
            return existing

        entry = EligibilityComputationQueue(
            entity_type=entity_type,
            entity_id=entity_id,
            reason=reason,
            priority=int(priority),
            status=QueueStatusEnum.PENDING,
            attempts=0,
        )
        self._session.add(entry)
        await self._session.commit()
        await self._session.refresh(entry)
        self._observability.record_enqueued(entity_type.value, deduplicated=False)
        logger.info(
            "Eligibility recompute queued",
            entity_type=entity_type.value,
            entity_id=str(entity_id),
            priority=int(priority),
            reason=reason,
        )

        if self._dispatcher is None:
            logger.info(
                "No eligibility dispatcher configured; entry will be picked up by the drain sweep",
                entity_type=entity_type.value,
                entity_id=str(entity_id),
            )
            return entry
        try:
            await self._dispatcher.dispatch(
                EligibilityJob(entity_type=entity_type, entity_id=entity_id, reason=reason, priority=int(priority))
            )
            self._observability.record_dispatched()
        except Exception as exc:
            self._observability.record_dispatch_failure()
            logger.warning(
                "Direct dispatch failed; drain sweep will retry",
                entity_type=entity_type.value,
                entity_id=str(entity_id),
                error=str(exc),
            )
        return entry

    async def enqueue_all_for_merchant(
        self,
        merchant_id: UUID,
        reason: str,
        priority: int = QueuePriority.MEDIUM,
    ) -> int:
        targets: list[tuple[EligibilityEntityTypeEnum, UUID]] = []
        for entity_type, model in (
            (EligibilityEntityTypeEnum.CASHBACK_CONFIG, CashbackConfiguration),
            (EligibilityEntityTypeEnum.EXCLUSIVE_OFFER, ExclusiveOffer),
            (EligibilityEntityTypeEnum.LOYALTY_PROGRAM, LoyaltyProgram),
        ):
            result = await self._session.execute(select(model.id).where(model.merchant_id == merchant_id))
            targets.extend((entity_type, entity_id) for entity_id in result.scalars())

        for entity_type, entity_id in targets:
            await self.enqueue(entity_type, entity_id, reason, priority)
        logger.info("Queued merchant-wide eligibility recompute", merchant_id=str(merchant_id), entities=len(targets))
        return len(targets)

    async def enqueue_for_user_change(self, user_id: str, merchant_id: UUID, reason: str) -> int:
        """Hide the user's rows for the merchant and drop their cached listings, then recompute the merchant."""

        result = await self._session.execute(
            update(UserOfferEligibility)
            .where(
                UserOfferEligibility.user_id == user_id,
                UserOfferEligibility.merchant_id == merchant_id,
                UserOfferEligibility.is_active.is_(True),
            )
            .values(is_active=False)
        )
        if self._options.enable_query_cache:
            await OfferListCacheService(self._session).invalidate_user(user_id)
        await self._session.commit()
        invalidated = result.rowcount or 0
        logger.info(
            "Invalidated eligibility rows for customer change",
            user_id=user_id,
            merchant_id=str(merchant_id),
            rows=invalidated,
        )
        await self.enqueue_all_for_merchant(merchant_id, f"{reason} (user: {user_id})", QueuePriority.HIGH)
        return invalidated

    async def drain_pending(self, limit: int | None = None) -> dict[str, int]:
        summary = {"claimed": 0, "dispatched": 0, "requeued": 0, "failed": 0}
        if self._dispatcher is None:
            logger.debug("Eligibility queue drain skipped; no dispatcher configured")
            return summary

        await self._release_abandoned_claims()

        batch_limit = limit or self._options.queue_drain_limit
        stmt = (
            select(EligibilityComputationQueue)
            .where(EligibilityComputationQueue.status == QueueStatusEnum.PENDING)
            .order_by(EligibilityComputationQueue.priority.desc(), EligibilityComputationQueue.created_at.asc())
            .limit(batch_limit)
            .execution_options(populate_existing=True)
        )
        entries = list((await self._session.execute(stmt)).scalars())
        for entry in entries:
            entry.status = QueueStatusEnum.PROCESSING
            entry.attempts = (entry.attempts or 0) + 1
            entry.last_attempt_at = utcnow()
            await self._session.commit()
            summary["claimed"] += 1

            job = EligibilityJob(
                entity_type=EligibilityEntityTypeEnum(entry.entity_type),
                entity_id=entry.entity_id,
                reason=entry.reason,
                priority=entry.priority,
            )
            try:
                await self._dispatcher.dispatch(job)
            except Exception as exc:
                self._observability.record_dispatch_failure()
                if entry.attempts >= self._options.max_attempts:
                    entry.status = QueueStatusEnum.FAILED
                    entry.error = str(exc)
                    summary["failed"] += 1
                    logger.error(
                        "Eligibility queue entry failed permanently",
                        entity_type=job.entity_type.value,
                        entity_id=str(job.entity_id),
                        attempts=entry.attempts,
                        error=str(exc),
                    )
                else:
                    entry.status = QueueStatusEnum.PENDING
                    summary["requeued"] += 1
                    logger.warning(
                        "Eligibility queue dispatch failed; will retry",
                        entity_type=job.entity_type.value,
                        entity_id=str(job.entity_id),
                        attempts=entry.attempts,
                        error=str(exc),
                    )
                await self._session.commit()
                continue
            summary["dispatched"] += 1
            self._observability.record_dispatched()

        if entries:
            logger.info("Eligibility queue drained", **summary)
        return summary

    async def _release_abandoned_claims(self) -> int:
        """Return Processing entries whose worker went away to Pending."""

        cutoff = utcnow() - timedelta(minutes=self._options.processing_timeout_minutes)
        result = await self._session.execute(
            update(EligibilityComputationQueue)
            .where(
                EligibilityComputationQueue.status == QueueStatusEnum.PROCESSING,
                EligibilityComputationQueue.last_attempt_at < cutoff,
            )
            .values(status=QueueStatusEnum.PENDING)
            .execution_options(synchronize_session=False)
        )
        await self._session.commit()
        released = result.rowcount or 0
        if released:
            logger.warning("Released abandoned eligibility queue claims", entries=released)
        return released

    async def mark_processing(
        self,
        entity_type: EligibilityEntityTypeEnum | str,
        entity_id: UUID,
    ) -> EligibilityComputationQueue | None:
        """Claim the open entry for a job the worker is about to run."""

        entry = await self._find_open_entry(EligibilityEntityTypeEnum(entity_type), entity_id)
        if entry is None:
            return None
        if entry.status == QueueStatusEnum.PENDING:
            entry.status = QueueStatusEnum.PROCESSING
            entry.attempts = (entry.attempts or 0) + 1
        entry.last_attempt_at = utcnow()
        await self._session.commit()
        return entry

    async def mark_completed(self, entity_type: EligibilityEntityTypeEnum | str, entity_id: UUID) -> bool:
        entry = await self._find_open_entry(EligibilityEntityTypeEnum(entity_type), entity_id)
        if entry is None:
            return False
        entry.status = QueueStatusEnum.COMPLETED
        entry.completed_at = utcnow()
        entry.error = None
        await self._session.commit()
        return True

    async def mark_failed(
        self,
        entity_type: EligibilityEntityTypeEnum | str,
        entity_id: UUID,
        error: str | None = None,
    ) -> bool:
        entry = await self._find_open_entry(EligibilityEntityTypeEnum(entity_type), entity_id)
        if entry is None:
            return False
        entry.status = QueueStatusEnum.FAILED
        entry.error = error
        await self._session.commit()
        return True

    async def cleanup_completed(self, days: int | None = None) -> int:
        retention = days if days is not None else self._options.queue_retention_days
        cutoff = utcnow() - timedelta(days=retention)
        result = await self._session.execute(
            delete(EligibilityComputationQueue).where(
                EligibilityComputationQueue.status == QueueStatusEnum.COMPLETED,
                EligibilityComputationQueue.completed_at < cutoff,
            )
        )
        await self._session.commit()
        return result.rowcount or 0

    async def summary(self) -> dict[str, Any]:
        stmt = select(EligibilityComputationQueue.status, func.count()).group_by(EligibilityComputationQueue.status)
        counts = {status.value: 0 for status in QueueStatusEnum}
        for status, count in (await self._session.execute(stmt)).all():
            counts[QueueStatusEnum(status).value] = count
        return counts

    async def _find_open_entry(
        self,
        entity_type: EligibilityEntityTypeEnum,
        entity_id: UUID,
    ) -> EligibilityComputationQueue | None:
        stmt = (
            select(EligibilityComputationQueue)
            .where(
                EligibilityComputationQueue.entity_type == entity_type,
                EligibilityComputationQueue.entity_id == entity_id,
                EligibilityComputationQueue.status.in_(NON_TERMINAL_QUEUE_STATUSES),
            )
            .order_by(EligibilityComputationQueue.created_at.desc())
            .limit(1)
        )
        return (await self._session.execute(stmt)).scalars().first()


__all__ = ["EligibilityQueueService"]
