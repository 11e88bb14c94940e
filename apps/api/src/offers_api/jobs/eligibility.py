"""Periodic eligibility maintenance jobs.

Every job is gated by ``EligibilityOptions.enable_background_jobs`` and never
raises: failures are logged and reported through the returned summary so one
broken sweep cannot stop the others or later runs of itself.
"""

# meta: job: eligibility-maintenance

from __future__ import annotations

from datetime import timedelta
from typing import Any, Callable, Dict
from uuid import UUID

from loguru import logger
from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from offers_api.core.options import EligibilityOptions
from offers_api.models.eligibility import (
    EligibilityComputationLog,
    EligibilityEntityTypeEnum,
    OfferTypeEnum,
    UserOfferEligibility,
)
from offers_api.models.loyalty import LoyaltyProgram
from offers_api.models.merchant import Merchant, MerchantStatusEnum, ReviewStatusEnum
from offers_api.models.offers import CashbackConfiguration, ExclusiveOffer
from offers_api.services.eligibility.dispatch import EligibilityDispatcher, QueuePriority
from offers_api.services.eligibility.queue import EligibilityQueueService
from offers_api.services.eligibility.rules import utcnow
from offers_api.services.offers.cache import OfferListCacheService

SessionFactory = Callable[[], AsyncSession]
JobSummary = Dict[str, Any]

_STALE_TARGETS = (
    (EligibilityEntityTypeEnum.CASHBACK_CONFIG, CashbackConfiguration),
    (EligibilityEntityTypeEnum.EXCLUSIVE_OFFER, ExclusiveOffer),
    (EligibilityEntityTypeEnum.LOYALTY_PROGRAM, LoyaltyProgram),
)


def _resolve_options(options: EligibilityOptions | None) -> EligibilityOptions:
    return options or EligibilityOptions.from_settings()


def _skipped(job: str) -> JobSummary:
    logger.info("Eligibility job skipped", job=job, reason="enable_background_jobs is false")
    return {"skipped": True}


async def _invalidate_cached_listings(session: AsyncSession, options: EligibilityOptions, user_ids) -> int:
    if not options.enable_query_cache:
        return 0
    return await OfferListCacheService(session).invalidate_users(user_ids)


async def expire_outdated_eligibility(
    *,
    session_factory: SessionFactory,
    dispatcher: EligibilityDispatcher | None = None,
    options: EligibilityOptions | None = None,
) -> JobSummary:
    """Deactivate cashback and exclusive rows whose validity window has closed."""

    resolved = _resolve_options(options)
    if not resolved.enable_background_jobs:
        return _skipped("expire_outdated_eligibility")
    try:
        async with session_factory() as session:
            stmt = (
                update(UserOfferEligibility)
                .where(
                    UserOfferEligibility.offer_type.in_([OfferTypeEnum.EXCLUSIVE, OfferTypeEnum.CASHBACK]),
                    UserOfferEligibility.valid_until.is_not(None),
                    UserOfferEligibility.valid_until < utcnow(),
                    UserOfferEligibility.is_active.is_(True),
                )
                .values(is_active=False)
                .returning(UserOfferEligibility.user_id)
            )
            user_ids = list((await session.execute(stmt)).scalars())
            await _invalidate_cached_listings(session, resolved, user_ids)
            await session.commit()
    except Exception as exc:
        logger.exception("Expire outdated eligibility job failed", error=str(exc))
        return {"expired": 0, "error": str(exc)}
    logger.info("Expired outdated eligibility rows", expired=len(user_ids))
    return {"expired": len(user_ids)}


async def sweep_budget_status(
    *,
    session_factory: SessionFactory,
    dispatcher: EligibilityDispatcher | None = None,
    options: EligibilityOptions | None = None,
) -> JobSummary:
    """Hide rows of offers whose budget or points allowance is used up.

    Each offer type is swept by one UPDATE whose subquery compares used against
    limit, so the comparison and the flag flip share a statement snapshot.
    """

    resolved = _resolve_options(options)
    if not resolved.enable_background_jobs:
        return _skipped("sweep_budget_status")

    exhausted = {
        OfferTypeEnum.CASHBACK: select(CashbackConfiguration.id).where(
            CashbackConfiguration.is_active.is_(True),
            CashbackConfiguration.used_cashback_budget >= CashbackConfiguration.net_cashback_budget,
        ),
        OfferTypeEnum.EXCLUSIVE: select(ExclusiveOffer.id).where(
            ExclusiveOffer.is_active.is_(True),
            ExclusiveOffer.used_offer_budget >= ExclusiveOffer.net_offer_budget,
        ),
        OfferTypeEnum.LOYALTY: select(LoyaltyProgram.id).where(
            LoyaltyProgram.is_active.is_(True),
            LoyaltyProgram.points_issued_limit.is_not(None),
            LoyaltyProgram.points_issued_limit > 0,
            LoyaltyProgram.points_used_in_period >= LoyaltyProgram.points_issued_limit,
        ),
    }
    summary: JobSummary = {}
    try:
        async with session_factory() as session:
            affected_users: set[str] = set()
            for offer_type, exhausted_ids in exhausted.items():
                stmt = (
                    update(UserOfferEligibility)
                    .where(
                        UserOfferEligibility.offer_type == offer_type,
                        UserOfferEligibility.offer_id.in_(exhausted_ids.scalar_subquery()),
                        or_(
                            UserOfferEligibility.is_active.is_(True),
                            UserOfferEligibility.has_budget_remaining.is_(True),
                        ),
                    )
                    .values(has_budget_remaining=False, is_active=False)
                    .returning(UserOfferEligibility.user_id)
                )
                user_ids = list((await session.execute(stmt)).scalars())
                summary[offer_type.value.lower()] = len(user_ids)
                affected_users.update(user_ids)
            await _invalidate_cached_listings(session, resolved, affected_users)
            await session.commit()
    except Exception as exc:
        logger.exception("Budget status sweep failed", error=str(exc))
        return {**summary, "error": str(exc)}
    logger.info("Budget status sweep completed", **summary)
    return summary


async def activate_new_offers(
    *,
    session_factory: SessionFactory,
    dispatcher: EligibilityDispatcher | None = None,
    options: EligibilityOptions | None = None,
) -> JobSummary:
    """Queue exclusive offers whose window has opened since their last recompute.

    Offers that would still be ineligible (inactive merchant, spent budget) are
    left to the offer and merchant change events.
    """

    resolved = _resolve_options(options)
    if not resolved.enable_background_jobs:
        return _skipped("activate_new_offers")
    now = utcnow()
    try:
        async with session_factory() as session:
            stmt = select(ExclusiveOffer.id).where(
                ExclusiveOffer.is_active.is_(True),
                ExclusiveOffer.deleted_at.is_(None),
                ExclusiveOffer.review_status == ReviewStatusEnum.APPROVED,
                ExclusiveOffer.start_date <= now,
                ExclusiveOffer.end_date >= now,
                ExclusiveOffer.used_offer_budget < ExclusiveOffer.net_offer_budget,
                ExclusiveOffer.merchant.has(Merchant.status == MerchantStatusEnum.ACTIVE),
                or_(
                    ExclusiveOffer.eligibility_computed_at.is_(None),
                    ExclusiveOffer.eligibility_computed_at < ExclusiveOffer.updated_at,
                ),
            )
            offer_ids: list[UUID] = list((await session.execute(stmt)).scalars())
            queue = EligibilityQueueService(session, dispatcher, options=resolved)
            for offer_id in offer_ids:
                await queue.enqueue(
                    EligibilityEntityTypeEnum.EXCLUSIVE_OFFER,
                    offer_id,
                    "Offer validity window opened",
                    QueuePriority.HIGH,
                )
    except Exception as exc:
        logger.exception("Activate new offers job failed", error=str(exc))
        return {"enqueued": 0, "error": str(exc)}
    if offer_ids:
        logger.info("Queued newly active exclusive offers", enqueued=len(offer_ids))
    return {"enqueued": len(offer_ids)}


async def drain_eligibility_queue(
    *,
    session_factory: SessionFactory,
    dispatcher: EligibilityDispatcher | None = None,
    options: EligibilityOptions | None = None,
    limit: int | None = None,
) -> JobSummary:
    resolved = _resolve_options(options)
    if not resolved.enable_background_jobs:
        return _skipped("drain_eligibility_queue")
    try:
        async with session_factory() as session:
            queue = EligibilityQueueService(session, dispatcher, options=resolved)
            return await queue.drain_pending(limit or resolved.queue_drain_limit)
    except Exception as exc:
        logger.exception("Eligibility queue drain failed", error=str(exc))
        return {"dispatched": 0, "error": str(exc)}


async def cleanup_eligibility_data(
    *,
    session_factory: SessionFactory,
    dispatcher: EligibilityDispatcher | None = None,
    options: EligibilityOptions | None = None,
) -> JobSummary:
    """Purge expired cache entries, old logs, settled queue entries and long-inactive rows."""

    resolved = _resolve_options(options)
    if not resolved.enable_background_jobs:
        return _skipped("cleanup_eligibility_data")
    now = utcnow()
    try:
        async with session_factory() as session:
            cache_purged = await OfferListCacheService(session).purge_expired(now=now)
            logs_result = await session.execute(
                delete(EligibilityComputationLog).where(
                    EligibilityComputationLog.created_at < now - timedelta(days=resolved.computation_log_retention_days)
                )
            )
            rows_result = await session.execute(
                delete(UserOfferEligibility).where(
                    and_(
                        UserOfferEligibility.is_active.is_(False),
                        UserOfferEligibility.updated_at
                        < now - timedelta(days=resolved.inactive_eligibility_retention_days),
                    )
                )
            )
            await session.commit()
            queue_purged = await EligibilityQueueService(session, options=resolved).cleanup_completed(
                resolved.queue_retention_days
            )
    except Exception as exc:
        logger.exception("Eligibility cleanup job failed", error=str(exc))
        return {"error": str(exc)}
    summary = {
        "cache_entries": cache_purged,
        "computation_logs": logs_result.rowcount or 0,
        "queue_entries": queue_purged,
        "inactive_rows": rows_result.rowcount or 0,
    }
    logger.info("Eligibility cleanup completed", **summary)
    return summary


async def recompute_stale_eligibility(
    *,
    session_factory: SessionFactory,
    dispatcher: EligibilityDispatcher | None = None,
    options: EligibilityOptions | None = None,
) -> JobSummary:
    """Queue active offers whose materialization is missing or older than the stale window."""

    resolved = _resolve_options(options)
    if not resolved.enable_background_jobs:
        return _skipped("recompute_stale_eligibility")
    cutoff = utcnow() - timedelta(days=resolved.stale_eligibility_days)
    summary: JobSummary = {}
    try:
        async with session_factory() as session:
            queue = EligibilityQueueService(session, dispatcher, options=resolved)
            for entity_type, model in _STALE_TARGETS:
                stmt = (
                    select(model.id)
                    .where(
                        model.is_active.is_(True),
                        model.deleted_at.is_(None),
                        or_(model.eligibility_computed_at.is_(None), model.eligibility_computed_at < cutoff),
                    )
                    .order_by(model.eligibility_computed_at.asc().nulls_first())
                    .limit(resolved.stale_recompute_limit)
                )
                entity_ids = list((await session.execute(stmt)).scalars())
                for entity_id in entity_ids:
                    await queue.enqueue(entity_type, entity_id, "Periodic stale eligibility recompute", QueuePriority.LOW)
                summary[entity_type.value.lower()] = len(entity_ids)
    except Exception as exc:
        logger.exception("Stale eligibility recompute job failed", error=str(exc))
        return {**summary, "error": str(exc)}
    logger.info("Queued stale eligibility recomputes", **summary)
    return summary


__all__ = [
    "activate_new_offers",
    "cleanup_eligibility_data",
    "drain_eligibility_queue",
    "expire_outdated_eligibility",
    "recompute_stale_eligibility",
    "sweep_budget_status",
]
