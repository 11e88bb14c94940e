"""Full per-offer recompute of the materialized eligibility table."""

from __future__ import annotations

import time
from datetime import datetime
from itertools import islice, product
from typing import Any, Sequence
from uuid import UUID, uuid4

from loguru import logger
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from offers_api.core.logging import entity_logger
from offers_api.core.options import EligibilityOptions
from offers_api.db.dialect import dialect_insert
from offers_api.models.eligibility import (
    EligibilityComputationLog,
    EligibilityEntityTypeEnum,
    OfferTypeEnum,
    UserOfferEligibility,
)
from offers_api.observability.eligibility import EligibilityObservabilityStore, get_eligibility_store
from offers_api.observability.tracing import get_tracer
from offers_api.services.eligibility import rules
from offers_api.services.eligibility.customers import CustomerResolver
from offers_api.services.eligibility.variants import OfferVariant, get_variant
from offers_api.services.offers.cache import OfferListCacheService

_CONFLICT_KEY = ("user_id", "outlet_id", "offer_type", "offer_id")
_tracer = get_tracer(__name__)


class EligibilityComputationService:
    """Recomputes every eligibility row for one offer.

    Not-found and ineligible offers are not errors: both return ``0``. Any other
    exception propagates so the queue worker can decide between retry and
    terminal failure.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        options: EligibilityOptions | None = None,
        observability: EligibilityObservabilityStore | None = None,
    ) -> None:
        self._session = session
        self._options = options or EligibilityOptions()
        self._observability = observability or get_eligibility_store()
        self._resolver = CustomerResolver(session)

    async def compute(self, entity_type: EligibilityEntityTypeEnum | str, entity_id: UUID) -> int:
        variant = get_variant(entity_type)
        with _tracer.start_as_current_span(
            "eligibility.compute",
            attributes={"eligibility.entity_type": variant.entity_type.value, "eligibility.entity_id": str(entity_id)},
        ):
            return await self._compute(variant, entity_id)

    async def _compute(self, variant: OfferVariant, entity_id: UUID) -> int:
        started = time.perf_counter()
        log = entity_logger(variant.entity_type.value, str(entity_id))

        entity = await variant.load(self._session, entity_id)
        if entity is None:
            log.info("Offer not found; skipping eligibility recompute")
            return 0

        now = rules.utcnow()
        if not variant.is_eligible(entity, now):
            flipped = await self.invalidate_offer(variant.offer_type, entity_id)
            log.info("Offer ineligible; invalidated materialized rows", rows_invalidated=flipped)
            self._observability.record_invalidated(variant.entity_type.value)
            return 0

        previous_users = await self._users_for_offer(variant.offer_type, entity_id)
        await self._session.execute(
            delete(UserOfferEligibility).where(
                UserOfferEligibility.offer_type == variant.offer_type,
                UserOfferEligibility.offer_id == entity_id,
            )
        )

        user_ids = await variant.resolve_users(self._resolver, entity)
        outlets = variant.outlets(entity)
        created = await self._insert_rows(variant, entity, user_ids, outlets, now)

        await self._session.execute(
            update(variant.model)
            .where(variant.model.id == entity_id)
            # Preserve updated_at; activation sweeps compare it against the stamp.
            .values(eligibility_computed_at=now, updated_at=variant.model.updated_at)
        )
        if self._options.enable_query_cache:
            await OfferListCacheService(self._session).invalidate_users([*previous_users, *user_ids])
        await self._session.commit()

        duration_ms = int((time.perf_counter() - started) * 1000)
        log.info(
            "Eligibility recomputed",
            users=len(user_ids),
            outlets=len(outlets),
            records=created,
            duration_ms=duration_ms,
        )
        self._observability.record_computed(variant.entity_type.value, str(entity_id), rows=created)
        await self._record_log(variant.entity_type, entity_id, "COMPUTE", created, duration_ms)
        return created

    async def compute_cashback_eligibility(self, config_id: UUID) -> int:
        return await self.compute(EligibilityEntityTypeEnum.CASHBACK_CONFIG, config_id)

    async def compute_exclusive_offer_eligibility(self, offer_id: UUID) -> int:
        return await self.compute(EligibilityEntityTypeEnum.EXCLUSIVE_OFFER, offer_id)

    async def compute_loyalty_program_eligibility(self, program_id: UUID) -> int:
        return await self.compute(EligibilityEntityTypeEnum.LOYALTY_PROGRAM, program_id)

    async def invalidate_offer(self, offer_type: OfferTypeEnum, offer_id: UUID) -> int:
        """Flip every active row of the offer to inactive; rows are kept for retention."""

        affected_users = await self._users_for_offer(offer_type, offer_id, active_only=True)
        result = await self._session.execute(
            update(UserOfferEligibility)
            .where(
                UserOfferEligibility.offer_type == offer_type,
                UserOfferEligibility.offer_id == offer_id,
                UserOfferEligibility.is_active.is_(True),
            )
            .values(is_active=False)
        )
        if self._options.enable_query_cache and affected_users:
            await OfferListCacheService(self._session).invalidate_users(affected_users)
        await self._session.commit()
        return result.rowcount or 0

    async def _insert_rows(
        self,
        variant: OfferVariant,
        entity: Any,
        user_ids: Sequence[str],
        outlets: Sequence[Any],
        now: datetime,
    ) -> int:
        if not user_ids or not outlets:
            return 0

        merchant = entity.merchant
        window = variant.validity_window(entity, now)
        percentage = variant.percentage_range(entity)
        budget_remaining = variant.budget_remaining(entity)
        template = {
            "offer_type": variant.offer_type,
            "offer_id": entity.id,
            "merchant_id": entity.merchant_id,
            "merchant_name": merchant.business_name if merchant else None,
            "merchant_category": merchant.category if merchant else None,
            "valid_from": window.valid_from,
            "valid_until": window.valid_until,
            "is_active": True,
            "has_budget_remaining": budget_remaining,
            "min_percentage": percentage.minimum if percentage else None,
            "max_percentage": percentage.maximum if percentage else None,
            "computed_at": now,
            "created_at": now,
            "updated_at": now,
        }

        pairs = product(user_ids, outlets)
        created = 0
        batch_size = max(self._options.batch_size, 1)
        while batch := list(islice(pairs, batch_size)):
            rows = [
                {
                    **template,
                    "id": uuid4(),
                    "user_id": user_id,
                    "outlet_id": outlet.id,
                    "outlet_name": outlet.name,
                }
                for user_id, outlet in batch
            ]
            stmt = (
                dialect_insert(self._session, UserOfferEligibility)
                .values(rows)
                .on_conflict_do_nothing(index_elements=list(_CONFLICT_KEY))
            )
            result = await self._session.execute(stmt)
            created += result.rowcount if result.rowcount and result.rowcount > 0 else 0
        return created

    async def _users_for_offer(self, offer_type: OfferTypeEnum, offer_id: UUID, *, active_only: bool = False) -> list[str]:
        if not self._options.enable_query_cache:
            return []
        stmt = select(UserOfferEligibility.user_id).where(
            UserOfferEligibility.offer_type == offer_type,
            UserOfferEligibility.offer_id == offer_id,
        )
        if active_only:
            stmt = stmt.where(UserOfferEligibility.is_active.is_(True))
        result = await self._session.execute(stmt.distinct())
        return list(result.scalars())

    async def _record_log(
        self,
        entity_type: EligibilityEntityTypeEnum,
        entity_id: UUID,
        operation: str,
        records_affected: int,
        duration_ms: int,
    ) -> None:
        try:
            self._session.add(
                EligibilityComputationLog(
                    entity_type=entity_type.value,
                    entity_id=entity_id,
                    operation=operation,
                    records_affected=records_affected,
                    duration_ms=duration_ms,
                )
            )
            await self._session.commit()
        except Exception as exc:
            await self._session.rollback()
            logger.warning(
                "Failed to write eligibility computation log",
                entity_type=entity_type.value,
                entity_id=str(entity_id),
                error=str(exc),
            )


__all__ = ["EligibilityComputationService"]
