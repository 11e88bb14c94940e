"""Eligibility-filtered offer listings served from the materialized table."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.sql.elements import ColumnElement

from offers_api.core.options import EligibilityOptions
from offers_api.models.eligibility import OfferTypeEnum, UserOfferEligibility
from offers_api.models.loyalty import LoyaltyProgram, LoyaltyProgramTier, MerchantLoyaltyReward
from offers_api.models.merchant import Outlet
from offers_api.models.offers import CashbackConfiguration, CashbackConfigurationTier, ExclusiveOffer
from offers_api.observability.eligibility import EligibilityObservabilityStore, get_eligibility_store
from offers_api.schemas.offers import (
    CashbackConfigurationResponse,
    ExclusiveOfferResponse,
    LoyaltyProgramResponse,
    MerchantSummary,
    OffersResponse,
    OutletOffersResponse,
)
from offers_api.services.eligibility.rules import utcnow
from offers_api.services.offers.cache import OfferListCacheService, build_cache_key
from offers_api.services.offers.filters import CashbackPercentageFilter, percentage_bounds

DEFAULT_PAGE_SIZE = 50


def _name_matches(search: str) -> ColumnElement[bool]:
    needle = search.lower()
    return or_(
        func.lower(UserOfferEligibility.merchant_name).contains(needle, autoescape=True),
        func.lower(UserOfferEligibility.outlet_name).contains(needle, autoescape=True),
    )


def build_eligibility_predicate(
    user_id: str,
    *,
    now: datetime,
    search: str | None = None,
    category: str | None = None,
    percentage: CashbackPercentageFilter | str | None = None,
    offer_type: OfferTypeEnum | None = None,
) -> list[ColumnElement[bool]]:
    """Conditions a row must satisfy to be visible to ``user_id`` at ``now``."""

    conditions: list[ColumnElement[bool]] = [
        UserOfferEligibility.user_id == user_id,
        UserOfferEligibility.is_active.is_(True),
        UserOfferEligibility.has_budget_remaining.is_(True),
        UserOfferEligibility.valid_from <= now,
        or_(UserOfferEligibility.valid_until.is_(None), UserOfferEligibility.valid_until >= now),
    ]
    if offer_type is not None:
        conditions.append(UserOfferEligibility.offer_type == offer_type)
    if category:
        conditions.append(UserOfferEligibility.merchant_category == category)
    if search:
        conditions.append(_name_matches(search))
    if percentage:
        minimum, maximum = percentage_bounds(percentage)
        conditions.append(UserOfferEligibility.offer_type == OfferTypeEnum.CASHBACK)
        if minimum is not None:
            conditions.append(UserOfferEligibility.max_percentage >= minimum)
        if maximum is not None:
            conditions.append(UserOfferEligibility.min_percentage <= maximum)
    return conditions


class OfferQueryService:
    """Serves ``get_offers_for_user`` with a TTL cache in front of the table scan."""

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
        self._cache = OfferListCacheService(session, ttl_seconds=self._options.offer_list_cache_ttl_seconds)

    async def get_offers_for_user(
        self,
        user_id: str,
        *,
        search: str | None = None,
        category: str | None = None,
        percentage: CashbackPercentageFilter | str | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> OffersResponse:
        percentage_value = CashbackPercentageFilter(percentage).value if percentage else None
        cache_key = build_cache_key(
            user_id,
            {
                "search": search,
                "category": category,
                "percentage": percentage_value,
                "limit": limit,
                "offset": offset,
            },
        )

        if self._options.enable_query_cache:
            cached = await self._read_cache(cache_key, user_id)
            if cached is not None:
                return cached

        result = await self._query_offers(
            user_id,
            search=search,
            category=category,
            percentage=percentage_value,
            limit=limit,
            offset=offset,
        )

        if self._options.enable_query_cache:
            await self._write_cache(cache_key, user_id, result)
        return result

    async def get_loyalty_programs_for_user(
        self,
        user_id: str,
        *,
        category: str | None = None,
        search: str | None = None,
    ) -> list[LoyaltyProgramResponse]:
        predicate = build_eligibility_predicate(
            user_id,
            now=utcnow(),
            search=search,
            category=category,
            offer_type=OfferTypeEnum.LOYALTY,
        )
        program_ids = list(
            (await self._session.execute(select(UserOfferEligibility.offer_id).where(*predicate).distinct())).scalars()
        )
        if not program_ids:
            return []

        stmt = (
            select(LoyaltyProgram)
            .where(LoyaltyProgram.id.in_(program_ids), LoyaltyProgram.is_active.is_(True))
            .options(
                selectinload(LoyaltyProgram.merchant),
                selectinload(
                    LoyaltyProgram.tiers.and_(
                        LoyaltyProgramTier.is_active.is_(True),
                        LoyaltyProgramTier.deleted_at.is_(None),
                    )
                ),
                selectinload(LoyaltyProgram.rewards.and_(MerchantLoyaltyReward.is_active.is_(True))),
            )
            .order_by(LoyaltyProgram.name)
        )
        programs = (await self._session.execute(stmt)).scalars().all()
        return [LoyaltyProgramResponse.model_validate(program) for program in programs]

    async def invalidate_user_cache(self, user_id: str) -> int:
        removed = await self._cache.invalidate_user(user_id)
        await self._session.commit()
        return removed

    async def _read_cache(self, cache_key: str, user_id: str) -> OffersResponse | None:
        try:
            payload = await self._cache.get(cache_key)
            if payload is not None:
                response = OffersResponse.model_validate(payload)
                self._observability.record_cache("hit")
                logger.debug("Offer listing cache hit", user_id=user_id)
                return response
            await self._session.commit()
        except Exception as exc:
            self._observability.record_cache("error")
            logger.warning("Offer listing cache read failed; querying directly", user_id=user_id, error=str(exc))
            await self._session.rollback()
            return None
        self._observability.record_cache("miss")
        return None

    async def _write_cache(self, cache_key: str, user_id: str, result: OffersResponse) -> None:
        try:
            await self._cache.set(cache_key, user_id, result.model_dump(mode="json", by_alias=True))
            await self._session.commit()
        except Exception as exc:
            self._observability.record_cache("error")
            logger.warning("Offer listing cache write failed", user_id=user_id, error=str(exc))
            await self._session.rollback()

    async def _query_offers(
        self,
        user_id: str,
        *,
        search: str | None,
        category: str | None,
        percentage: str | None,
        limit: int,
        offset: int,
    ) -> OffersResponse:
        predicate = build_eligibility_predicate(
            user_id,
            now=utcnow(),
            search=search,
            category=category,
            percentage=percentage,
        )

        total_count = (
            await self._session.execute(select(func.count()).select_from(UserOfferEligibility).where(*predicate))
        ).scalar_one()
        if total_count == 0:
            raw_count = (
                await self._session.execute(
                    select(func.count())
                    .select_from(UserOfferEligibility)
                    .where(UserOfferEligibility.user_id == user_id, UserOfferEligibility.is_active.is_(True))
                )
            ).scalar_one()
            logger.warning(
                "No visible offers for user; check category/search/percentage filters or validity windows",
                user_id=user_id,
                raw_active_rows=raw_count,
            )
            return OffersResponse(outlets=[], total_count=0)

        # Paginate over distinct outlets, most recently computed first.
        latest = func.max(UserOfferEligibility.computed_at).label("latest_computed_at")
        page_stmt = (
            select(UserOfferEligibility.outlet_id, latest)
            .where(*predicate)
            .group_by(UserOfferEligibility.outlet_id)
            .order_by(latest.desc(), UserOfferEligibility.outlet_id)
            .offset(offset)
            .limit(limit)
        )
        outlet_ids: list[UUID] = [row.outlet_id for row in (await self._session.execute(page_stmt)).all()]
        if not outlet_ids:
            return OffersResponse(outlets=[], total_count=total_count)

        eligible: dict[UUID, dict[OfferTypeEnum, set[UUID]]] = {outlet_id: {} for outlet_id in outlet_ids}
        rows_stmt = select(
            UserOfferEligibility.outlet_id,
            UserOfferEligibility.offer_type,
            UserOfferEligibility.offer_id,
        ).where(*predicate, UserOfferEligibility.outlet_id.in_(outlet_ids))
        for row in (await self._session.execute(rows_stmt)).all():
            eligible[row.outlet_id].setdefault(OfferTypeEnum(row.offer_type), set()).add(row.offer_id)

        outlets = await self._load_outlets(outlet_ids)
        response_outlets: list[OutletOffersResponse] = []
        for outlet_id in outlet_ids:
            outlet = outlets.get(outlet_id)
            if outlet is None:
                continue
            by_type = eligible[outlet_id]
            cashback_ids = by_type.get(OfferTypeEnum.CASHBACK, set())
            exclusive_ids = by_type.get(OfferTypeEnum.EXCLUSIVE, set())
            cashback = [
                CashbackConfigurationResponse.model_validate(config)
                for config in outlet.cashback_configurations
                if config.id in cashback_ids
            ]
            exclusive = [
                ExclusiveOfferResponse.model_validate(offer)
                for offer in outlet.exclusive_offers
                if offer.id in exclusive_ids
            ]
            if not cashback and not exclusive:
                continue
            response_outlets.append(
                OutletOffersResponse(
                    id=outlet.id,
                    name=outlet.name,
                    address=outlet.address,
                    is_active=outlet.is_active,
                    merchant_id=outlet.merchant_id,
                    merchant=MerchantSummary.model_validate(outlet.merchant) if outlet.merchant else None,
                    cashback_configurations=cashback,
                    exclusive_offers=exclusive,
                )
            )

        return OffersResponse(outlets=response_outlets, total_count=total_count)

    async def _load_outlets(self, outlet_ids: list[UUID]) -> dict[UUID, Any]:
        stmt = (
            select(Outlet)
            .where(Outlet.id.in_(outlet_ids), Outlet.is_active.is_(True), Outlet.deleted_at.is_(None))
            .options(
                selectinload(Outlet.merchant),
                selectinload(
                    Outlet.cashback_configurations.and_(
                        and_(CashbackConfiguration.is_active.is_(True), CashbackConfiguration.deleted_at.is_(None))
                    )
                ).selectinload(
                    CashbackConfiguration.tiers.and_(
                        CashbackConfigurationTier.is_active.is_(True),
                        CashbackConfigurationTier.deleted_at.is_(None),
                    )
                ),
                selectinload(
                    Outlet.exclusive_offers.and_(
                        ExclusiveOffer.is_active.is_(True),
                        ExclusiveOffer.deleted_at.is_(None),
                    )
                ),
            )
        )
        return {outlet.id: outlet for outlet in (await self._session.execute(stmt)).scalars().all()}


__all__ = ["DEFAULT_PAGE_SIZE", "OfferQueryService", "build_eligibility_predicate"]
