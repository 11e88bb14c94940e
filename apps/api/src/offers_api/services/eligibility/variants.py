"""Per-offer-type loading and field extraction for the materializer.

Each variant answers the same questions (is it eligible, which outlets, which
users, what validity window) so the materializer's delete/insert loop is
written once.
"""

from __future__ import annotations

import datetime as dt
from typing import Any, ClassVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from offers_api.models.eligibility import EligibilityEntityTypeEnum, OfferTypeEnum
from offers_api.models.loyalty import LoyaltyProgram, LoyaltyProgramTier, MerchantLoyaltyReward
from offers_api.models.merchant import Merchant, Outlet, ReviewStatusEnum
from offers_api.models.offers import CashbackConfiguration, CashbackConfigurationTier, ExclusiveOffer
from offers_api.services.eligibility import rules
from offers_api.services.eligibility.customers import CustomerResolver
from offers_api.services.eligibility.dispatch import UnknownEntityTypeError

_LIVE_OUTLET = (
    Outlet.is_active.is_(True),
    Outlet.deleted_at.is_(None),
    Outlet.review_status == ReviewStatusEnum.APPROVED,
)


class OfferVariant:
    entity_type: ClassVar[EligibilityEntityTypeEnum]
    offer_type: ClassVar[OfferTypeEnum]
    model: ClassVar[type]

    async def load(self, session: AsyncSession, entity_id: UUID) -> Any | None:
        stmt = (
            select(self.model)
            .options(*self.load_options())
            .where(self.model.id == entity_id)
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    def load_options(self) -> tuple:
        raise NotImplementedError

    def is_eligible(self, entity: Any, now: dt.datetime) -> bool:
        raise NotImplementedError

    def budget_remaining(self, entity: Any) -> bool:
        raise NotImplementedError

    def outlets(self, entity: Any) -> list[Any]:
        return rules.live_records(entity.outlets)

    def validity_window(self, entity: Any, now: dt.datetime) -> rules.ValidityWindow:
        return rules.ValidityWindow(
            valid_from=rules.ensure_utc(entity.start_date) or now,
            valid_until=rules.ensure_utc(entity.end_date),
        )

    def percentage_range(self, entity: Any) -> rules.PercentageRange | None:
        return None

    async def resolve_users(self, resolver: CustomerResolver, entity: Any) -> list[str]:
        return await resolver.resolve_offer_customers(entity.merchant_id, entity.eligible_customer_types or [])


class CashbackVariant(OfferVariant):
    entity_type = EligibilityEntityTypeEnum.CASHBACK_CONFIG
    offer_type = OfferTypeEnum.CASHBACK
    model = CashbackConfiguration

    def load_options(self) -> tuple:
        return (
            selectinload(CashbackConfiguration.merchant),
            selectinload(CashbackConfiguration.outlets.and_(*_LIVE_OUTLET)),
            selectinload(
                CashbackConfiguration.tiers.and_(
                    CashbackConfigurationTier.is_active.is_(True),
                    CashbackConfigurationTier.deleted_at.is_(None),
                    CashbackConfigurationTier.review_status == ReviewStatusEnum.APPROVED,
                )
            ),
        )

    def is_eligible(self, entity: CashbackConfiguration, now: dt.datetime) -> bool:
        return rules.is_cashback_config_eligible(entity)

    def budget_remaining(self, entity: CashbackConfiguration) -> bool:
        return rules.has_budget_remaining(entity.used_cashback_budget, entity.net_cashback_budget)

    def percentage_range(self, entity: CashbackConfiguration) -> rules.PercentageRange | None:
        return rules.calculate_percentage_range(rules.live_records(entity.tiers))


class ExclusiveOfferVariant(OfferVariant):
    entity_type = EligibilityEntityTypeEnum.EXCLUSIVE_OFFER
    offer_type = OfferTypeEnum.EXCLUSIVE
    model = ExclusiveOffer

    def load_options(self) -> tuple:
        return (
            selectinload(ExclusiveOffer.merchant),
            selectinload(ExclusiveOffer.outlets.and_(*_LIVE_OUTLET)),
        )

    def is_eligible(self, entity: ExclusiveOffer, now: dt.datetime) -> bool:
        return rules.is_exclusive_offer_eligible(entity, now)

    def budget_remaining(self, entity: ExclusiveOffer) -> bool:
        return rules.has_budget_remaining(entity.used_offer_budget, entity.net_offer_budget)


class LoyaltyProgramVariant(OfferVariant):
    entity_type = EligibilityEntityTypeEnum.LOYALTY_PROGRAM
    offer_type = OfferTypeEnum.LOYALTY
    model = LoyaltyProgram

    def load_options(self) -> tuple:
        return (
            selectinload(LoyaltyProgram.merchant).selectinload(Merchant.outlets.and_(*_LIVE_OUTLET)),
            selectinload(
                LoyaltyProgram.tiers.and_(
                    LoyaltyProgramTier.is_active.is_(True),
                    LoyaltyProgramTier.deleted_at.is_(None),
                    LoyaltyProgramTier.review_status == ReviewStatusEnum.APPROVED,
                )
            ),
            selectinload(
                LoyaltyProgram.rewards.and_(
                    MerchantLoyaltyReward.is_active.is_(True),
                    MerchantLoyaltyReward.review_status == ReviewStatusEnum.APPROVED,
                )
            ),
        )

    def is_eligible(self, entity: LoyaltyProgram, now: dt.datetime) -> bool:
        return rules.is_loyalty_program_eligible(entity)

    def budget_remaining(self, entity: LoyaltyProgram) -> bool:
        return rules.has_points_budget_remaining(entity.points_used_in_period, entity.points_issued_limit)

    def outlets(self, entity: LoyaltyProgram) -> list[Any]:
        if entity.merchant is None:
            return []
        return rules.live_records(entity.merchant.outlets)

    def validity_window(self, entity: LoyaltyProgram, now: dt.datetime) -> rules.ValidityWindow:
        # Programs are open-ended; rows become visible from the moment of recompute.
        return rules.ValidityWindow(valid_from=now, valid_until=None)

    async def resolve_users(self, resolver: CustomerResolver, entity: LoyaltyProgram) -> list[str]:
        return await resolver.resolve_loyalty_customers(entity.merchant_id, rules.live_records(entity.tiers))


_VARIANTS: dict[EligibilityEntityTypeEnum, OfferVariant] = {
    variant.entity_type: variant
    for variant in (CashbackVariant(), ExclusiveOfferVariant(), LoyaltyProgramVariant())
}


def get_variant(entity_type: EligibilityEntityTypeEnum | str) -> OfferVariant:
    try:
        return _VARIANTS[EligibilityEntityTypeEnum(entity_type)]
    except (KeyError, ValueError) as exc:
        raise UnknownEntityTypeError(f"Unknown eligibility entity type: {entity_type}") from exc


def variant_for_offer_type(offer_type: OfferTypeEnum | str) -> OfferVariant:
    normalized = OfferTypeEnum(offer_type)
    for variant in _VARIANTS.values():
        if variant.offer_type == normalized:
            return variant
    raise UnknownEntityTypeError(f"Unknown offer type: {offer_type}")


__all__ = [
    "CashbackVariant",
    "ExclusiveOfferVariant",
    "LoyaltyProgramVariant",
    "OfferVariant",
    "UnknownEntityTypeError",
    "get_variant",
    "variant_for_offer_type",
]
