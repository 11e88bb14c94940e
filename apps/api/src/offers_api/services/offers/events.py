"""Translate offer-management change events into recompute requests.

Mutation flows call these after committing their own changes.
"""

from __future__ import annotations

from typing import Literal
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from offers_api.core.options import EligibilityOptions
from offers_api.models.eligibility import EligibilityComputationQueue, EligibilityEntityTypeEnum
from offers_api.models.merchant import MerchantStatusEnum
from offers_api.services.eligibility.dispatch import EligibilityDispatcher, QueuePriority
from offers_api.services.eligibility.queue import EligibilityQueueService

OfferChange = Literal["created", "updated", "deleted", "activated", "deactivated"]
CustomerTypeChange = Literal["created", "updated", "deleted"]

OFFER_CHANGE_PRIORITIES: dict[str, QueuePriority] = {
    "created": QueuePriority.HIGH,
    "updated": QueuePriority.MEDIUM,
    "deleted": QueuePriority.CRITICAL,
    "activated": QueuePriority.HIGH,
    "deactivated": QueuePriority.CRITICAL,
}

_OFFER_LABELS = {
    EligibilityEntityTypeEnum.CASHBACK_CONFIG: "Cashback config",
    EligibilityEntityTypeEnum.EXCLUSIVE_OFFER: "Exclusive offer",
    EligibilityEntityTypeEnum.LOYALTY_PROGRAM: "Loyalty program",
}


class OfferEventHandlers:
    def __init__(
        self,
        session: AsyncSession,
        dispatcher: EligibilityDispatcher | None = None,
        *,
        options: EligibilityOptions | None = None,
    ) -> None:
        self._options = options or EligibilityOptions()
        self._queue = EligibilityQueueService(session, dispatcher, options=self._options)

    async def on_offer_changed(
        self,
        entity_type: EligibilityEntityTypeEnum | str,
        entity_id: UUID,
        change: OfferChange,
    ) -> EligibilityComputationQueue:
        entity_type = EligibilityEntityTypeEnum(entity_type)
        try:
            priority = OFFER_CHANGE_PRIORITIES[change]
        except KeyError as exc:
            raise ValueError(f"Unsupported offer change: {change}") from exc
        return await self._queue.enqueue(entity_type, entity_id, f"{_OFFER_LABELS[entity_type]} {change}", priority)

    async def on_cashback_config_changed(self, config_id: UUID, change: OfferChange) -> EligibilityComputationQueue:
        return await self.on_offer_changed(EligibilityEntityTypeEnum.CASHBACK_CONFIG, config_id, change)

    async def on_exclusive_offer_changed(self, offer_id: UUID, change: OfferChange) -> EligibilityComputationQueue:
        return await self.on_offer_changed(EligibilityEntityTypeEnum.EXCLUSIVE_OFFER, offer_id, change)

    async def on_loyalty_program_changed(self, program_id: UUID, change: OfferChange) -> EligibilityComputationQueue:
        return await self.on_offer_changed(EligibilityEntityTypeEnum.LOYALTY_PROGRAM, program_id, change)

    async def on_customer_type_changed(self, user_id: str, merchant_id: UUID, change: CustomerTypeChange) -> int:
        """Hide the user's stale rows and cached listings, then recompute the merchant."""

        return await self._queue.enqueue_for_user_change(user_id, merchant_id, f"Customer type {change}")

    async def on_merchant_status_changed(
        self,
        merchant_id: UUID,
        new_status: MerchantStatusEnum | str,
        old_status: MerchantStatusEnum | str,
    ) -> int:
        new_value = MerchantStatusEnum(new_status)
        old_value = MerchantStatusEnum(old_status)
        involves_active = MerchantStatusEnum.ACTIVE in (new_value, old_value)
        priority = QueuePriority.HIGH if involves_active else QueuePriority.MEDIUM
        return await self._queue.enqueue_all_for_merchant(
            merchant_id,
            f"Merchant status changed from {old_value.value} to {new_value.value}",
            priority,
        )

    async def on_budget_exhausted(
        self,
        entity_type: EligibilityEntityTypeEnum | str,
        entity_id: UUID,
    ) -> EligibilityComputationQueue:
        logger.info("Offer budget exhausted", entity_type=str(entity_type), entity_id=str(entity_id))
        return await self._queue.enqueue(entity_type, entity_id, "Budget exhausted", QueuePriority.CRITICAL)

    async def on_offer_outlets_changed(
        self,
        entity_type: EligibilityEntityTypeEnum | str,
        entity_id: UUID,
    ) -> EligibilityComputationQueue:
        return await self._queue.enqueue(entity_type, entity_id, "Outlets changed", QueuePriority.HIGH)


__all__ = ["OFFER_CHANGE_PRIORITIES", "OfferEventHandlers"]
