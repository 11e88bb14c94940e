from uuid import uuid4

import pytest
from sqlalchemy import select

from factories import make_cashback, make_exclusive, make_merchant, make_outlet
from offers_api.models.eligibility import (
    EligibilityComputationQueue,
    EligibilityEntityTypeEnum,
    OfferTypeEnum,
    UserOfferEligibility,
)
from offers_api.models.merchant import MerchantStatusEnum
from offers_api.models.offer_cache import OfferListCache
from offers_api.services.eligibility.dispatch import QueuePriority
from offers_api.services.eligibility.rules import utcnow
from offers_api.services.offers.events import OfferEventHandlers


@pytest.mark.asyncio
async def test_offer_change_priorities(session_factory) -> None:
    async with session_factory() as session:
        handlers = OfferEventHandlers(session)
        created = await handlers.on_cashback_config_changed(uuid4(), "created")
        deleted = await handlers.on_exclusive_offer_changed(uuid4(), "deleted")
        updated = await handlers.on_loyalty_program_changed(uuid4(), "updated")

    assert (created.priority, created.reason) == (QueuePriority.HIGH, "Cashback config created")
    assert (deleted.priority, deleted.reason) == (QueuePriority.CRITICAL, "Exclusive offer deleted")
    assert updated.priority == QueuePriority.MEDIUM


@pytest.mark.asyncio
async def test_unknown_offer_change_is_rejected(session_factory) -> None:
    async with session_factory() as session:
        with pytest.raises(ValueError):
            await OfferEventHandlers(session).on_offer_changed(EligibilityEntityTypeEnum.CASHBACK_CONFIG, uuid4(), "renamed")


@pytest.mark.asyncio
async def test_budget_exhaustion_and_outlet_changes(session_factory) -> None:
    async with session_factory() as session:
        handlers = OfferEventHandlers(session)
        exhausted = await handlers.on_budget_exhausted(EligibilityEntityTypeEnum.EXCLUSIVE_OFFER, uuid4())
        outlets = await handlers.on_offer_outlets_changed("CASHBACK_CONFIG", uuid4())

    assert exhausted.priority == QueuePriority.CRITICAL
    assert outlets.priority == QueuePriority.HIGH


@pytest.mark.asyncio
async def test_customer_type_change_hides_rows_and_clears_cache(session_factory) -> None:
    async with session_factory() as session:
        merchant = make_merchant(session)
        outlet = make_outlet(session, merchant)
        config = make_cashback(session, merchant, [outlet])
        await session.commit()
        session.add_all(
            [
                UserOfferEligibility(
                    user_id="u-1",
                    outlet_id=outlet.id,
                    offer_type=OfferTypeEnum.CASHBACK,
                    offer_id=config.id,
                    merchant_id=merchant.id,
                    valid_from=utcnow(),
                ),
                OfferListCache(cache_key="d" * 64, user_id="u-1", payload={}, expires_at=utcnow()),
            ]
        )
        await session.commit()

        invalidated = await OfferEventHandlers(session).on_customer_type_changed("u-1", merchant.id, "updated")
        cached = (await session.execute(select(OfferListCache))).scalars().all()
        queued = (await session.execute(select(EligibilityComputationQueue))).scalars().all()

    assert invalidated == 1
    assert cached == []
    assert [(entry.entity_id, entry.priority) for entry in queued] == [(config.id, QueuePriority.HIGH)]


@pytest.mark.asyncio
async def test_merchant_status_change_priority_depends_on_active(session_factory) -> None:
    async with session_factory() as session:
        merchant = make_merchant(session)
        outlet = make_outlet(session, merchant)
        make_exclusive(session, merchant, [outlet])
        await session.commit()

        handlers = OfferEventHandlers(session)
        count = await handlers.on_merchant_status_changed(merchant.id, "Suspended", MerchantStatusEnum.ACTIVE)
        entry = (await session.execute(select(EligibilityComputationQueue))).scalar_one()
        assert count == 1
        assert entry.priority == QueuePriority.HIGH
        assert entry.reason == "Merchant status changed from Active to Suspended"

    async with session_factory() as session:
        other = make_merchant(session, name="Quiet Shop")
        make_exclusive(session, other, [make_outlet(session, other)])
        await session.commit()

        await OfferEventHandlers(session).on_merchant_status_changed(other.id, "Inactive", "Suspended")
        entry = (
            await session.execute(
                select(EligibilityComputationQueue).where(EligibilityComputationQueue.reason.contains("Inactive"))
            )
        ).scalar_one()

    assert entry.priority == QueuePriority.MEDIUM
