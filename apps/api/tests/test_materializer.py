"""Tests for the per-offer eligibility materializer."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from factories import add_customer, make_cashback, make_exclusive, make_loyalty, make_merchant, make_outlet, utc
from offers_api.core.options import EligibilityOptions
from offers_api.models.customer_type import CustomerTypeEnum
from offers_api.models.eligibility import EligibilityComputationLog, OfferTypeEnum, UserOfferEligibility
from offers_api.models.merchant import ReviewStatusEnum
from offers_api.models.offers import CashbackConfiguration
from offers_api.observability.eligibility import get_eligibility_store
from offers_api.services.eligibility import materializer as materializer_module
from offers_api.services.eligibility.dispatch import UnknownEntityTypeError
from offers_api.services.eligibility.materializer import EligibilityComputationService


async def _rows(session, offer_id):
    result = await session.execute(
        select(UserOfferEligibility).where(UserOfferEligibility.offer_id == offer_id).order_by(UserOfferEligibility.user_id)
    )
    return result.scalars().all()


@pytest.mark.asyncio
async def test_cashback_rows_cover_users_by_live_outlets(session_factory) -> None:
    async with session_factory() as session:
        merchant = make_merchant(session)
        main = make_outlet(session, merchant, name="Main Street")
        airport = make_outlet(session, merchant, name="Airport")
        pending = make_outlet(session, merchant, name="Pending Kiosk", review_status=ReviewStatusEnum.PENDING)
        add_customer(session, merchant, "u-regular", CustomerTypeEnum.REGULAR)
        add_customer(session, merchant, "u-new", CustomerTypeEnum.NEW)
        config = make_cashback(session, merchant, [main, airport, pending], customer_types=["Regular"])
        await session.commit()

    async with session_factory() as session:
        created = await EligibilityComputationService(session).compute_cashback_eligibility(config.id)

    assert created == 2
    async with session_factory() as session:
        rows = await _rows(session, config.id)
        assert {row.user_id for row in rows} == {"u-regular"}
        assert {row.outlet_name for row in rows} == {"Main Street", "Airport"}
        first = rows[0]
        assert first.offer_type == OfferTypeEnum.CASHBACK
        assert first.merchant_name == "Cafe Uno"
        assert first.merchant_category == "food"
        assert first.min_percentage == Decimal("3.00")
        assert first.max_percentage == Decimal("7.00")
        assert first.is_active and first.has_budget_remaining
        assert first.valid_until is None

        stamped = await session.get(CashbackConfiguration, config.id)
        assert stamped.eligibility_computed_at is not None

        logs = (await session.execute(select(EligibilityComputationLog))).scalars().all()
        assert [(log.operation, log.records_affected) for log in logs] == [("COMPUTE", 2)]

    snapshot = get_eligibility_store().snapshot()
    assert snapshot.totals["computed"] == 1
    assert snapshot.rows_written["CASHBACK_CONFIG"] == 2


@pytest.mark.asyncio
async def test_exclusive_offer_targets_listed_customer_types(session_factory) -> None:
    async with session_factory() as session:
        merchant = make_merchant(session)
        outlet = make_outlet(session, merchant)
        add_customer(session, merchant, "u-new", CustomerTypeEnum.NEW)
        add_customer(session, merchant, "u-vip", CustomerTypeEnum.VIP)
        offer = make_exclusive(session, merchant, [outlet], customer_types=["New", "Infrequent"])
        await session.commit()

    async with session_factory() as session:
        created = await EligibilityComputationService(session).compute_exclusive_offer_eligibility(offer.id)

    assert created == 1
    async with session_factory() as session:
        rows = await _rows(session, offer.id)
        assert [row.user_id for row in rows] == ["u-new"]
        assert rows[0].valid_until is not None


@pytest.mark.asyncio
async def test_recompute_is_idempotent_and_drops_users_who_no_longer_qualify(session_factory) -> None:
    async with session_factory() as session:
        merchant = make_merchant(session)
        outlet = make_outlet(session, merchant)
        add_customer(session, merchant, "u-1", CustomerTypeEnum.REGULAR)
        demoted = add_customer(session, merchant, "u-2", CustomerTypeEnum.REGULAR)
        config = make_cashback(session, merchant, [outlet], customer_types=["Regular"])
        await session.commit()

    async with session_factory() as session:
        service = EligibilityComputationService(session)
        assert await service.compute_cashback_eligibility(config.id) == 2
        assert await service.compute_cashback_eligibility(config.id) == 2

    async with session_factory() as session:
        record = await session.get(type(demoted), demoted.id)
        record.type = CustomerTypeEnum.NEW
        await session.commit()

    async with session_factory() as session:
        assert await EligibilityComputationService(session).compute_cashback_eligibility(config.id) == 1
        rows = await _rows(session, config.id)
        assert [row.user_id for row in rows] == ["u-1"]


@pytest.mark.asyncio
async def test_non_customer_offer_excludes_existing_customers(session_factory) -> None:
    async with session_factory() as session:
        merchant = make_merchant(session)
        elsewhere = make_merchant(session, name="Book Nook", category="books")
        outlet = make_outlet(session, merchant)
        add_customer(session, merchant, "u-existing", CustomerTypeEnum.OCCASIONAL)
        add_customer(session, elsewhere, "u-prospect", CustomerTypeEnum.VIP)
        offer = make_exclusive(session, merchant, [outlet], customer_types=["NonCustomer"])
        await session.commit()

    async with session_factory() as session:
        await EligibilityComputationService(session).compute_exclusive_offer_eligibility(offer.id)
        rows = await _rows(session, offer.id)

    assert [row.user_id for row in rows] == ["u-prospect"]


@pytest.mark.asyncio
async def test_exhausted_budget_flips_rows_without_deleting(session_factory) -> None:
    async with session_factory() as session:
        merchant = make_merchant(session)
        outlet = make_outlet(session, merchant)
        add_customer(session, merchant, "u-1", CustomerTypeEnum.REGULAR)
        config = make_cashback(session, merchant, [outlet], customer_types=["All"], net_budget="100")
        await session.commit()

    async with session_factory() as session:
        assert await EligibilityComputationService(session).compute_cashback_eligibility(config.id) == 1

    async with session_factory() as session:
        stored = await session.get(CashbackConfiguration, config.id)
        stored.used_cashback_budget = Decimal("100")
        await session.commit()

    async with session_factory() as session:
        assert await EligibilityComputationService(session).compute_cashback_eligibility(config.id) == 0
        rows = await _rows(session, config.id)

    assert len(rows) == 1
    assert rows[0].is_active is False
    assert get_eligibility_store().snapshot().totals["invalidated"] == 1


@pytest.mark.asyncio
async def test_loyalty_program_covers_all_live_merchant_outlets(session_factory) -> None:
    async with session_factory() as session:
        merchant = make_merchant(session)
        make_outlet(session, merchant, name="North")
        make_outlet(session, merchant, name="South")
        make_outlet(session, merchant, name="Closed", is_active=False)
        add_customer(session, merchant, "u-occasional", CustomerTypeEnum.OCCASIONAL)
        add_customer(session, merchant, "u-new", CustomerTypeEnum.NEW)
        program = make_loyalty(session, merchant, tier_types=[CustomerTypeEnum.VIP, CustomerTypeEnum.OCCASIONAL])
        await session.commit()

    async with session_factory() as session:
        created = await EligibilityComputationService(session).compute_loyalty_program_eligibility(program.id)
        rows = await _rows(session, program.id)

    assert created == 2
    assert {(row.user_id, row.outlet_name) for row in rows} == {("u-occasional", "North"), ("u-occasional", "South")}
    assert all(row.offer_type == OfferTypeEnum.LOYALTY and row.valid_until is None for row in rows)


@pytest.mark.asyncio
async def test_expired_exclusive_offer_is_invalidated(session_factory) -> None:
    async with session_factory() as session:
        merchant = make_merchant(session)
        outlet = make_outlet(session, merchant)
        add_customer(session, merchant, "u-1", CustomerTypeEnum.NEW)
        offer = make_exclusive(session, merchant, [outlet], start_date=utc(-10), end_date=utc(-1))
        await session.commit()

    async with session_factory() as session:
        assert await EligibilityComputationService(session).compute_exclusive_offer_eligibility(offer.id) == 0
        assert await _rows(session, offer.id) == []


@pytest.mark.asyncio
async def test_missing_offer_returns_zero(session_factory) -> None:
    async with session_factory() as session:
        assert await EligibilityComputationService(session).compute_cashback_eligibility(uuid4()) == 0


@pytest.mark.asyncio
async def test_unknown_entity_type_raises(session_factory) -> None:
    async with session_factory() as session:
        with pytest.raises(UnknownEntityTypeError):
            await EligibilityComputationService(session).compute("VOUCHER", uuid4())


@pytest.mark.asyncio
async def test_small_batches_insert_every_row(session_factory) -> None:
    async with session_factory() as session:
        merchant = make_merchant(session)
        outlets = [make_outlet(session, merchant, name=f"Outlet {index}") for index in range(3)]
        for index in range(5):
            add_customer(session, merchant, f"u-{index}", CustomerTypeEnum.REGULAR)
        config = make_cashback(session, merchant, outlets)
        await session.commit()

    async with session_factory() as session:
        service = EligibilityComputationService(session, options=EligibilityOptions(batch_size=4))
        assert await service.compute_cashback_eligibility(config.id) == 15
        count = (
            await session.execute(
                select(func.count()).select_from(UserOfferEligibility).where(UserOfferEligibility.offer_id == config.id)
            )
        ).scalar_one()

    assert count == 15


@pytest.mark.asyncio
async def test_log_write_failure_does_not_fail_recompute(session_factory, monkeypatch) -> None:
    async with session_factory() as session:
        merchant = make_merchant(session)
        outlet = make_outlet(session, merchant)
        add_customer(session, merchant, "u-1", CustomerTypeEnum.VIP)
        config = make_cashback(session, merchant, [outlet])
        await session.commit()

    def _broken_log(**_kwargs):
        raise RuntimeError("log table unavailable")

    monkeypatch.setattr(materializer_module, "EligibilityComputationLog", _broken_log)

    async with session_factory() as session:
        assert await EligibilityComputationService(session).compute_cashback_eligibility(config.id) == 1
        assert len(await _rows(session, config.id)) == 1
