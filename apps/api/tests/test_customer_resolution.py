from types import SimpleNamespace

import pytest

from factories import add_customer, make_merchant
from offers_api.models.customer_type import CustomerTypeEnum
from offers_api.services.eligibility.customers import (
    CustomerResolver,
    get_eligible_customer_types,
    meets_customer_type_requirement,
    select_least_restrictive_tier,
    split_customer_type_tokens,
)


def test_hierarchy_helpers() -> None:
    assert get_eligible_customer_types(CustomerTypeEnum.VIP) == [CustomerTypeEnum.VIP]
    assert len(get_eligible_customer_types("NonCustomer")) == 6
    assert meets_customer_type_requirement("Regular", "Occasional")
    assert not meets_customer_type_requirement("New", "Infrequent")


def test_least_restrictive_tier_prefers_first_on_tie() -> None:
    first = SimpleNamespace(name="first", min_customer_type="Occasional")
    second = SimpleNamespace(name="second", min_customer_type="Occasional")
    strict = SimpleNamespace(name="strict", min_customer_type="Vip")

    assert select_least_restrictive_tier([strict, first, second]) is first
    assert select_least_restrictive_tier([]) is None


def test_unknown_tokens_are_ignored() -> None:
    includes_all, includes_non_customer, concrete = split_customer_type_tokens(["Regular", "Gold", "Regular"])

    assert not includes_all
    assert not includes_non_customer
    assert concrete == [CustomerTypeEnum.REGULAR]


@pytest.mark.asyncio
async def test_resolver_modes(session_factory) -> None:
    async with session_factory() as session:
        merchant = make_merchant(session)
        other = make_merchant(session, name="Other Shop")
        add_customer(session, merchant, "u-regular", CustomerTypeEnum.REGULAR)
        add_customer(session, merchant, "u-new", CustomerTypeEnum.NEW)
        add_customer(session, other, "u-elsewhere", CustomerTypeEnum.VIP)
        add_customer(session, other, "u-regular", CustomerTypeEnum.NEW)
        await session.commit()

        resolver = CustomerResolver(session)

        everyone = await resolver.resolve_offer_customers(merchant.id, ["All", "Regular"])
        assert sorted(everyone) == ["u-elsewhere", "u-new", "u-regular"]

        non_customers = await resolver.resolve_offer_customers(merchant.id, ["NonCustomer"])
        assert non_customers == ["u-elsewhere"]

        combined = await resolver.resolve_offer_customers(merchant.id, ["NonCustomer", "New"])
        assert sorted(combined) == ["u-elsewhere", "u-new"]

        assert await resolver.resolve_offer_customers(merchant.id, []) == []


@pytest.mark.asyncio
async def test_loyalty_resolution_uses_least_restrictive_tier(session_factory) -> None:
    async with session_factory() as session:
        merchant = make_merchant(session)
        add_customer(session, merchant, "u-occasional", CustomerTypeEnum.OCCASIONAL)
        add_customer(session, merchant, "u-vip", CustomerTypeEnum.VIP)
        add_customer(session, merchant, "u-infrequent", CustomerTypeEnum.INFREQUENT)
        await session.commit()

        tiers = [
            SimpleNamespace(min_customer_type=CustomerTypeEnum.VIP),
            SimpleNamespace(min_customer_type=CustomerTypeEnum.OCCASIONAL),
        ]
        users = await CustomerResolver(session).resolve_loyalty_customers(merchant.id, tiers)

    assert users == ["u-occasional", "u-vip"]
