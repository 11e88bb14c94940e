"""Builders for offer graphs used across the eligibility tests.

Builders only add to the session; callers commit.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Iterable, Sequence
from uuid import uuid4

from offers_api.models.customer_type import CustomerType, CustomerTypeEnum
from offers_api.models.loyalty import LoyaltyProgram, LoyaltyProgramTier, MerchantLoyaltyReward
from offers_api.models.merchant import Merchant, MerchantStatusEnum, Outlet, ReviewStatusEnum
from offers_api.models.offers import CashbackConfiguration, CashbackConfigurationTier, ExclusiveOffer

APPROVED = ReviewStatusEnum.APPROVED


def utc(days: float = 0) -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc) + dt.timedelta(days=days)


def make_merchant(session, *, name: str = "Cafe Uno", category: str = "food", status=MerchantStatusEnum.ACTIVE) -> Merchant:
    merchant = Merchant(id=uuid4(), business_name=name, category=category, status=status)
    session.add(merchant)
    return merchant


def make_outlet(session, merchant: Merchant, *, name: str = "Main Street", review_status=APPROVED, **fields) -> Outlet:
    outlet = Outlet(merchant=merchant, name=name, address=f"{name} 1", review_status=review_status, **fields)
    session.add(outlet)
    return outlet


def add_customer(session, merchant: Merchant, user_id: str, customer_type: CustomerTypeEnum) -> CustomerType:
    record = CustomerType(user_id=user_id, merchant_id=merchant.id, type=customer_type)
    session.add(record)
    return record


def make_cashback(
    session,
    merchant: Merchant,
    outlets: Sequence[Outlet],
    *,
    customer_types: Iterable[str] = ("All",),
    percentages: Sequence[str] = ("3.00", "7.00"),
    net_budget: str = "1000",
    used_budget: str = "0",
    **fields,
) -> CashbackConfiguration:
    config = CashbackConfiguration(
        merchant=merchant,
        name=fields.pop("name", "Weekday cashback"),
        review_status=APPROVED,
        eligible_customer_types=list(customer_types),
        net_cashback_budget=Decimal(net_budget),
        used_cashback_budget=Decimal(used_budget),
        outlets=list(outlets),
        tiers=[
            CashbackConfigurationTier(
                name=f"Tier {index + 1}",
                cashback_percentage=Decimal(percentage),
                review_status=APPROVED,
            )
            for index, percentage in enumerate(percentages)
        ],
        **fields,
    )
    session.add(config)
    return config


def make_exclusive(
    session,
    merchant: Merchant,
    outlets: Sequence[Outlet],
    *,
    customer_types: Iterable[str] = ("All",),
    start_date: dt.datetime | None = None,
    end_date: dt.datetime | None = None,
    net_budget: str = "500",
    used_budget: str = "0",
    **fields,
) -> ExclusiveOffer:
    offer = ExclusiveOffer(
        merchant=merchant,
        name=fields.pop("name", "Two for one"),
        review_status=APPROVED,
        eligible_customer_types=list(customer_types),
        net_offer_budget=Decimal(net_budget),
        used_offer_budget=Decimal(used_budget),
        start_date=start_date or utc(-1),
        end_date=end_date or utc(30),
        outlets=list(outlets),
        **fields,
    )
    session.add(offer)
    return offer


def make_loyalty(
    session,
    merchant: Merchant,
    *,
    tier_types: Sequence[CustomerTypeEnum] = (CustomerTypeEnum.REGULAR,),
    rewards: int = 1,
    points_limit: str | None = None,
    points_used: str = "0",
) -> LoyaltyProgram:
    program = LoyaltyProgram(
        merchant=merchant,
        name=f"{merchant.business_name} Rewards",
        review_status=APPROVED,
        points_issued_limit=Decimal(points_limit) if points_limit is not None else None,
        points_used_in_period=Decimal(points_used),
        tiers=[
            LoyaltyProgramTier(name=customer_type.value, position=index, min_customer_type=customer_type, review_status=APPROVED)
            for index, customer_type in enumerate(tier_types)
        ],
        rewards=[
            MerchantLoyaltyReward(name=f"Reward {index + 1}", points_cost=Decimal("100"), review_status=APPROVED)
            for index in range(rewards)
        ],
    )
    session.add(program)
    return program
