"""Resolve eligible-customer-type specs into concrete user ids."""

from __future__ import annotations

from typing import Any, Iterable, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from offers_api.models.customer_type import CustomerType, CustomerTypeEnum

ALL_CUSTOMERS = "All"
NON_CUSTOMER = "NonCustomer"

CUSTOMER_TYPE_HIERARCHY: dict[CustomerTypeEnum, int] = {
    CustomerTypeEnum.NON_CUSTOMER: 0,
    CustomerTypeEnum.NEW: 1,
    CustomerTypeEnum.INFREQUENT: 2,
    CustomerTypeEnum.OCCASIONAL: 3,
    CustomerTypeEnum.REGULAR: 4,
    CustomerTypeEnum.VIP: 5,
}


def get_eligible_customer_types(min_type: CustomerTypeEnum | str) -> list[CustomerTypeEnum]:
    """Every customer type ranked at or above ``min_type``.

    >>> [t.value for t in get_eligible_customer_types("Occasional")]
    ['Occasional', 'Regular', 'Vip']
    """

    min_level = CUSTOMER_TYPE_HIERARCHY[CustomerTypeEnum(min_type)]
    return [customer_type for customer_type, level in CUSTOMER_TYPE_HIERARCHY.items() if level >= min_level]


def meets_customer_type_requirement(user_type: CustomerTypeEnum | str, required: CustomerTypeEnum | str) -> bool:
    return CUSTOMER_TYPE_HIERARCHY[CustomerTypeEnum(user_type)] >= CUSTOMER_TYPE_HIERARCHY[CustomerTypeEnum(required)]


def select_least_restrictive_tier(tiers: Sequence[Any]) -> Any | None:
    """Tier whose at-or-above type set is largest; the first one wins ties."""

    selected = None
    selected_size = -1
    for tier in tiers:
        size = len(get_eligible_customer_types(tier.min_customer_type))
        if size > selected_size:
            selected = tier
            selected_size = size
    return selected


def split_customer_type_tokens(tokens: Iterable[str]) -> tuple[bool, bool, list[CustomerTypeEnum]]:
    """Return ``(includes_all, includes_non_customer, concrete_types)``."""

    includes_all = False
    includes_non_customer = False
    concrete: list[CustomerTypeEnum] = []
    for token in tokens or ():
        if token == ALL_CUSTOMERS:
            includes_all = True
        elif token == NON_CUSTOMER:
            includes_non_customer = True
        else:
            try:
                customer_type = CustomerTypeEnum(token)
            except ValueError:
                logger.warning("Ignoring unknown customer type token", token=token)
                continue
            if customer_type not in concrete:
                concrete.append(customer_type)
    return includes_all, includes_non_customer, concrete


class CustomerResolver:
    """Maps a merchant plus customer-type selector to the qualifying user ids."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def resolve_offer_customers(self, merchant_id: UUID, eligible_customer_types: Iterable[str]) -> list[str]:
        includes_all, includes_non_customer, concrete = split_customer_type_tokens(eligible_customer_types)

        # "All" already covers every other mode, and deliberately ignores merchant scoping.
        if includes_all:
            return await self._all_known_users()

        user_ids: dict[str, None] = {}
        if includes_non_customer:
            merchant_customers = set(await self._merchant_customers(merchant_id))
            for user_id in await self._all_known_users():
                if user_id not in merchant_customers:
                    user_ids[user_id] = None

        if concrete:
            for user_id in await self._merchant_customers(merchant_id, concrete):
                user_ids[user_id] = None

        return list(user_ids)

    async def resolve_loyalty_customers(self, merchant_id: UUID, tiers: Sequence[Any]) -> list[str]:
        tier = select_least_restrictive_tier(tiers)
        if tier is None:
            return []
        eligible_types = get_eligible_customer_types(tier.min_customer_type)
        return await self._merchant_customers(merchant_id, eligible_types)

    async def _all_known_users(self) -> list[str]:
        stmt = select(CustomerType.user_id).distinct().order_by(CustomerType.user_id)
        result = await self._session.execute(stmt)
        return list(result.scalars())

    async def _merchant_customers(
        self,
        merchant_id: UUID,
        customer_types: Sequence[CustomerTypeEnum] | None = None,
    ) -> list[str]:
        stmt = select(CustomerType.user_id).where(CustomerType.merchant_id == merchant_id)
        if customer_types is not None:
            stmt = stmt.where(CustomerType.type.in_(list(customer_types)))
        stmt = stmt.distinct().order_by(CustomerType.user_id)
        result = await self._session.execute(stmt)
        return list(result.scalars())


__all__ = [
    "ALL_CUSTOMERS",
    "CUSTOMER_TYPE_HIERARCHY",
    "CustomerResolver",
    "NON_CUSTOMER",
    "get_eligible_customer_types",
    "meets_customer_type_requirement",
    "select_least_restrictive_tier",
    "split_customer_type_tokens",
]
