from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from offers_api.models.customer_type import CustomerTypeEnum
from offers_api.models.merchant import MerchantStatusEnum


def _to_camel(value: str) -> str:
    parts = value.split("_")
    return parts[0] + "".join(word.capitalize() for word in parts[1:])


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel, from_attributes=True)


class MerchantSummary(_CamelModel):
    id: UUID
    business_name: str
    category: str | None = None
    status: MerchantStatusEnum


class CashbackTierResponse(_CamelModel):
    id: UUID
    name: str
    cashback_percentage: float
    min_spend: float | None = None


class CashbackConfigurationResponse(_CamelModel):
    id: UUID
    name: str
    start_date: datetime | None = None
    end_date: datetime | None = None
    is_active: bool
    net_cashback_budget: float
    used_cashback_budget: float
    tiers: list[CashbackTierResponse] = Field(default_factory=list)


class ExclusiveOfferResponse(_CamelModel):
    id: UUID
    name: str
    description: str | None = None
    start_date: datetime
    end_date: datetime
    is_active: bool
    net_offer_budget: float
    used_offer_budget: float


class OutletOffersResponse(_CamelModel):
    """One outlet with only the offers the requesting user may see."""

    id: UUID
    name: str
    address: str | None = None
    is_active: bool
    merchant_id: UUID
    merchant: MerchantSummary | None = None
    cashback_configurations: list[CashbackConfigurationResponse] = Field(default_factory=list)
    exclusive_offers: list[ExclusiveOfferResponse] = Field(default_factory=list)


class OffersResponse(_CamelModel):
    outlets: list[OutletOffersResponse] = Field(default_factory=list)
    total_count: int = 0


class LoyaltyTierResponse(_CamelModel):
    id: UUID
    name: str
    position: int
    min_customer_type: CustomerTypeEnum
    points_multiplier: float


class LoyaltyRewardResponse(_CamelModel):
    id: UUID
    name: str
    description: str | None = None
    points_cost: float


class LoyaltyProgramResponse(_CamelModel):
    id: UUID
    name: str
    description: str | None = None
    is_active: bool
    merchant: MerchantSummary | None = None
    tiers: list[LoyaltyTierResponse] = Field(default_factory=list)
    rewards: list[LoyaltyRewardResponse] = Field(default_factory=list)


class RecomputeRequest(_CamelModel):
    """Internal recompute trigger: one entity, or every offer of a merchant."""

    entity_type: str | None = None
    entity_id: UUID | None = None
    merchant_id: UUID | None = None
    reason: str = Field(default="Manual recompute", max_length=500)
    priority: int = Field(default=50, ge=0, le=100)


class RecomputeResponse(_CamelModel):
    enqueued: int
    queue_entry_id: UUID | None = None


__all__ = [
    "CashbackConfigurationResponse",
    "ExclusiveOfferResponse",
    "LoyaltyProgramResponse",
    "MerchantSummary",
    "OffersResponse",
    "OutletOffersResponse",
    "RecomputeRequest",
    "RecomputeResponse",
]
