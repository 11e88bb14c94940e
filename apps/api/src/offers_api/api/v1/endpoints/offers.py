"""Offer listing endpoints backed by the materialized eligibility table."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from offers_api.api.dependencies.eligibility import get_eligibility_options
from offers_api.api.dependencies.session import require_user_id
from offers_api.core.options import EligibilityOptions
from offers_api.db.session import get_session
from offers_api.schemas.offers import LoyaltyProgramResponse, OffersResponse
from offers_api.services.offers.filters import CashbackPercentageFilter
from offers_api.services.offers.service import DEFAULT_PAGE_SIZE, OfferQueryService

router = APIRouter(prefix="/offers", tags=["Offers"])


@router.get("", response_model=OffersResponse, response_model_by_alias=True)
async def list_offers(
    search: str | None = Query(default=None, max_length=120),
    category: str | None = Query(default=None, max_length=64),
    percentage: CashbackPercentageFilter | None = Query(default=None),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    user_id: str = Depends(require_user_id),
    db: AsyncSession = Depends(get_session),
    options: EligibilityOptions = Depends(get_eligibility_options),
) -> OffersResponse:
    service = OfferQueryService(db, options=options)
    return await service.get_offers_for_user(
        user_id,
        search=search,
        category=category,
        percentage=percentage,
        limit=limit,
        offset=offset,
    )


@router.get("/loyalty-programs", response_model=list[LoyaltyProgramResponse], response_model_by_alias=True)
async def list_loyalty_programs(
    category: str | None = Query(default=None, max_length=64),
    search: str | None = Query(default=None, max_length=120),
    user_id: str = Depends(require_user_id),
    db: AsyncSession = Depends(get_session),
    options: EligibilityOptions = Depends(get_eligibility_options),
) -> list[LoyaltyProgramResponse]:
    service = OfferQueryService(db, options=options)
    return await service.get_loyalty_programs_for_user(user_id, category=category, search=search)
