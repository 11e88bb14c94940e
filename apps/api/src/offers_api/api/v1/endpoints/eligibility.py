"""Internal endpoints for driving and inspecting the eligibility engine."""

from __future__ import annotations

from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from offers_api.api.dependencies.eligibility import get_eligibility_dispatcher, get_eligibility_options
from offers_api.api.dependencies.security import require_internal_api_key
from offers_api.core.options import EligibilityOptions
from offers_api.db.session import get_session
from offers_api.models.eligibility import EligibilityEntityTypeEnum
from offers_api.models.merchant import MerchantStatusEnum
from offers_api.observability.eligibility import get_eligibility_store
from offers_api.observability.scheduler import get_scheduler_store
from offers_api.schemas.offers import RecomputeRequest, RecomputeResponse
from offers_api.services.eligibility.dispatch import EligibilityDispatcher
from offers_api.services.eligibility.queue import EligibilityQueueService
from offers_api.services.offers.events import OfferEventHandlers

router = APIRouter(
    prefix="/eligibility",
    tags=["Eligibility"],
    dependencies=[Depends(require_internal_api_key)],
)


class EligibilityEvent(BaseModel):
    event: Literal["offer_changed", "customer_type_changed", "merchant_status_changed", "budget_exhausted", "outlets_changed"]
    entity_type: EligibilityEntityTypeEnum | None = Field(default=None, alias="entityType")
    entity_id: UUID | None = Field(default=None, alias="entityId")
    change: Literal["created", "updated", "deleted", "activated", "deactivated"] | None = None
    user_id: str | None = Field(default=None, alias="userId", max_length=64)
    merchant_id: UUID | None = Field(default=None, alias="merchantId")
    new_status: MerchantStatusEnum | None = Field(default=None, alias="newStatus")
    old_status: MerchantStatusEnum | None = Field(default=None, alias="oldStatus")

    model_config = {"populate_by_name": True}


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


@router.post("/recompute", response_model=RecomputeResponse, status_code=status.HTTP_202_ACCEPTED)
async def request_recompute(
    payload: RecomputeRequest,
    db: AsyncSession = Depends(get_session),
    dispatcher: EligibilityDispatcher | None = Depends(get_eligibility_dispatcher),
    options: EligibilityOptions = Depends(get_eligibility_options),
) -> RecomputeResponse:
    queue = EligibilityQueueService(db, dispatcher, options=options)
    if payload.merchant_id is not None:
        count = await queue.enqueue_all_for_merchant(payload.merchant_id, payload.reason, payload.priority)
        return RecomputeResponse(enqueued=count)
    if payload.entity_type is None or payload.entity_id is None:
        raise _bad_request("Provide merchantId or both entityType and entityId")
    try:
        entity_type = EligibilityEntityTypeEnum(payload.entity_type)
    except ValueError as error:
        raise _bad_request(f"Unknown entity type: {payload.entity_type}") from error
    entry = await queue.enqueue(entity_type, payload.entity_id, payload.reason, payload.priority)
    return RecomputeResponse(enqueued=1, queue_entry_id=entry.id)


@router.post("/drain")
async def drain_queue(
    limit: int | None = Query(default=None, ge=1, le=1000),
    db: AsyncSession = Depends(get_session),
    dispatcher: EligibilityDispatcher | None = Depends(get_eligibility_dispatcher),
    options: EligibilityOptions = Depends(get_eligibility_options),
) -> dict[str, int]:
    if dispatcher is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="No eligibility dispatcher configured")
    queue = EligibilityQueueService(db, dispatcher, options=options)
    return await queue.drain_pending(limit)


@router.post("/events", status_code=status.HTTP_202_ACCEPTED)
async def handle_event(
    payload: EligibilityEvent,
    db: AsyncSession = Depends(get_session),
    dispatcher: EligibilityDispatcher | None = Depends(get_eligibility_dispatcher),
    options: EligibilityOptions = Depends(get_eligibility_options),
) -> dict[str, object]:
    handlers = OfferEventHandlers(db, dispatcher, options=options)

    if payload.event == "customer_type_changed":
        if not payload.user_id or payload.merchant_id is None:
            raise _bad_request("customer_type_changed requires userId and merchantId")
        if payload.change not in ("created", "updated", "deleted"):
            raise _bad_request(f"customer_type_changed does not accept change={payload.change}")
        invalidated = await handlers.on_customer_type_changed(payload.user_id, payload.merchant_id, payload.change)
        return {"status": "accepted", "invalidated": invalidated}

    if payload.event == "merchant_status_changed":
        if payload.merchant_id is None or payload.new_status is None or payload.old_status is None:
            raise _bad_request("merchant_status_changed requires merchantId, newStatus and oldStatus")
        count = await handlers.on_merchant_status_changed(payload.merchant_id, payload.new_status, payload.old_status)
        return {"status": "accepted", "enqueued": count}

    if payload.entity_type is None or payload.entity_id is None:
        raise _bad_request(f"{payload.event} requires entityType and entityId")
    if payload.event == "offer_changed":
        if payload.change is None:
            raise _bad_request("offer_changed requires change")
        entry = await handlers.on_offer_changed(payload.entity_type, payload.entity_id, payload.change)
    elif payload.event == "budget_exhausted":
        entry = await handlers.on_budget_exhausted(payload.entity_type, payload.entity_id)
    else:
        entry = await handlers.on_offer_outlets_changed(payload.entity_type, payload.entity_id)
    return {"status": "accepted", "queueEntryId": str(entry.id), "priority": entry.priority}


@router.get("/health")
async def eligibility_health(
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> dict[str, object]:
    scheduler = getattr(request.app.state, "eligibility_scheduler", None)
    worker_pool = getattr(request.app.state, "eligibility_worker_pool", None)
    queue = EligibilityQueueService(db)
    return {
        "queue": await queue.summary(),
        "eligibility": get_eligibility_store().snapshot().as_dict(),
        "scheduler": scheduler.health() if scheduler else get_scheduler_store().snapshot().as_dict(),
        "workerPool": {
            "running": worker_pool.is_running,
            "pending": worker_pool.pending,
            "processed": worker_pool.processed,
            "failed": worker_pool.failed,
        }
        if worker_pool
        else None,
    }
