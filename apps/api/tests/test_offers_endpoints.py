from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from factories import add_customer, make_cashback, make_merchant, make_outlet
from offers_api.core.settings import settings
from offers_api.models.customer_type import CustomerTypeEnum
from offers_api.services.eligibility.materializer import EligibilityComputationService


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_healthz(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        response = await client.get("/healthz")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_offers_require_session_user(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        missing = await client.get("/api/v1/offers")
        oversized = await client.get("/api/v1/offers", headers={"X-Session-User": "u" * 65})

    assert missing.status_code == 401
    assert oversized.status_code == 400


@pytest.mark.asyncio
async def test_offers_listing_uses_camel_case(app_with_db) -> None:
    app, session_factory = app_with_db
    async with session_factory() as session:
        merchant = make_merchant(session)
        outlet = make_outlet(session, merchant)
        add_customer(session, merchant, "u-1", CustomerTypeEnum.VIP)
        config = make_cashback(session, merchant, [outlet], percentages=("8.00",))
        await session.commit()
    async with session_factory() as session:
        await EligibilityComputationService(session).compute_cashback_eligibility(config.id)

    async with _client(app) as client:
        response = await client.get(
            "/api/v1/offers",
            params={"percentage": "BETWEEN_5_10"},
            headers={"X-Session-User": "u-1"},
        )
        invalid = await client.get("/api/v1/offers", params={"percentage": "HALF"}, headers={"X-Session-User": "u-1"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["totalCount"] == 1
    outlet_payload = payload["outlets"][0]
    assert outlet_payload["merchant"]["businessName"] == "Cafe Uno"
    assert outlet_payload["cashbackConfigurations"][0]["tiers"][0]["cashbackPercentage"] == 8.0
    assert invalid.status_code == 422


@pytest.mark.asyncio
async def test_internal_endpoints_require_api_key(app_with_db, monkeypatch) -> None:
    app, _ = app_with_db
    monkeypatch.setattr(settings, "internal_api_key", "secret")

    async with _client(app) as client:
        denied = await client.get("/api/v1/eligibility/health")
        allowed = await client.get("/api/v1/eligibility/health", headers={"X-API-Key": "secret"})

    assert denied.status_code == 401
    assert allowed.status_code == 200
    body = allowed.json()
    assert body["queue"] == {"Pending": 0, "Processing": 0, "Completed": 0, "Failed": 0}
    assert "totals" in body["eligibility"]


@pytest.mark.asyncio
async def test_recompute_endpoint_enqueues(app_with_db) -> None:
    app, _ = app_with_db
    entity_id = uuid4()

    async with _client(app) as client:
        accepted = await client.post(
            "/api/v1/eligibility/recompute",
            json={"entityType": "EXCLUSIVE_OFFER", "entityId": str(entity_id), "priority": 90},
        )
        unknown = await client.post(
            "/api/v1/eligibility/recompute",
            json={"entityType": "VOUCHER", "entityId": str(entity_id)},
        )
        incomplete = await client.post("/api/v1/eligibility/recompute", json={"reason": "nothing"})
        health = await client.get("/api/v1/eligibility/health")

    assert accepted.status_code == 202
    assert accepted.json()["enqueued"] == 1
    assert accepted.json()["queueEntryId"]
    assert unknown.status_code == 400
    assert incomplete.status_code == 400
    assert health.json()["queue"]["Pending"] == 1


@pytest.mark.asyncio
async def test_drain_without_dispatcher_is_unavailable(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        response = await client.post("/api/v1/eligibility/drain")

    assert response.status_code == 503


@pytest.mark.asyncio
async def test_events_endpoint_routes_offer_changes(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        accepted = await client.post(
            "/api/v1/eligibility/events",
            json={"event": "offer_changed", "entityType": "CASHBACK_CONFIG", "entityId": str(uuid4()), "change": "deleted"},
        )
        rejected = await client.post("/api/v1/eligibility/events", json={"event": "budget_exhausted"})

    assert accepted.status_code == 202
    assert accepted.json()["priority"] == 100
    assert rejected.status_code == 400
