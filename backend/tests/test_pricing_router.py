from __future__ import annotations

from datetime import date

import pytest

from pricing_fakes import HOTEL_ID, MARKET_ID, MEAL_PLAN_ID, add_rates, campaign_doc

CHECK_IN = date(2026, 5, 10)
BASE = f"/api/pricing/hotels/{HOTEL_ID}"


def _stay(**overrides):
    payload = {
        "room_type_id": "std",
        "meal_plan_id": MEAL_PLAN_ID,
        "market_id": MARKET_ID,
        "check_in": "2026-05-10",
        "check_out": "2026-05-12",
        "adults": 2,
    }
    payload.update(overrides)
    return payload


@pytest.mark.anyio
async def test_calculate_endpoint(async_client, repo):
    add_rates(repo, "std", CHECK_IN, 2)
    repo.campaigns.append(campaign_doc("early"))

    resp = await async_client.post(f"{BASE}/calculate", json=_stay(children=[4]), params={"channel": "b2c"})

    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["success"] is True
    assert data["children"] == [{"age": 4, "age_group": None}]
    assert data["pricing"]["original_total"] == 230
    assert data["pricing"]["final_total"] == 207
    assert data["campaigns"]["applied"][0]["code"] == "EARLY"


@pytest.mark.anyio
async def test_missing_room_type_maps_to_404(async_client, repo):
    resp = await async_client.post(f"{BASE}/calculate", json=_stay(room_type_id="suite"))

    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "ROOM_TYPE_NOT_FOUND"


@pytest.mark.anyio
async def test_invalid_payload_maps_to_validation_error(async_client):
    resp = await async_client.post(f"{BASE}/calculate", json=_stay(adults=0))

    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "validation_error"


@pytest.mark.anyio
async def test_invalid_range_maps_to_400(async_client):
    resp = await async_client.post(f"{BASE}/calculate", json=_stay(check_out="2026-05-09"))

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "INVALID_DATE_RANGE"


@pytest.mark.anyio
async def test_booking_price_and_bulk(async_client, repo):
    add_rates(repo, "std", CHECK_IN, 1)
    query = {"room_type_id": "std", "meal_plan_id": MEAL_PLAN_ID, "market_id": MARKET_ID, "date": "2026-05-10"}

    resp = await async_client.post(f"{BASE}/booking-price", json=query)
    assert resp.status_code == 200, resp.text
    assert resp.json()["occupancy"]["per_night_price"] == 100

    resp = await async_client.post(f"{BASE}/bulk", json={"queries": [query, {**query, "date": "2026-06-01"}]})
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert (data["succeeded"], data["failed"]) == (1, 1)


@pytest.mark.anyio
async def test_multi_room_endpoint(async_client, repo):
    add_rates(repo, "std", CHECK_IN, 2)
    payload = {
        "market_id": MARKET_ID,
        "check_in": "2026-05-10",
        "check_out": "2026-05-12",
        "channel": "b2b",
        "rooms": [
            {"room_type_id": "std", "meal_plan_id": MEAL_PLAN_ID, "adults": 2},
            {"room_type_id": "std", "meal_plan_id": MEAL_PLAN_ID, "adults": 1},
        ],
    }

    resp = await async_client.post(f"{BASE}/multi-room", json=payload)

    assert resp.status_code == 200, resp.text
    totals = resp.json()["totals"]
    assert totals["final_total"] == 360
    assert totals["channel_total"] == 396


@pytest.mark.anyio
async def test_availability_endpoint(async_client, repo):
    add_rates(repo, "std", CHECK_IN, 2)
    payload = {k: v for k, v in _stay().items() if k != "adults"}

    resp = await async_client.post(f"{BASE}/availability", json=payload)

    assert resp.status_code == 200, resp.text
    assert resp.json()["is_available"] is True


@pytest.mark.anyio
async def test_inspection_endpoints(async_client, repo):
    repo.campaigns.append(campaign_doc("early"))
    params = {"room_type_id": "fam", "market_id": MARKET_ID, "date": "2026-05-10"}

    resp = await async_client.get(f"{BASE}/effective-settings", params=params)
    assert resp.status_code == 200, resp.text
    assert resp.json()["settings"]["pricing_type"] == "per_person"

    resp = await async_client.get(f"{BASE}/combination-table", params={**params, "locale": "tr"})
    assert resp.status_code == 200, resp.text
    names = {row["key"]: row["name"] for row in resp.json()["combinations"]}
    assert names["2+1_infant"] == "2+1 (Bebek)"

    resp = await async_client.get(
        f"{BASE}/campaigns", params={"check_in": "2026-05-10", "check_out": "2026-05-12", "channel": "b2b"}
    )
    assert resp.status_code == 200, resp.text
    assert [c["code"] for c in resp.json()] == ["EARLY"]


@pytest.mark.anyio
async def test_tier_preview(async_client):
    payload = {
        "base_price": 125,
        "working_mode": "commission",
        "commission_rate": 25,
        "markup": {"b2c": 10, "b2b": 0},
        "agency_margin_share": 50,
    }

    resp = await async_client.post("/api/pricing/tiers/preview", json=payload)

    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["hotel_cost"] == 100
    assert data["b2c_price"] == 137.5
    assert data["b2b_price"] == 112.5


@pytest.mark.anyio
async def test_cache_endpoints(async_client, price_cache):
    await price_cache.set("price:hotel_1:a", 1)
    await price_cache.set("campaigns:hotel_1:a", 1)

    resp = await async_client.get("/api/pricing/cache/stats")
    assert resp.status_code == 200
    assert resp.json()["size"] == 2

    resp = await async_client.post("/api/pricing/cache/clear", json={"prefix": "price:"})
    assert resp.json() == {"ok": True, "prefix": "price:", "removed": 1}

    resp = await async_client.post("/api/pricing/cache/clear")
    assert resp.json()["removed"] == 1


@pytest.mark.anyio
async def test_health(async_client):
    resp = await async_client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
