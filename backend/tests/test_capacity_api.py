"""
Tests for the capacity endpoints.
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_generate_and_read_slots(client: AsyncClient, service_headers, future_date):
    body = {
        "ticket_id": 4,
        "start_date": future_date.isoformat(),
        "end_date": (future_date + timedelta(days=1)).isoformat(),
        "total_capacity": 40,
    }
    response = await client.post("/api/v1/capacity/generate", json=body, headers=service_headers)
    assert response.status_code == 201
    assert response.json() == {"ticket_id": 4, "days": 2, "created": 8, "skipped": 0}

    rerun = await client.post("/api/v1/capacity/generate", json=body, headers=service_headers)
    assert rerun.json()["created"] == 0

    slot = await client.get(f"/api/v1/capacity/4/{future_date.isoformat()}?time_slot=15:00")
    assert slot.status_code == 200
    data = slot.json()
    assert data["total_capacity"] == 40
    assert data["available_capacity"] == 40
    assert data["version"] == 0


@pytest.mark.asyncio
async def test_generate_all_day_slots(client: AsyncClient, service_headers, future_date):
    body = {
        "ticket_id": 4,
        "start_date": future_date.isoformat(),
        "end_date": future_date.isoformat(),
        "time_slots": ["all-day"],
    }
    response = await client.post("/api/v1/capacity/generate", json=body, headers=service_headers)
    assert response.json()["created"] == 1

    slot = await client.get(f"/api/v1/capacity/4/{future_date.isoformat()}")
    assert slot.status_code == 200
    assert slot.json()["time_slot"] is None


@pytest.mark.asyncio
async def test_generate_requires_service_token(client: AsyncClient, future_date):
    body = {"ticket_id": 4, "start_date": future_date.isoformat(), "end_date": future_date.isoformat()}
    response = await client.post("/api/v1/capacity/generate", json=body)
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_generate_rejects_inverted_range(client: AsyncClient, service_headers, future_date):
    body = {
        "ticket_id": 4,
        "start_date": future_date.isoformat(),
        "end_date": (future_date - timedelta(days=1)).isoformat(),
    }
    response = await client.post("/api/v1/capacity/generate", json=body, headers=service_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_read_missing_or_malformed_slot(client: AsyncClient, future_date):
    assert (await client.get(f"/api/v1/capacity/4/{future_date.isoformat()}?time_slot=09:00")).status_code == 404
    assert (await client.get(f"/api/v1/capacity/4/{future_date.isoformat()}?time_slot=noon")).status_code == 422
