"""
Tests for the booking intent store and its endpoints.
"""

import json

import pytest
from httpx import AsyncClient

from ticketing.services.booking_intent import BookingIntentStore, intent_key
from ticketing.services.interfaces.memory_intent_storage import InMemoryIntentStorage

INTENT = {
    "ticket_id": 1,
    "ticket_name": "Morning Session",
    "ticket_type": "entrance",
    "price": 25000,
    "date": "2026-12-01",
    "time": "09:00",
    "quantity": 2,
    "total": 50000,
}


class FakeClock:
    def __init__(self, now: float = 1_800_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return BookingIntentStore(InMemoryIntentStorage(), intent_key("client-123"), staleness_seconds=1800, clock=clock)


def test_round_trip_keeps_fields_and_stamps_time(store, clock):
    store.preserve(INTENT)
    restored = store.restore()

    assert restored.model_dump(exclude={"timestamp"}) == INTENT
    assert restored.timestamp == int(clock.now * 1000)
    assert store.has_intent()


def test_age_tracks_the_clock(store, clock):
    store.preserve(INTENT)
    clock.now += 90
    assert store.age() == pytest.approx(90)


def test_stale_intent_is_purged(store, clock):
    store.preserve(INTENT)
    clock.now += 1801

    assert store.restore() is None
    assert store.storage.get(store.key) is None
    clock.now -= 1801
    assert store.restore() is None


def test_malformed_json_is_purged(store):
    store.storage.set(store.key, "{not json")
    assert store.restore() is None
    assert store.storage.get(store.key) is None


def test_missing_field_is_purged(store, clock):
    incomplete = {k: v for k, v in INTENT.items() if k != "quantity"}
    incomplete["timestamp"] = int(clock.now * 1000)
    store.storage.set(store.key, json.dumps(incomplete))

    assert store.restore() is None
    assert store.storage.get(store.key) is None


def test_clear_and_absent(store):
    assert store.restore() is None
    assert store.age() is None
    store.preserve(INTENT)
    store.clear()
    assert not store.has_intent()


def test_keys_are_per_client():
    storage = InMemoryIntentStorage()
    BookingIntentStore(storage, intent_key("client-a")).preserve(INTENT)
    assert BookingIntentStore(storage, intent_key("client-b")).restore() is None


@pytest.mark.asyncio
async def test_intent_endpoints(client: AsyncClient):
    headers = {"X-Client-Id": "client-abcdef"}

    put = await client.put("/api/v1/booking-intent", json=INTENT, headers=headers)
    assert put.status_code == 200
    assert put.json()["ticket_name"] == "Morning Session"

    get = await client.get("/api/v1/booking-intent", headers=headers)
    assert get.status_code == 200
    assert get.json()["intent"]["quantity"] == 2
    assert get.json()["age_seconds"] >= 0

    delete = await client.delete("/api/v1/booking-intent", headers=headers)
    assert delete.status_code == 204

    empty = await client.get("/api/v1/booking-intent", headers=headers)
    assert empty.json() == {"intent": None, "age_seconds": None}


@pytest.mark.asyncio
async def test_intent_endpoints_validate_input(client: AsyncClient):
    assert (await client.get("/api/v1/booking-intent")).status_code == 422

    bad = dict(INTENT, quantity=0)
    response = await client.put("/api/v1/booking-intent", json=bad, headers={"X-Client-Id": "client-abcdef"})
    assert response.status_code == 422
