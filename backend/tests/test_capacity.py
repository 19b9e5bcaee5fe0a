"""
Tests for the capacity store, including the optimistic-locking race.
"""

from datetime import time, timedelta

import pytest

from ticketing.core.errors import ConflictError, ValidationError
from ticketing.services import capacity_service


@pytest.mark.asyncio
async def test_increment_sold_bumps_version(session_factory, make_slot, future_date):
    await make_slot(1, future_date, time(9, 0), sold=3, version=2)

    async with session_factory() as session:
        assert await capacity_service.increment_sold(session, 1, future_date, "09:00", 2)
        await session.commit()

    async with session_factory() as session:
        slot = await capacity_service.read_slot(session, 1, future_date, "09:00")
    assert slot.sold_capacity == 5
    assert slot.version == 3


@pytest.mark.asyncio
async def test_all_day_and_timed_slots_are_separate(session_factory, make_slot, future_date):
    await make_slot(1, future_date, None)
    await make_slot(1, future_date, time(9, 0))

    async with session_factory() as session:
        assert await capacity_service.increment_sold(session, 1, future_date, None, 4)
        await session.commit()

    async with session_factory() as session:
        all_day = await capacity_service.read_slot(session, 1, future_date, "all-day")
        timed = await capacity_service.read_slot(session, 1, future_date, "09:00")
    assert all_day.sold_capacity == 4
    assert timed.sold_capacity == 0


@pytest.mark.asyncio
async def test_increment_on_missing_slot_is_a_noop(db_session, future_date):
    assert await capacity_service.increment_sold(db_session, 99, future_date, "09:00", 1) is False


@pytest.mark.asyncio
async def test_racing_increments_both_land(session_factory, make_slot, future_date, monkeypatch):
    """
    total=100, sold=99, version=5; a second writer commits between our read
    and our write. Our CAS misses, re-reads and lands on top: sold=101,
    version=7, nothing lost or counted twice.
    """
    await make_slot(1, future_date, time(9, 0), total=100, sold=99, version=5)
    original_read = capacity_service._read_counter
    competitor_ran = False

    async def racing_read(db, *args):
        nonlocal competitor_ran
        row = await original_read(db, *args)
        if not competitor_ran:
            competitor_ran = True
            async with session_factory() as other:
                assert await capacity_service.increment_sold(other, 1, future_date, "09:00", 1)
                await other.commit()
        return row

    monkeypatch.setattr(capacity_service, "_read_counter", racing_read)

    async with session_factory() as session:
        assert await capacity_service.increment_sold(session, 1, future_date, "09:00", 1)
        await session.commit()

    async with session_factory() as session:
        slot = await capacity_service.read_slot(session, 1, future_date, "09:00")
    assert slot.sold_capacity == 101
    assert slot.version == 7


@pytest.mark.asyncio
async def test_increment_dropped_after_exhausting_retries(session_factory, make_slot, future_date, monkeypatch):
    """With a single attempt, losing the race drops our delta; the winner's still counts."""
    await make_slot(1, future_date, time(9, 0), sold=10, version=0)
    original_read = capacity_service._read_counter
    competitor_ran = False

    async def losing_read(db, *args):
        nonlocal competitor_ran
        row = await original_read(db, *args)
        if not competitor_ran:
            competitor_ran = True
            async with session_factory() as other:
                await capacity_service.increment_sold(other, 1, future_date, "09:00", 1)
                await other.commit()
        return row

    monkeypatch.setattr(capacity_service, "_read_counter", losing_read)

    async with session_factory() as session:
        applied = await capacity_service.increment_sold(session, 1, future_date, "09:00", 5, max_attempts=1)
        await session.commit()

    assert applied is False
    async with session_factory() as session:
        slot = await capacity_service.read_slot(session, 1, future_date, "09:00")
    assert slot.sold_capacity == 11
    assert slot.version == 1


@pytest.mark.asyncio
async def test_stale_version_write_raises_conflict(session_factory, make_slot, future_date):
    slot_id = await make_slot(1, future_date, time(9, 0), sold=4, version=3)

    async with session_factory() as session:
        with pytest.raises(ConflictError):
            await capacity_service._write_counter(session, slot_id, 2, sold_capacity=5)
        await capacity_service._write_counter(session, slot_id, 3, sold_capacity=5)
        await session.commit()

    async with session_factory() as session:
        slot = await capacity_service.read_slot(session, 1, future_date, "09:00")
    assert (slot.sold_capacity, slot.version) == (5, 4)


@pytest.mark.asyncio
async def test_finalize_sold_turns_hold_into_sale(session_factory, make_slot, future_date):
    """total=100 with 2 held: after finalizing, 2 sold, nothing held, 98 available, one version step."""
    await make_slot(1, future_date, time(9, 0), total=100, reserved=2, version=1)

    async with session_factory() as session:
        assert await capacity_service.finalize_sold(session, 1, future_date, "09:00", 2)
        await session.commit()

    async with session_factory() as session:
        slot = await capacity_service.read_slot(session, 1, future_date, "09:00")
    assert (slot.sold_capacity, slot.reserved_capacity, slot.available_capacity) == (2, 0, 98)
    assert slot.version == 2


@pytest.mark.asyncio
async def test_finalize_sold_without_hold_floors_reserved(session_factory, make_slot, future_date):
    await make_slot(1, future_date, time(9, 0), total=10, reserved=1)

    async with session_factory() as session:
        assert await capacity_service.finalize_sold(session, 1, future_date, "09:00", 3)
        await session.commit()

    async with session_factory() as session:
        slot = await capacity_service.read_slot(session, 1, future_date, "09:00")
    assert (slot.sold_capacity, slot.reserved_capacity) == (3, 0)


@pytest.mark.asyncio
async def test_reserve_respects_total(session_factory, make_slot, future_date):
    await make_slot(1, future_date, time(9, 0), total=5, sold=3)

    async with session_factory() as session:
        assert await capacity_service.reserve(session, 1, future_date, "09:00", 2)
        assert not await capacity_service.reserve(session, 1, future_date, "09:00", 1)
        await session.commit()

    async with session_factory() as session:
        slot = await capacity_service.read_slot(session, 1, future_date, "09:00")
    assert slot.reserved_capacity == 2
    assert slot.available_capacity == 0


@pytest.mark.asyncio
async def test_release_never_goes_negative(session_factory, make_slot, future_date):
    await make_slot(1, future_date, time(9, 0), reserved=1)

    async with session_factory() as session:
        assert await capacity_service.release_reserved(session, 1, future_date, "09:00", 3)
        await session.commit()

    async with session_factory() as session:
        slot = await capacity_service.read_slot(session, 1, future_date, "09:00")
    assert slot.reserved_capacity == 0


@pytest.mark.asyncio
async def test_generate_slots_is_rerunnable(session_factory, future_date):
    async with session_factory() as session:
        first = await capacity_service.generate_slots(session, 7, future_date, future_date + timedelta(days=2))
        await session.commit()
    assert first == {"ticket_id": 7, "days": 3, "created": 12, "skipped": 0}

    async with session_factory() as session:
        second = await capacity_service.generate_slots(
            session, 7, future_date + timedelta(days=1), future_date + timedelta(days=3), total_capacity=20
        )
        await session.commit()
    assert second["created"] == 4
    assert second["skipped"] == 8

    async with session_factory() as session:
        kept = await capacity_service.read_slot(session, 7, future_date + timedelta(days=1), "12:00")
        added = await capacity_service.read_slot(session, 7, future_date + timedelta(days=3), "12:00")
    assert kept.total_capacity == 100
    assert added.total_capacity == 20


@pytest.mark.asyncio
async def test_generate_slots_rejects_bad_ranges(db_session, future_date):
    with pytest.raises(ValidationError):
        await capacity_service.generate_slots(db_session, 1, future_date, future_date - timedelta(days=1))
    with pytest.raises(ValidationError):
        await capacity_service.generate_slots(db_session, 1, future_date, future_date + timedelta(days=400))
