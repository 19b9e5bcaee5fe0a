"""
Capacity store: versioned per-(ticket, date, session) counters.

CONCURRENCY STRATEGY: Optimistic Locking with Bounded Retry
===========================================================

Problem:
  Several webhook deliveries (or a webhook and a manual sync) finalize
  tickets for the same session at once. Each reads sold_capacity=99,
  writes 100, and one purchase silently disappears.

Solution:
  Every slot carries a `version` column.

  1. Read the slot's current counters and version
  2. UPDATE capacity_slots SET sold_capacity = :old + :delta, version = :v + 1
     WHERE id = :id AND version = :v
  3. If rows_affected == 0 a ConflictError is raised, another writer won -> go to 1

  After CAPACITY_CAS_MAX_ATTEMPTS failed rounds the increment is dropped.
  This is soft accounting: under extreme contention sold_capacity can
  undercount, but an accepted write is never applied twice and two writes
  never share a version. ConflictError never leaves this module.

  finalize_sold is the paid-checkout variant: the same write also takes the
  quantity off reserved_capacity (floored at 0), so a hold becomes a sale
  instead of being counted twice.

  Neither commits nor rolls back: the caller claims the work (e.g. stamps
  order_items.capacity_finalized_at) in the same transaction and commits
  both together, so a crash loses neither or both.

Allocation (reserve) is stricter: the WHERE clause also checks
reserved + sold + quantity <= total, so a reservation can never push a
slot past its capacity.
"""

from datetime import date, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core import timezone as tz
from ticketing.core.config import get_settings
from ticketing.core.errors import ConflictError, ValidationError
from ticketing.core.logging import get_logger
from ticketing.core.metrics import capacity_cas_retries, capacity_increments_dropped
from ticketing.models.capacity import CapacitySlot

logger = get_logger(__name__)


def slot_filter(column, time_slot):
    """SQL equivalent of `IS NOT DISTINCT FROM` for the nullable time_slot."""
    return column.is_(None) if time_slot is None else column == time_slot


def _slot_where(ticket_id: int, slot_date: date, time_slot):
    return (
        CapacitySlot.ticket_id == ticket_id,
        CapacitySlot.date == slot_date,
        slot_filter(CapacitySlot.time_slot, time_slot),
    )


async def read_slot(
    db: AsyncSession,
    ticket_id: int,
    slot_date: date,
    time_slot=None,
) -> Optional[CapacitySlot]:
    """Current state of a slot, or None when it was never generated."""
    time_slot = tz.parse_time_slot(time_slot)
    result = await db.execute(
        select(CapacitySlot)
        .where(*_slot_where(ticket_id, slot_date, time_slot))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _read_counter(db: AsyncSession, ticket_id: int, slot_date: date, time_slot):
    result = await db.execute(
        select(
            CapacitySlot.id,
            CapacitySlot.sold_capacity,
            CapacitySlot.reserved_capacity,
            CapacitySlot.version,
        ).where(*_slot_where(ticket_id, slot_date, time_slot))
    )
    return result.one_or_none()


async def _write_counter(db: AsyncSession, slot_id: int, expected_version: int, **values) -> None:
    """Versioned write. Raises ConflictError when the slot moved past expected_version."""
    result = await db.execute(
        update(CapacitySlot)
        .where(CapacitySlot.id == slot_id, CapacitySlot.version == expected_version)
        .values(version=expected_version + 1, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError(f"Capacity slot {slot_id} changed after version {expected_version}")


async def _record_sale(
    db: AsyncSession,
    ticket_id: int,
    slot_date: date,
    time_slot,
    delta: int,
    consume_reserved: bool,
    max_attempts: Optional[int],
) -> bool:
    if delta <= 0:
        return False

    time_slot = tz.parse_time_slot(time_slot)
    attempts = max_attempts or get_settings().CAPACITY_CAS_MAX_ATTEMPTS

    for attempt in range(1, attempts + 1):
        row = await _read_counter(db, ticket_id, slot_date, time_slot)
        if row is None:
            logger.warning(
                "capacity_slot_missing",
                ticket_id=ticket_id,
                date=str(slot_date),
                time_slot=str(time_slot) if time_slot else None,
            )
            return False

        slot_id, current_sold, current_reserved, current_version = row
        values = {"sold_capacity": current_sold + delta}
        if consume_reserved:
            values["reserved_capacity"] = max(current_reserved - delta, 0)

        try:
            await _write_counter(db, slot_id, current_version, **values)
        except ConflictError:
            capacity_cas_retries.inc()
            logger.info(
                "capacity_cas_retry",
                slot_id=slot_id,
                attempt=attempt,
                reason="version_conflict",
            )
            continue

        logger.info(
            "capacity_sold_incremented",
            slot_id=slot_id,
            delta=delta,
            sold=values["sold_capacity"],
            reserved=values.get("reserved_capacity", current_reserved),
            version=current_version + 1,
            attempt=attempt,
        )
        return True

    capacity_increments_dropped.inc()
    logger.warning(
        "capacity_increment_dropped",
        ticket_id=ticket_id,
        date=str(slot_date),
        time_slot=str(time_slot) if time_slot else None,
        delta=delta,
        attempts=attempts,
    )
    return False


async def increment_sold(
    db: AsyncSession,
    ticket_id: int,
    slot_date: date,
    time_slot,
    delta: int,
    max_attempts: Optional[int] = None,
) -> bool:
    """
    Add `delta` to sold_capacity with compare-and-swap on version.
    Returns True when the write landed, False when there was nothing to do
    or the increment was dropped after exhausting retries.
    """
    return await _record_sale(db, ticket_id, slot_date, time_slot, delta, False, max_attempts)


async def finalize_sold(
    db: AsyncSession,
    ticket_id: int,
    slot_date: date,
    time_slot,
    quantity: int,
    max_attempts: Optional[int] = None,
) -> bool:
    """Convert a checkout hold into a sale in one versioned write."""
    return await _record_sale(db, ticket_id, slot_date, time_slot, quantity, True, max_attempts)


async def reserve(
    db: AsyncSession,
    ticket_id: int,
    slot_date: date,
    time_slot,
    quantity: int,
) -> bool:
    """
    Hold capacity for a checkout. Rejected (False) when the slot is missing
    or the hold would exceed total_capacity.
    """
    if quantity <= 0:
        return False
    time_slot = tz.parse_time_slot(time_slot)
    result = await db.execute(
        update(CapacitySlot)
        .where(
            *_slot_where(ticket_id, slot_date, time_slot),
            CapacitySlot.reserved_capacity + CapacitySlot.sold_capacity + quantity
            <= CapacitySlot.total_capacity,
        )
        .values(
            reserved_capacity=CapacitySlot.reserved_capacity + quantity,
            version=CapacitySlot.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    reserved = result.rowcount == 1
    if not reserved:
        logger.info("capacity_reserve_rejected", ticket_id=ticket_id, date=str(slot_date), quantity=quantity)
    return reserved


async def release_reserved(
    db: AsyncSession,
    ticket_id: int,
    slot_date: date,
    time_slot,
    quantity: int,
) -> bool:
    """Give back held capacity; reserved_capacity never drops below zero."""
    if quantity <= 0:
        return False
    time_slot = tz.parse_time_slot(time_slot)
    for _ in range(get_settings().CAPACITY_CAS_MAX_ATTEMPTS):
        row = await _read_counter(db, ticket_id, slot_date, time_slot)
        if row is None:
            return False
        slot_id, _, reserved, version = row
        try:
            await _write_counter(db, slot_id, version, reserved_capacity=max(reserved - quantity, 0))
        except ConflictError:
            capacity_cas_retries.inc()
            continue
        return True
    logger.warning("capacity_release_dropped", ticket_id=ticket_id, date=str(slot_date), quantity=quantity)
    return False


async def generate_slots(
    db: AsyncSession,
    ticket_id: int,
    start_date: date,
    end_date: date,
    total_capacity: Optional[int] = None,
    time_slots: Optional[list[str]] = None,
) -> dict:
    """
    Create one slot per (date, daily session) in [start_date, end_date].
    Re-running over an overlapping range only adds the missing rows.
    """
    settings = get_settings()
    if end_date < start_date:
        raise ValidationError("end_date must not be before start_date")
    day_count = (end_date - start_date).days + 1
    if day_count > settings.CAPACITY_MAX_GENERATION_DAYS:
        raise ValidationError(f"Range too long: {day_count} days")

    capacity = settings.DEFAULT_SLOT_CAPACITY if total_capacity is None else total_capacity
    slots = [tz.parse_time_slot(s) for s in (time_slots or settings.DAILY_TIME_SLOTS)]

    existing_rows = await db.execute(
        select(CapacitySlot.date, CapacitySlot.time_slot).where(
            CapacitySlot.ticket_id == ticket_id,
            CapacitySlot.date >= start_date,
            CapacitySlot.date <= end_date,
        )
    )
    existing = {(row.date, row.time_slot) for row in existing_rows}

    created = 0
    for offset in range(day_count):
        slot_date = start_date + timedelta(days=offset)
        for slot_time in slots:
            if (slot_date, slot_time) in existing:
                continue
            db.add(
                CapacitySlot(
                    ticket_id=ticket_id,
                    date=slot_date,
                    time_slot=slot_time,
                    total_capacity=capacity,
                    reserved_capacity=0,
                    sold_capacity=0,
                    version=0,
                )
            )
            created += 1
    await db.flush()

    logger.info(
        "capacity_slots_generated",
        ticket_id=ticket_id,
        start=str(start_date),
        end=str(end_date),
        created=created,
        skipped=day_count * len(slots) - created,
    )
    return {
        "ticket_id": ticket_id,
        "days": day_count,
        "created": created,
        "skipped": day_count * len(slots) - created,
    }
