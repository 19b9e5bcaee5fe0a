"""
Capacity slot model: finite capacity per (ticket, date, session).

Key design decisions:
- `time_slot` NULL is the all-day bucket for a date
- `version` enables optimistic locking; every mutation bumps it
- reserved + sold <= total is enforced when allocating, not as a CHECK,
  because paid tickets are allowed to oversell (flagged via queue overflow)
"""

from sqlalchemy import Column, Date, Index, Integer, Time, UniqueConstraint, CheckConstraint

from ticketing.db.base import Base, TimestampMixin


class CapacitySlot(Base, TimestampMixin):
    __tablename__ = "capacity_slots"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(Integer, nullable=False)
    date = Column(Date, nullable=False)
    time_slot = Column(Time, nullable=True)
    total_capacity = Column(Integer, nullable=False)
    reserved_capacity = Column(Integer, nullable=False, default=0)
    sold_capacity = Column(Integer, nullable=False, default=0)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("ticket_id", "date", "time_slot", name="uq_capacity_slot"),
        CheckConstraint("total_capacity >= 0", name="check_total_capacity_non_negative"),
        CheckConstraint("reserved_capacity >= 0", name="check_reserved_capacity_non_negative"),
        CheckConstraint("sold_capacity >= 0", name="check_sold_capacity_non_negative"),
        Index("ix_capacity_slots_ticket_date", "ticket_id", "date"),
    )

    @property
    def available_capacity(self) -> int:
        return max(self.total_capacity - self.reserved_capacity - self.sold_capacity, 0)

    def __repr__(self) -> str:
        return (
            f"<CapacitySlot(ticket={self.ticket_id}, date={self.date}, slot={self.time_slot}, "
            f"sold={self.sold_capacity}/{self.total_capacity}, v={self.version})>"
        )
