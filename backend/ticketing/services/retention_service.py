"""
Retention sweeper: prunes operational tables on a schedule.

Each table is cleaned in its own session and transaction. A failure is
reported for that table only; the other deletions still run. Orders and
purchased tickets are never touched here.
"""

from typing import Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import async_sessionmaker

from ticketing.core import timezone as tz
from ticketing.core.config import Settings, get_settings
from ticketing.core.logging import get_logger
from ticketing.core.metrics import record_retention
from ticketing.models.audit import Reservation, StockHold, WebhookLog

logger = get_logger(__name__)


def _cleanup_plan(settings: Settings) -> list[tuple]:
    """(name, cutoff, statement builder) per table."""
    webhook_cutoff = tz.days_ago_utc(settings.RETENTION_WEBHOOK_LOGS_DAYS)
    pending_cutoff = tz.days_ago_utc(settings.RETENTION_RESERVATIONS_PENDING_DAYS)
    stale_cutoff = tz.days_ago_utc(settings.RETENTION_RESERVATIONS_STALE_DAYS)
    holds_cutoff = tz.days_ago_utc(settings.RETENTION_STOCK_HOLDS_DAYS)

    return [
        (
            "webhook_logs",
            webhook_cutoff,
            delete(WebhookLog).where(WebhookLog.processed_at < webhook_cutoff),
        ),
        (
            "reservations_pending",
            pending_cutoff,
            delete(Reservation).where(
                Reservation.status == "pending",
                Reservation.expires_at < pending_cutoff,
            ),
        ),
        (
            "reservations_stale",
            stale_cutoff,
            delete(Reservation).where(
                Reservation.status.in_(["expired", "cancelled"]),
                Reservation.updated_at < stale_cutoff,
            ),
        ),
        (
            "stock_holds",
            holds_cutoff,
            delete(StockHold).where(StockHold.reserved_until < holds_cutoff),
        ),
    ]


async def run_retention_sweep(session_factory: async_sessionmaker, settings: Optional[Settings] = None) -> dict:
    settings = settings or get_settings()
    results: dict[str, dict] = {}
    cutoffs: dict[str, str] = {}

    for name, cutoff, statement in _cleanup_plan(settings):
        cutoffs[name] = cutoff.isoformat()
        try:
            async with session_factory() as session:
                result = await session.execute(statement.execution_options(synchronize_session=False))
                deleted = result.rowcount or 0
                await session.commit()
        except Exception as e:
            # Closing the session rolls back whatever the failed table left open
            logger.error("retention_cleanup_failed", table=name, error=str(e), exc_info=True)
            results[name] = {"deleted": 0, "error": str(e)}
            continue

        record_retention(name, deleted)
        results[name] = {"deleted": deleted, "error": None}

    logger.info(
        "retention_sweep_completed",
        **{f"{name}_deleted": outcome["deleted"] for name, outcome in results.items()},
        failures=sum(1 for outcome in results.values() if outcome["error"]),
    )
    return {"results": results, "cutoffs": cutoffs}
