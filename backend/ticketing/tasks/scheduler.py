"""
Background loops for the scheduled jobs.

Started from the application lifespan when SCHEDULER_ENABLED is set. Each
loop runs its job, logs the outcome, then sleeps for its interval. A failed
run is logged and retried on the next tick; it never kills the loop. With
several API workers, enable the scheduler on one of them only or trigger the
/api/v1/jobs endpoints from an external cron instead.
"""

import asyncio
from typing import Awaitable, Callable

from ticketing.core.config import get_settings
from ticketing.core.logging import get_logger
from ticketing.db.session import get_session_factory
from ticketing.services.retention_service import run_retention_sweep
from ticketing.services.ticket_service import expire_tickets

logger = get_logger(__name__)


async def _expiry_job() -> dict:
    async with get_session_factory()() as session:
        return await expire_tickets(session)


async def _retention_job() -> dict:
    return await run_retention_sweep(get_session_factory(), get_settings())


async def run_periodically(name: str, job: Callable[[], Awaitable[dict]], interval_seconds: float) -> None:
    logger.info("scheduler_loop_started", job=name, interval_seconds=interval_seconds)
    while True:
        try:
            outcome = await job()
            logger.info("scheduled_job_completed", job=name, outcome=outcome)
        except Exception:
            logger.exception("scheduled_job_failed", job=name)
        await asyncio.sleep(interval_seconds)


def start_scheduler() -> list[asyncio.Task]:
    settings = get_settings()
    return [
        asyncio.create_task(
            run_periodically("ticket_expiry", _expiry_job, settings.EXPIRY_SWEEP_INTERVAL_SECONDS)
        ),
        asyncio.create_task(
            run_periodically("retention_sweep", _retention_job, settings.RETENTION_SWEEP_INTERVAL_SECONDS)
        ),
    ]


async def stop_scheduler(tasks: list[asyncio.Task]) -> None:
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    logger.info("scheduler_stopped", jobs=len(tasks))
