"""
Scheduled job triggers for an external cron or operators.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.config import get_settings
from ticketing.core.security import require_service_token
from ticketing.db.session import get_db, get_session_factory
from ticketing.services.reconciliation_service import reconcile_stuck_orders
from ticketing.services.retention_service import run_retention_sweep
from ticketing.services.ticket_service import expire_tickets

router = APIRouter(prefix="/jobs", tags=["Jobs"], dependencies=[Depends(require_service_token)])


@router.post("/expire-tickets")
async def run_ticket_expiry(db: AsyncSession = Depends(get_db)):
    """Expire active tickets dated before today (business timezone)."""
    return await expire_tickets(db)


@router.post("/retention-sweep")
async def run_retention(session_factory=Depends(get_session_factory)):
    """Delete webhook logs, reservations and stock holds past their retention."""
    return await run_retention_sweep(session_factory, get_settings())


@router.post("/reconcile")
async def run_reconcile(
    limit: int = Query(default=100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """Finish issuance or capacity release left incomplete by a failed delivery."""
    return await reconcile_stuck_orders(db, limit=limit)
