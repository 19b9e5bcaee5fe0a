"""
Tests for the scheduled jobs: ticket expiry, retention sweep and
stuck-order reconciliation.
"""

from datetime import time, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select, text

from ticketing.core import timezone as tz
from ticketing.core.config import get_settings
from ticketing.models import Order, PurchasedTicket, Reservation, StockHold, WebhookLog
from ticketing.services.retention_service import run_retention_sweep


async def _add_ticket(session_factory, order_item_id, valid_date, code):
    async with session_factory() as session:
        session.add(
            PurchasedTicket(
                ticket_code=code,
                order_item_id=order_item_id,
                user_id="user-1",
                ticket_id=1,
                valid_date=valid_date,
                time_slot=None,
                status="active",
                queue_overflow=False,
            )
        )
        await session.commit()


@pytest.mark.asyncio
async def test_expire_tickets_job(client: AsyncClient, session_factory, make_order, service_headers):
    """Yesterday's active ticket expires; today's stays usable."""
    today = tz.today()
    await make_order(
        "ORD-EXP",
        [
            {"ticket_id": 1, "selected_date": today - timedelta(days=1), "time_slot": None, "quantity": 1},
            {"ticket_id": 1, "selected_date": today, "time_slot": None, "quantity": 1},
        ],
    )
    await _add_ticket(session_factory, 1, today - timedelta(days=1), "TKT-OLD")
    await _add_ticket(session_factory, 2, today, "TKT-TODAY")

    response = await client.post("/api/v1/jobs/expire-tickets", headers=service_headers)

    assert response.status_code == 200
    assert response.json() == {"expired": 1, "ticket_codes": ["TKT-OLD"]}

    again = await client.post("/api/v1/jobs/expire-tickets", headers=service_headers)
    assert again.json()["expired"] == 0

    today_ticket = await client.get("/api/v1/tickets/TKT-TODAY", headers=service_headers)
    assert today_ticket.json()["valid_today"] is True


@pytest.mark.asyncio
async def test_jobs_require_service_token(client: AsyncClient):
    assert (await client.post("/api/v1/jobs/expire-tickets")).status_code == 401
    assert (
        await client.post("/api/v1/jobs/retention-sweep", headers={"X-Service-Token": "wrong"})
    ).status_code == 401


async def _seed_retention_rows(session_factory):
    now = tz.utcnow()
    async with session_factory() as session:
        session.add_all(
            [
                WebhookLog(event_type="ticket_order_processed", processed_at=now - timedelta(days=91)),
                WebhookLog(event_type="ticket_order_processed", processed_at=now - timedelta(days=1)),
                Reservation(ticket_id=1, status="pending", expires_at=now - timedelta(days=8)),
                Reservation(ticket_id=1, status="pending", expires_at=now - timedelta(days=1)),
                Reservation(
                    ticket_id=1,
                    status="cancelled",
                    expires_at=now - timedelta(days=40),
                    updated_at=now - timedelta(days=31),
                ),
                Reservation(ticket_id=1, status="confirmed", expires_at=now - timedelta(days=40)),
                StockHold(product_variant_id=1, reserved_until=now - timedelta(days=8)),
                StockHold(product_variant_id=1, reserved_until=now),
            ]
        )
        await session.commit()


@pytest.mark.asyncio
async def test_retention_sweep_deletes_only_old_rows(session_factory):
    await _seed_retention_rows(session_factory)

    summary = await run_retention_sweep(session_factory, get_settings())

    assert {name: r["deleted"] for name, r in summary["results"].items()} == {
        "webhook_logs": 1,
        "reservations_pending": 1,
        "reservations_stale": 1,
        "stock_holds": 1,
    }
    assert all(r["error"] is None for r in summary["results"].values())
    assert set(summary["cutoffs"]) == set(summary["results"])

    async with session_factory() as session:
        assert len((await session.execute(select(WebhookLog))).scalars().all()) == 1
        assert len((await session.execute(select(Reservation))).scalars().all()) == 2
        assert len((await session.execute(select(StockHold))).scalars().all()) == 1

    rerun = await run_retention_sweep(session_factory, get_settings())
    assert all(r["deleted"] == 0 for r in rerun["results"].values())


@pytest.mark.asyncio
async def test_retention_failure_is_isolated_per_table(session_factory):
    """A broken table reports its error; the others are still cleaned."""
    await _seed_retention_rows(session_factory)
    async with session_factory() as session:
        await session.execute(text("DROP TABLE stock_holds"))
        await session.commit()

    summary = await run_retention_sweep(session_factory, get_settings())

    assert summary["results"]["stock_holds"]["deleted"] == 0
    assert summary["results"]["stock_holds"]["error"]
    assert summary["results"]["webhook_logs"] == {"deleted": 1, "error": None}

    # recreate so teardown can drop it
    async with session_factory() as session:
        await session.run_sync(lambda sync_session: StockHold.__table__.create(sync_session.connection()))
        await session.commit()


class _UnreachableSession:
    """Session stand-in whose connection attempt is refused."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def execute(self, statement):
        raise ConnectionRefusedError("connection refused")


@pytest.mark.asyncio
async def test_retention_survives_connection_error_on_one_table(session_factory):
    """A refused connection for one table is reported; the following tables are still cleaned."""
    await _seed_retention_rows(session_factory)
    calls = {"n": 0}

    def flaky_factory():
        calls["n"] += 1
        if calls["n"] == 2:
            return _UnreachableSession()
        return session_factory()

    summary = await run_retention_sweep(flaky_factory, get_settings())

    assert summary["results"]["reservations_pending"] == {"deleted": 0, "error": "connection refused"}
    assert summary["results"]["webhook_logs"] == {"deleted": 1, "error": None}
    assert summary["results"]["reservations_stale"] == {"deleted": 1, "error": None}
    assert summary["results"]["stock_holds"] == {"deleted": 1, "error": None}

    async with session_factory() as session:
        assert len((await session.execute(select(Reservation))).scalars().all()) == 3


@pytest.mark.asyncio
async def test_retention_endpoint(client: AsyncClient, session_factory, service_headers):
    await _seed_retention_rows(session_factory)
    response = await client.post("/api/v1/jobs/retention-sweep", headers=service_headers)
    assert response.status_code == 200
    assert response.json()["results"]["webhook_logs"]["deleted"] == 1


@pytest.mark.asyncio
async def test_reconcile_completes_stuck_paid_order(
    client: AsyncClient, session_factory, make_order, make_slot, service_headers, future_date
):
    """A paid order that never got its tickets is finished by the reconcile job."""
    await make_slot(1, future_date, time(9, 0))
    await make_order(
        "ORD-STUCK",
        [{"ticket_id": 1, "selected_date": future_date, "time_slot": time(9, 0), "quantity": 3}],
        status="paid",
    )
    await make_order(
        "ORD-DEAD",
        [{"ticket_id": 1, "selected_date": future_date, "time_slot": time(9, 0), "quantity": 1}],
        status="expired",
    )

    response = await client.post("/api/v1/jobs/reconcile", headers=service_headers)

    assert response.status_code == 200
    assert response.json() == {"checked": 2, "fixed": 1, "released": 1, "errors": []}

    async with session_factory() as session:
        tickets = (await session.execute(select(PurchasedTicket))).scalars().all()
        stuck = (await session.execute(select(Order).where(Order.order_number == "ORD-STUCK"))).scalar_one()
    assert len(tickets) == 1
    assert tickets[0].queue_number == 1
    assert stuck.tickets_issued_at is not None

    second = await client.post("/api/v1/jobs/reconcile", headers=service_headers)
    assert second.json()["checked"] == 0
