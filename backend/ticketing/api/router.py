"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from ticketing.api.routes import booking_intent, capacity, jobs, orders, payments, session

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(payments.router)
api_router.include_router(orders.orders_router)
api_router.include_router(orders.tickets_router)
api_router.include_router(orders.product_orders_router)
api_router.include_router(capacity.router)
api_router.include_router(booking_intent.router)
api_router.include_router(session.router)
api_router.include_router(jobs.router)
