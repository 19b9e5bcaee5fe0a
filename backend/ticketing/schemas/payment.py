"""
Pydantic schemas for gateway notifications and reconciliation results.
"""

from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field


class PaymentNotification(BaseModel):
    """Inbound notification. Unknown gateway fields are kept for the audit trail."""

    model_config = ConfigDict(extra="allow")

    order_id: str
    status_code: Optional[Any] = None
    gross_amount: Optional[Any] = None
    transaction_status: Optional[str] = None
    fraud_status: Optional[str] = None
    signature_key: Optional[str] = None


class IssuanceSummary(BaseModel):
    tickets_created: int
    tickets_existing: int
    queue_numbered: int
    capacity_applied: int
    capacity_dropped: int
    converted_to_allday: list[str] = Field(default_factory=list)
    skipped: bool = False


class FulfilmentSummary(BaseModel):
    pickup_code: Optional[str] = None
    pickup_status: Optional[str] = None
    status: Optional[str] = None
    stock_issues: list[str] = Field(default_factory=list)
    amount_mismatch: bool = False
    already_done: bool = False


class ReconciliationSummary(BaseModel):
    order_number: str
    previous_status: str
    mapped_status: str
    status: str
    transition_applied: bool
    issuance: Optional[IssuanceSummary] = None
    capacity_released: bool = False
    kind: str = "ticket"
    fulfilment: Optional[FulfilmentSummary] = None
    stock_released: bool = False


class WebhookResponse(BaseModel):
    success: bool
    results: ReconciliationSummary


class SyncRequest(BaseModel):
    order_number: str = Field(min_length=1, max_length=64)
