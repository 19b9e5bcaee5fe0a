"""
Pydantic schemas for product (pickup) order reads.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class ProductOrderItemResponse(BaseModel):
    id: int
    product_variant_id: int
    quantity: int
    unit_price: int

    model_config = {"from_attributes": True}


class ProductOrderResponse(BaseModel):
    order_number: str
    status: str
    payment_status: str
    total: int
    pickup_code: Optional[str] = None
    pickup_status: Optional[str] = None
    pickup_expires_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    items: list[ProductOrderItemResponse]

    model_config = {"from_attributes": True}
