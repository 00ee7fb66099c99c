# souk/schemas/carrier.py

from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class SyncConfirmedRequest(BaseModel):
    # пусто - все подтверждённые заказы
    order_ids: Optional[List[int]] = None


class BulkSendItem(BaseModel):
    order_id: int
    customer_name: str
    status: Literal["success", "error", "skipped"]
    message: Optional[str] = None
    tracking_number: Optional[str] = None


class BulkSendResult(BaseModel):
    total: int
    sent: int
    errors: int
    skipped: int
    results: List[BulkSendItem]


class SyncStatusesResult(BaseModel):
    checked: int
    synced: int
    errors: int
    skipped: int
    details: List[str]


class QuoteRequest(BaseModel):
    city: str = Field(min_length=2)
    weight: float = Field(default=1.0, gt=0)
    carrier: Optional[str] = None


class QuoteResponse(BaseModel):
    carrier: str
    success: bool
    price: Optional[Decimal] = None
    estimated_days: Optional[int] = None
    error: Optional[str] = None


class WebhookResult(BaseModel):
    order_id: int
    status: str
    previous_status: str
    updated: bool
