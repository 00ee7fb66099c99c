# souk/schemas/notification.py

from typing import Literal, Optional

from pydantic import BaseModel, Field


class NotificationRequest(BaseModel):
    phone: str = Field(min_length=8)
    message: str = Field(min_length=1)
    channel: Literal["sms", "whatsapp"]
    order_id: Optional[int] = None


class NotificationResult(BaseModel):
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
