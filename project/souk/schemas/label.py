# souk/schemas/label.py

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class ShippingLabel(BaseModel):
    """PDF в списке не отдаётся, только признак его наличия."""
    id: int
    order_id: int
    provider_name: Optional[str] = None
    tracking_number: Optional[str] = None
    label_url: Optional[str] = None
    has_pdf: bool = False
    created_at: datetime

    model_config = {"from_attributes": True}


class BatchDownloadRequest(BaseModel):
    tracking_numbers: List[str] = Field(min_length=1)


class SendToCarrierResponse(BaseModel):
    order_id: int
    status: str
    label: ShippingLabel
