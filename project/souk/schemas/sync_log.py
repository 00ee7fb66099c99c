# souk/schemas/sync_log.py

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class SyncLog(BaseModel):
    id: int
    order_id: Optional[int] = None
    action: str
    result: str
    details: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}
