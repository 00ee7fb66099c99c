# souk/schemas/setting.py

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class Setting(BaseModel):
    key: str
    value: Optional[str] = None
    updated_at: datetime

    model_config = {"from_attributes": True}
