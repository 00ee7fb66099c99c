# souk/schemas/analytics.py

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class AdCostCreate(BaseModel):
    amount: Decimal = Field(gt=0)
    description: Optional[str] = None
    date: datetime


class AdCost(AdCostCreate):
    id: int
    created_at: datetime

    model_config = {"from_attributes": True}


class TopProduct(BaseModel):
    id: int
    title: str
    quantity: int
    revenue: Decimal


class DayStat(BaseModel):
    date: str
    count: int
    revenue: Decimal


class Analytics(BaseModel):
    revenue: Decimal
    product_costs: Decimal
    delivery_costs: Decimal
    ad_costs: Decimal
    profit: Decimal
    orders_count: int
    top_products: List[TopProduct]
    orders_by_day: List[DayStat]
