# souk/schemas/order.py

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class OrderItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(ge=1)


class OrderCreate(BaseModel):
    """
    Заказ с витрины. Цены не передаются: они берутся из товаров.
    """
    customer_name: str = Field(min_length=2)
    phone: str = Field(min_length=8, max_length=20)
    address: str = Field(min_length=3)
    city: str = Field(min_length=2)
    notes: Optional[str] = None
    items: List[OrderItemCreate] = Field(min_length=1)

    @field_validator("customer_name", "phone", "address", "city")
    @classmethod
    def strip_text(cls, value: str) -> str:
        return value.strip()


class OrderItem(BaseModel):
    id: int
    product_id: int
    quantity: int
    unit_price: Decimal
    unit_cost: Decimal

    model_config = {"from_attributes": True}


class Order(BaseModel):
    id: int
    customer_name: str
    phone: str
    address: str
    city: str
    notes: Optional[str] = None
    total_price: Decimal
    delivery_cost: Decimal
    cod_amount: Decimal
    status: str
    carrier_name: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier_status: Optional[str] = None
    synced_to_sheets: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrderDetail(Order):
    items: List[OrderItem] = []


class OrderCreated(BaseModel):
    id: int
    status: str
    total_price: Decimal
    delivery_cost: Decimal
    cod_amount: Decimal

    model_config = {"from_attributes": True}


class DispatchInfo(BaseModel):
    attempted: bool
    success: Optional[bool] = None
    provider_name: Optional[str] = None
    tracking_number: Optional[str] = None
    error: Optional[str] = None


class ConfirmResponse(BaseModel):
    order: Order
    dispatch: DispatchInfo
