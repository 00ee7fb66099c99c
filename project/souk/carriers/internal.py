# souk/carriers/internal.py
"""Внутренний перевозчик: используется, когда ни один внешний не настроен."""

import time

from souk.carriers.base import (
    CarrierConfig,
    QuoteResult,
    ShipmentCarrier,
    ShipmentCreated,
    ShipmentResult,
    TrackingResult,
)

INTERNAL_PROVIDER = "Internal"


def make_tracking_number(order_id: int, now_ms: int | None = None) -> str:
    """TRK + 7 последних цифр времени в мс + id заказа в 6 знаков (всего 13 цифр)."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"TRK{now_ms % 10_000_000:07d}{order_id % 1_000_000:06d}"


class InternalCarrier(ShipmentCarrier):
    name = INTERNAL_PROVIDER

    def __init__(self, config: CarrierConfig | None = None, client=None):
        super().__init__(config or CarrierConfig(name=INTERNAL_PROVIDER), client)

    async def create_shipment(self, order) -> ShipmentResult:
        return ShipmentCreated(INTERNAL_PROVIDER, tracking_number=make_tracking_number(order.id))

    async def track_shipment(self, tracking_number: str) -> TrackingResult:
        # опрашивать нечего
        return TrackingResult(success=False, error="Внутренний перевозчик не отслеживает отправления")

    async def get_quote(self, city: str, weight: float) -> QuoteResult:
        return QuoteResult(success=False, error="Внутренний перевозчик не рассчитывает тарифы")
