# souk/carriers/generic.py
"""
Перевозчики с плоским JSON-контрактом: OZON, CATHEDIS, SENDIT.
Схема авторизации у них разная, поэтому ключ передаётся сразу
в двух заголовках: Authorization: Bearer и X-API-Key.
"""

import base64

import httpx

from souk.carriers.base import (
    FailureKind,
    LabelDownload,
    QuoteResult,
    ShipmentCarrier,
    ShipmentCreated,
    ShipmentFailed,
    ShipmentResult,
    TrackingResult,
    decode_quote,
    describe_http_error,
    pick,
)


def build_shipment_payload(order) -> dict:
    return {
        "order_id": str(order.id),
        "recipient": {
            "name": order.customer_name,
            "phone": order.phone,
            "address": order.address,
            "city": order.city,
        },
        "cod_amount": float(order.cod_amount),
        "notes": order.notes or "",
        "items": [
            {
                "product_id": item.product_id,
                "quantity": item.quantity,
                "unit_price": float(item.unit_price),
                "name": item.product.title if item.product else f"PROD-{item.product_id}",
            }
            for item in order.items
        ],
    }


class GenericCarrier(ShipmentCarrier):
    def headers(self) -> dict[str, str]:
        headers = super().headers()
        headers["X-API-Key"] = self.config.api_key or ""
        return headers

    def decode_created(self, data) -> ShipmentResult:
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            data = data["data"]
        if not isinstance(data, dict):
            return ShipmentFailed(self.name, f"Неожиданный ответ {self.name}: {str(data)[:200]}", FailureKind.UNPARSEABLE)

        tracking = pick(data, "tracking_number", "trackingNumber", "tracking_id")
        error = pick(data, "error", "errors")
        if data.get("success") is False and not error:
            error = pick(data, "message", default="Отказ без описания")
        if error and not tracking:
            return ShipmentFailed(self.name, str(error), FailureKind.REJECTED)
        if not tracking:
            return ShipmentFailed(self.name, f"Трек-номер отсутствует в ответе {self.name}: {str(data)[:200]}", FailureKind.UNPARSEABLE)

        return ShipmentCreated(
            self.name,
            tracking_number=str(tracking),
            label_url=pick(data, "label_url", "labelUrl"),
            pdf_base64=pick(data, "pdf_base64", "pdfBase64"),
        )

    async def create_shipment(self, order) -> ShipmentResult:
        try:
            response = await self.request("POST", "create", json=build_shipment_payload(order))
            data = response.json()
        except httpx.HTTPError as e:
            error, kind = describe_http_error(e)
            return ShipmentFailed(self.name, error, kind)
        except ValueError:
            return ShipmentFailed(self.name, f"Ответ {self.name} не является JSON", FailureKind.UNPARSEABLE)
        return self.decode_created(data)

    async def track_shipment(self, tracking_number: str) -> TrackingResult:
        try:
            response = await self.request("GET", "track", {"tracking": tracking_number})
            payload = response.json()
        except httpx.HTTPError as e:
            return TrackingResult(success=False, error=describe_http_error(e)[0])
        except ValueError:
            return TrackingResult(success=False, error=f"Ответ {self.name} не является JSON")

        body = payload.get("data") if isinstance(payload, dict) and isinstance(payload.get("data"), dict) else payload
        status = pick(body, "status", "shipment_status", "state") if isinstance(body, dict) else None
        if status is None:
            status = await self.history_status(tracking_number)
        if status is None:
            return TrackingResult(success=False, payload=payload, error=f"Статус отсутствует в ответе {self.name}")
        return TrackingResult(success=True, status=str(status), payload=payload)

    async def get_quote(self, city: str, weight: float) -> QuoteResult:
        try:
            response = await self.request("POST", "quote", json={"city": city, "weight": weight})
            data = response.json()
        except httpx.HTTPError as e:
            return QuoteResult(success=False, error=describe_http_error(e)[0])
        except ValueError:
            return QuoteResult(success=False, error=f"Ответ {self.name} не является JSON")
        return decode_quote(data, self.name)

    async def download_labels(self, tracking_numbers: list[str]) -> LabelDownload:
        try:
            response = await self.request("POST", "labels", json={"tracking_numbers": tracking_numbers})
        except httpx.HTTPError as e:
            return LabelDownload(success=False, error=describe_http_error(e)[0])

        if response.headers.get("content-type", "").startswith("application/pdf"):
            return LabelDownload(success=True, pdf_base64=base64.b64encode(response.content).decode("ascii"))
        try:
            data = response.json()
        except ValueError:
            return LabelDownload(success=False, error=f"Ответ {self.name} не является ни PDF, ни JSON")
        pdf = pick(data, "pdf_base64", "pdfBase64", "pdf") if isinstance(data, dict) else None
        if not pdf:
            return LabelDownload(success=False, error=f"Этикетка отсутствует в ответе {self.name}")
        return LabelDownload(success=True, pdf_base64=pdf)


class OzonCarrier(GenericCarrier):
    name = "OZON"
    endpoints = {
        "create": "/parcels/create",
        "track": "/parcels/{tracking}/track",
        "history": "/parcels/{tracking}/history",
        "quote": "/tariffs",
        "labels": "/parcels/labels",
    }


class CathedisCarrier(GenericCarrier):
    name = "CATHEDIS"
    endpoints = {
        "create": "/api/deliveries",
        "track": "/api/deliveries/{tracking}",
        "history": "/api/deliveries/{tracking}/history",
        "quote": "/api/deliveries/quote",
        "labels": "/api/deliveries/labels",
    }


class SenditCarrier(GenericCarrier):
    name = "SENDIT"
    endpoints = {
        "create": "/deliveries",
        "track": "/deliveries/{tracking}",
        "history": "/deliveries/{tracking}/history",
        "quote": "/quotes",
        "labels": "/deliveries/labels",
    }
