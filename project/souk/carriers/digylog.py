# souk/carriers/digylog.py
"""
DIGYLOG: заказы отправляются пакетом (orders: [...]) даже по одному,
продавец идентифицируется магазином (store) и сетью (network).
"""

import base64
from dataclasses import dataclass

import httpx

from souk.carriers.base import (
    CarrierConfig,
    CarrierConfigError,
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

DEFAULT_REFERER = "https://apiseller.digylog.com"


@dataclass
class DigylogConfig(CarrierConfig):
    store: str | None = None
    network: int | None = None
    mode: int = 1
    referer: str = DEFAULT_REFERER

    required = ("api_url", "api_key", "store", "network")

    @classmethod
    def from_values(cls, base: CarrierConfig) -> "DigylogConfig":
        extra = base.extra
        network = extra.get("network") or None
        mode = extra.get("mode") or "1"
        try:
            network = int(network) if network is not None else None
            mode = int(mode)
        except ValueError:
            raise CarrierConfigError(
                f"DIGYLOG: network и mode должны быть числами (network={extra.get('network')!r}, mode={extra.get('mode')!r})"
            )
        return cls(
            name=base.name,
            enabled=base.enabled,
            api_url=base.api_url,
            api_key=base.api_key,
            account_id=base.account_id,
            extra=extra,
            store=extra.get("store") or None,
            network=network,
            mode=mode,
            referer=extra.get("referer") or DEFAULT_REFERER,
        )


def build_order_payload(order, config: DigylogConfig) -> dict:
    refs = [
        {
            "designation": item.product.title if item.product else f"PROD-{item.product_id}",
            "quantity": item.quantity,
        }
        for item in order.items
    ]
    return {
        "mode": config.mode,
        "network": config.network,
        "store": config.store,
        "status": 1,            # отправить сразу
        "checkDuplicate": 1,
        "orders": [
            {
                "num": str(order.id),
                "type": 1,
                "name": order.customer_name,
                "phone": order.phone,
                "address": order.address,
                "city": order.city,
                "price": float(order.cod_amount),
                "port": 1,      # доставку оплачивает получатель
                "note": order.notes or "",
                "refs": refs,
            }
        ],
    }


def decode_create_response(data, api_url: str) -> ShipmentResult:
    """
    Разбор ответа на создание заказа. Встречаются формы:
    [{"tracking": ..., "bl": ...}], {"tracking": ...}, {"error": ...} и [{"error": ...}].
    """
    entry = data
    if isinstance(data, list):
        if not data:
            return ShipmentFailed("DIGYLOG", "DIGYLOG вернул пустой ответ", FailureKind.UNPARSEABLE)
        entry = data[0]

    if not isinstance(entry, dict):
        return ShipmentFailed("DIGYLOG", f"Неожиданный ответ DIGYLOG: {str(data)[:200]}", FailureKind.UNPARSEABLE)

    error = pick(entry, "error", "errors", "message_error")
    tracking = pick(entry, "tracking", "traking", "tracking_number")
    if error and not tracking:
        return ShipmentFailed("DIGYLOG", str(error), FailureKind.REJECTED)
    if not tracking:
        return ShipmentFailed("DIGYLOG", f"Трек-номер отсутствует в ответе DIGYLOG: {str(data)[:200]}", FailureKind.UNPARSEABLE)

    bl = entry.get("bl")
    label_url = f"{api_url.rstrip('/')}/bl/{bl}/pdf" if bl not in (None, "") else None
    return ShipmentCreated("DIGYLOG", tracking_number=str(tracking), label_url=label_url)


def extract_status(payload) -> str | None:
    if isinstance(payload, list):
        payload = payload[0] if payload else {}
    if not isinstance(payload, dict):
        return None
    status = pick(payload, "status", "statusLabel", "state", "etat")
    if isinstance(status, dict):
        status = pick(status, "label", "name", "code")
    return str(status) if status is not None else None


class DigylogCarrier(ShipmentCarrier):
    name = "DIGYLOG"
    endpoints = {
        "create": "/orders",
        "track": "/order/{tracking}/infos",
        "history": "/order/{tracking}/history",
        "quote": "/fees",
        "labels": "/labels",
    }

    config: DigylogConfig

    def headers(self) -> dict[str, str]:
        headers = super().headers()
        headers["Referer"] = self.config.referer
        return headers

    async def create_shipment(self, order) -> ShipmentResult:
        try:
            response = await self.request("POST", "create", json=build_order_payload(order, self.config))
            data = response.json()
        except httpx.HTTPError as e:
            error, kind = describe_http_error(e)
            return ShipmentFailed(self.name, error, kind)
        except ValueError:
            return ShipmentFailed(self.name, "Ответ DIGYLOG не является JSON", FailureKind.UNPARSEABLE)

        return decode_create_response(data, self.config.base_url)

    async def track_shipment(self, tracking_number: str) -> TrackingResult:
        try:
            response = await self.request("GET", "track", {"tracking": tracking_number})
            payload = response.json()
        except httpx.HTTPError as e:
            return TrackingResult(success=False, error=describe_http_error(e)[0])
        except ValueError:
            return TrackingResult(success=False, error="Ответ DIGYLOG не является JSON")

        status = extract_status(payload) or await self.history_status(tracking_number)
        if status is None:
            return TrackingResult(success=False, payload=payload, error="Статус отсутствует в ответе DIGYLOG")
        return TrackingResult(success=True, status=status, payload=payload)

    async def get_quote(self, city: str, weight: float) -> QuoteResult:
        try:
            response = await self.request("POST", "quote", json={"city": city, "weight": weight})
            data = response.json()
        except httpx.HTTPError as e:
            return QuoteResult(success=False, error=describe_http_error(e)[0])
        except ValueError:
            return QuoteResult(success=False, error="Ответ DIGYLOG не является JSON")

        return decode_quote(data, self.name)

    async def download_labels(self, tracking_numbers: list[str]) -> LabelDownload:
        try:
            response = await self.request("POST", "labels", json={"orders": tracking_numbers, "type": 1})
        except httpx.HTTPError as e:
            return LabelDownload(success=False, error=describe_http_error(e)[0])

        if response.headers.get("content-type", "").startswith("application/pdf"):
            return LabelDownload(success=True, pdf_base64=base64.b64encode(response.content).decode("ascii"))

        try:
            data = response.json()
        except ValueError:
            return LabelDownload(success=False, error="Ответ DIGYLOG не является ни PDF, ни JSON")
        pdf = pick(data, "pdf", "pdf_base64", "file") if isinstance(data, dict) else None
        if not pdf:
            error = pick(data, "error", "message") if isinstance(data, dict) else None
            return LabelDownload(success=False, error=str(error or "Этикетка отсутствует в ответе DIGYLOG"))
        return LabelDownload(success=True, pdf_base64=pdf)
