# souk/carriers/base.py
"""
Общий интерфейс перевозчиков.

Все адаптеры реализуют ShipmentCarrier. Ошибки сети, HTTP и ответы с полем
ошибки превращаются в объекты-результаты: через границу адаптера исключения
не проходят.
"""

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx


class CarrierConfigError(ValueError):
    """Конфигурация перевозчика включена, но неполна или некорректна."""


class FailureKind(str, enum.Enum):
    NETWORK = "network"            # таймаут, обрыв соединения
    HTTP_STATUS = "http_status"    # ответ не 2xx
    REJECTED = "rejected"          # перевозчик вернул поле ошибки
    UNPARSEABLE = "unparseable"    # ответ не удалось разобрать


@dataclass
class CarrierConfig:
    name: str
    enabled: bool = False
    api_url: str | None = None
    api_key: str | None = None
    account_id: str | None = None
    extra: dict[str, str] = field(default_factory=dict)

    required = ("api_url", "api_key")

    def missing_fields(self) -> list[str]:
        return [f for f in self.required if not getattr(self, f)]

    @property
    def is_ready(self) -> bool:
        return self.enabled and not self.missing_fields()

    @property
    def base_url(self) -> str:
        return (self.api_url or "").rstrip("/")


@dataclass
class ShipmentCreated:
    provider_name: str
    tracking_number: str | None = None
    label_url: str | None = None
    pdf_base64: str | None = None
    success: bool = field(default=True, init=False)


@dataclass
class ShipmentFailed:
    provider_name: str
    error: str
    kind: FailureKind = FailureKind.REJECTED
    success: bool = field(default=False, init=False)


ShipmentResult = ShipmentCreated | ShipmentFailed


@dataclass
class TrackingResult:
    success: bool
    status: str | None = None               # статус перевозчика как есть
    payload: Any = None
    error: str | None = None


@dataclass
class QuoteResult:
    success: bool
    price: float | None = None
    estimated_days: int | None = None
    error: str | None = None


@dataclass
class LabelDownload:
    success: bool
    pdf_base64: str | None = None
    error: str | None = None


def pick(data: dict, *keys: str, default=None):
    """Первое непустое значение из вариантов названия поля."""
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return default


def as_int(value) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def decode_quote(data, carrier_name: str) -> QuoteResult:
    if isinstance(data, list):
        data = data[0] if data else {}
    price = pick(data, "price", "rate", "fees") if isinstance(data, dict) else None
    try:
        price = float(price)
    except (TypeError, ValueError):
        return QuoteResult(success=False, error=f"Тариф отсутствует в ответе {carrier_name}: {str(data)[:200]}")
    days = pick(data, "estimated_days", "estimatedDays", "delay")
    return QuoteResult(success=True, price=price, estimated_days=as_int(days))


def describe_http_error(exc: Exception) -> tuple[str, FailureKind]:
    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        body = response.text[:200].replace("\n", " ")
        return f"HTTP {response.status_code}: {body or response.reason_phrase}", FailureKind.HTTP_STATUS
    if isinstance(exc, httpx.TimeoutException):
        return f"Таймаут запроса к перевозчику: {exc}", FailureKind.NETWORK
    return f"Ошибка сети: {exc}", FailureKind.NETWORK


class ShipmentCarrier(ABC):
    """Абстрактный перевозчик: создание отправления, трекинг, тариф, этикетки."""

    name: str = ""
    endpoints: dict[str, str] = {}

    def __init__(self, config: CarrierConfig, client: httpx.AsyncClient):
        self.config = config
        self.client = client

    def url(self, endpoint: str, **params) -> str:
        return self.config.base_url + self.endpoints[endpoint].format(**params)

    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }

    async def request(self, method: str, endpoint: str, path_params: dict | None = None, **kwargs) -> httpx.Response:
        """HTTP-вызов к перевозчику; не 2xx -> httpx.HTTPStatusError."""
        response = await self.client.request(
            method,
            self.url(endpoint, **(path_params or {})),
            headers=self.headers(),
            **kwargs,
        )
        response.raise_for_status()
        return response

    @abstractmethod
    async def create_shipment(self, order) -> ShipmentResult:
        ...

    @abstractmethod
    async def track_shipment(self, tracking_number: str) -> TrackingResult:
        ...

    @abstractmethod
    async def get_quote(self, city: str, weight: float) -> QuoteResult:
        ...

    async def download_labels(self, tracking_numbers: list[str]) -> LabelDownload:
        return LabelDownload(success=False, error=f"{self.name}: загрузка этикеток не поддерживается")

    async def history_status(self, tracking_number: str) -> str | None:
        """Статус последнего события из истории отправления (события по возрастанию времени)."""
        if "history" not in self.endpoints:
            return None
        try:
            response = await self.request("GET", "history", {"tracking": tracking_number})
            events = response.json()
        except (httpx.HTTPError, ValueError):
            return None

        if isinstance(events, dict):
            events = pick(events, "data", "history", "events", default=[])
        if not isinstance(events, list) or not events or not isinstance(events[-1], dict):
            return None
        status = pick(events[-1], "status", "statusLabel", "state", "etat")
        if isinstance(status, dict):
            status = pick(status, "label", "name", "code")
        return str(status) if status is not None else None
