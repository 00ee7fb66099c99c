# souk/carriers/registry.py
"""
Реестр перевозчиков и выбор активного.

Порядок выбора: сначала default_carrier, затем остальные в фиксированном
порядке CARRIER_ORDER. Побеждает первый включённый и полностью настроенный,
иначе используется внутренний перевозчик.
"""

import time
from typing import Awaitable, Callable

import httpx

from souk.carriers.base import CarrierConfig, CarrierConfigError, ShipmentCarrier
from souk.carriers.digylog import DigylogCarrier, DigylogConfig
from souk.carriers.generic import CathedisCarrier, OzonCarrier, SenditCarrier
from souk.carriers.internal import INTERNAL_PROVIDER, InternalCarrier

CARRIER_ORDER = ("DIGYLOG", "OZON", "CATHEDIS", "SENDIT")

CARRIERS: dict[str, type[ShipmentCarrier]] = {
    "DIGYLOG": DigylogCarrier,
    "OZON": OzonCarrier,
    "CATHEDIS": CathedisCarrier,
    "SENDIT": SenditCarrier,
}

EXTRA_FIELDS = {
    "DIGYLOG": ("store", "network", "mode", "referer"),
}

TRUE_VALUES = ("1", "true", "yes", "on")


def setting_key(name: str, field: str) -> str:
    return f"carrier_{name.lower()}_{field}"


def build_config(name: str, values: dict[str, str | None]) -> CarrierConfig:
    """
    Типизированная конфигурация перевозчика из плоских настроек
    carrier_<name>_enabled / _api_url / _api_key / _account_id (+ доп. поля).
    """
    name = name.upper()
    if name not in CARRIERS:
        raise CarrierConfigError(f"Неизвестный перевозчик: {name}")

    def get(field):
        value = values.get(setting_key(name, field))
        return value.strip() if isinstance(value, str) and value.strip() else None

    config = CarrierConfig(
        name=name,
        enabled=(get("enabled") or "").lower() in TRUE_VALUES,
        api_url=get("api_url"),
        api_key=get("api_key"),
        account_id=get("account_id"),
        extra={f: get(f) for f in EXTRA_FIELDS.get(name, ()) if get(f) is not None},
    )
    if name == "DIGYLOG":
        return DigylogConfig.from_values(config)
    return config


def make_carrier(config: CarrierConfig, client: httpx.AsyncClient) -> ShipmentCarrier:
    return CARRIERS[config.name](config, client)


def candidate_order(default_carrier: str | None) -> list[str]:
    default = (default_carrier or "").strip().upper()
    if default in CARRIERS:
        return [default] + [c for c in CARRIER_ORDER if c != default]
    return list(CARRIER_ORDER)


def select_carrier(values: dict[str, str | None], client: httpx.AsyncClient) -> tuple[ShipmentCarrier, list[str]]:
    """
    Возвращает (перевозчик, заметки). Заметки объясняют, почему
    более приоритетные перевозчики были пропущены.
    """
    notes = []
    for name in candidate_order(values.get("default_carrier")):
        try:
            config = build_config(name, values)
        except CarrierConfigError as e:
            notes.append(str(e))
            continue
        if not config.enabled:
            continue
        missing = config.missing_fields()
        if missing:
            notes.append(f"{name}: не заполнены поля {', '.join(missing)}")
            continue
        return make_carrier(config, client), notes
    return InternalCarrier(), notes


def is_internal(provider_name: str | None) -> bool:
    return not provider_name or provider_name == INTERNAL_PROVIDER


class CarrierConfigCache:
    """
    Кэш конфигураций перевозчиков с временем жизни.
    Создаётся на один прогон синхронизации и передаётся в него явно.
    """

    def __init__(
        self,
        loader: Callable[[str], Awaitable[CarrierConfig]],
        ttl: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.loader = loader
        self.ttl = ttl
        self.clock = clock
        self.entries: dict[str, tuple[float, CarrierConfig]] = {}
        self.loads = 0

    async def get(self, name: str) -> CarrierConfig:
        name = name.upper()
        now = self.clock()
        cached = self.entries.get(name)
        if cached and cached[0] > now:
            return cached[1]

        config = await self.loader(name)
        self.loads += 1
        self.entries[name] = (now + self.ttl, config)
        return config

    def invalidate(self, name: str | None = None):
        if name is None:
            self.entries.clear()
        else:
            self.entries.pop(name.upper(), None)
