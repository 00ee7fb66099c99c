# souk/services/shipping.py
"""
Передача заказов перевозчикам и синхронизация статусов.

dispatch_order     - один заказ: выбор перевозчика, отправка, этикетка, журнал
send_all_confirmed - все CONFIRMEE без этикетки
sync_statuses      - опрос перевозчиков по всем этикеткам
handle_carrier_webhook - входящее уведомление перевозчика
"""

import asyncio
import base64
import binascii
import hmac
from dataclasses import dataclass

import httpx
from fastapi import HTTPException
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession

from souk.carriers.base import (
    CarrierConfigError,
    FailureKind,
    ShipmentCarrier,
    ShipmentFailed,
    ShipmentResult,
    TrackingResult,
    pick,
)
from souk.carriers.registry import (
    CARRIERS,
    CarrierConfigCache,
    build_config,
    is_internal,
    make_carrier,
    select_carrier,
)
from souk.config import settings
from souk.models.order import Order as OrderModel
from souk.models.shipping import ShippingLabel as LabelModel
from souk.services.order_status import (
    OrderStatus,
    apply_status,
    can_transition,
    is_terminal,
    map_carrier_status,
)
from souk.services.settings import get_settings_map
from souk.services.sync_log import (
    CARRIER_STATUS_SYNC,
    CARRIER_WEBHOOK,
    FAILURE,
    LABEL_DOWNLOAD,
    SEND_TO_CARRIER,
    SUCCESS,
    record_sync,
)


@dataclass
class Dispatch:
    result: ShipmentResult
    label: LabelModel | None = None

    @property
    def success(self) -> bool:
        return self.result.success

    @property
    def error(self) -> str | None:
        return getattr(self.result, "error", None)


# ────────────── Этикетки ──────────────
async def labeled_order_ids(db: AsyncSession) -> set[int]:
    """ID заказов, у которых уже есть этикетка (одним запросом)."""
    result = await db.execute(select(LabelModel.order_id).distinct())
    return set(result.scalars().all())


async def read_order_labels(db: AsyncSession, order_id: int) -> list[LabelModel]:
    result = await db.execute(
        select(LabelModel).where(LabelModel.order_id == order_id).order_by(LabelModel.id.desc())
    )
    return result.scalars().all()


async def read_labels_service(db: AsyncSession, skip: int = 0, limit: int = 100) -> list[LabelModel]:
    result = await db.execute(select(LabelModel).order_by(LabelModel.id.desc()).offset(skip).limit(limit))
    return result.scalars().all()


async def read_label_service(db: AsyncSession, log, id: int) -> LabelModel:
    result = await db.execute(select(LabelModel).where(LabelModel.id == id))
    label = result.scalar_one_or_none()
    if label is None:
        await log.log_error("label", "Этикетка не найдена", {"id": id})
        raise HTTPException(status_code=404, detail="Этикетка не найдена")
    return label


# ────────────── Отправка одного заказа ──────────────
async def dispatch_order(
    db: AsyncSession,
    log,
    client: httpx.AsyncClient,
    order: OrderModel,
    carrier: ShipmentCarrier | None = None,
) -> Dispatch:
    """
    Отправляет заказ активному перевозчику.
    Успех: одна этикетка + запись SEND_TO_CARRIER/SUCCESS.
    Ошибка: только запись SEND_TO_CARRIER/FAILURE.
    Статус заказа не меняется, его выставляет вызывающий код.
    """
    if carrier is None:
        carrier = await resolve_active_carrier(db, log, client)

    try:
        result = await carrier.create_shipment(order)
    except Exception as e:
        result = ShipmentFailed(carrier.name, f"Непредвиденная ошибка адаптера: {e}", FailureKind.UNPARSEABLE)

    if not result.success:
        await record_sync(db, order.id, SEND_TO_CARRIER, FAILURE, f"{result.provider_name}: {result.error}")
        await log.log_error("carrier", "Перевозчик отклонил заказ", {
            "order_id": order.id, "carrier": result.provider_name, "kind": result.kind, "error": result.error,
        })
        return Dispatch(result=result)

    label = LabelModel(
        order_id=order.id,
        provider_name=result.provider_name,
        tracking_number=result.tracking_number,
        label_url=result.label_url,
        pdf_base64=result.pdf_base64,
    )
    db.add(label)
    order.carrier_name = result.provider_name
    order.tracking_number = result.tracking_number
    await db.commit()

    await record_sync(
        db, order.id, SEND_TO_CARRIER, SUCCESS,
        f"{result.provider_name}: этикетка создана, трек {result.tracking_number}",
    )
    await log.log_info("carrier", "Заказ передан перевозчику", {
        "order_id": order.id, "carrier": result.provider_name, "tracking": result.tracking_number,
    })
    return Dispatch(result=result, label=label)


async def resolve_active_carrier(db: AsyncSession, log, client: httpx.AsyncClient) -> ShipmentCarrier:
    carrier, notes = select_carrier(await get_settings_map(db), client)
    for note in notes:
        await log.log_warning("carrier", note)
    return carrier


# ────────────── Массовая отправка ──────────────
async def send_all_confirmed(
    db: AsyncSession,
    log,
    client: httpx.AsyncClient,
    order_ids: list[int] | None = None,
) -> dict:
    """
    Отправляет все заказы CONFIRMEE, у которых ещё нет этикетки.
    Заказ с уже существующей этикеткой повторно не отправляется, а только
    переводится в ENVOYEE (восстановление после сбоя между записью этикетки
    и сменой статуса). order_ids ограничивает прогон, например, для повтора
    только неудавшихся заказов.
    """
    query = select(OrderModel).where(OrderModel.status == OrderStatus.CONFIRMEE.value)
    if order_ids:
        query = query.where(OrderModel.id.in_(order_ids))
    orders = (await db.execute(query.order_by(OrderModel.id))).scalars().all()

    labeled = await labeled_order_ids(db)
    carrier = await resolve_active_carrier(db, log, client) if orders else None

    sent = errors = skipped = 0
    results = []
    for order in orders:
        entry = {"order_id": order.id, "customer_name": order.customer_name}
        try:
            if order.id in labeled:
                await apply_status(db, order, OrderStatus.ENVOYEE, log)
                skipped += 1
                results.append({
                    **entry,
                    "status": "skipped",
                    "message": "Этикетка уже существует, повторная отправка не выполняется",
                    "tracking_number": order.tracking_number,
                })
                continue

            outcome = await dispatch_order(db, log, client, order, carrier)
            if not outcome.success:
                errors += 1
                results.append({**entry, "status": "error", "message": outcome.error})
                continue

            labeled.add(order.id)
            await apply_status(db, order, OrderStatus.ENVOYEE, log)
            sent += 1
            results.append({
                **entry,
                "status": "success",
                "message": f"Передан {outcome.result.provider_name}",
                "tracking_number": outcome.result.tracking_number,
            })
        except Exception as e:
            await db.rollback()
            errors += 1
            results.append({**entry, "status": "error", "message": str(e)})
            await log.log_error("carrier_bulk", "Ошибка обработки заказа", {"order_id": order.id, "error": str(e)})

    await log.log_info("carrier_bulk", "Массовая отправка завершена", {
        "total": len(orders), "sent": sent, "errors": errors, "skipped": skipped,
    })
    return {"total": len(orders), "sent": sent, "errors": errors, "skipped": skipped, "results": results}


# ────────────── Синхронизация статусов ──────────────
def settings_config_loader(db: AsyncSession):
    async def load(name: str):
        return build_config(name, await get_settings_map(db))
    return load


async def sync_statuses(
    db: AsyncSession,
    log,
    client: httpx.AsyncClient,
    cache: CarrierConfigCache | None = None,
    concurrency: int | None = None,
) -> dict:
    """
    Опрашивает перевозчиков по этикеткам и переносит их статусы на заказы.
    Пропускаются этикетки без трек-номера, внутреннего перевозчика и
    заказы в конечном статусе. Запись (и журнал) только при смене статуса,
    поэтому повторный прогон без изменений у перевозчика ничего не пишет.
    """
    if cache is None:
        cache = CarrierConfigCache(settings_config_loader(db), ttl=settings.CARRIER_CONFIG_TTL)
    concurrency = concurrency or settings.CARRIER_CONCURRENCY

    labels = (await db.execute(select(LabelModel).order_by(LabelModel.id.desc()))).scalars().all()

    skipped = 0
    seen_orders = set()
    targets = []
    for label in labels:
        order = label.order
        if (
            not label.tracking_number
            or is_internal(label.provider_name)
            or order is None
            or is_terminal(order.status)
            or order.id in seen_orders    # только последняя этикетка заказа
        ):
            skipped += 1
            continue
        seen_orders.add(order.id)
        targets.append(label)

    # конфигурации по одной на перевозчика; сессия БД не используется параллельно
    carriers: dict[str, ShipmentCarrier | str] = {}
    for label in targets:
        name = label.provider_name.upper()
        if name in carriers:
            continue
        if name not in CARRIERS:
            carriers[name] = f"Неизвестный перевозчик {label.provider_name}"
            continue
        try:
            config = await cache.get(name)
        except CarrierConfigError as e:
            carriers[name] = str(e)
            continue
        carriers[name] = make_carrier(config, client) if config.is_ready else f"{name} не настроен или отключён"

    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def poll(label: LabelModel) -> TrackingResult:
        carrier = carriers[label.provider_name.upper()]
        if isinstance(carrier, str):
            return TrackingResult(success=False, error=carrier)
        async with semaphore:
            try:
                return await carrier.track_shipment(label.tracking_number)
            except Exception as e:
                return TrackingResult(success=False, error=f"Непредвиденная ошибка адаптера: {e}")

    polled = await asyncio.gather(*(poll(label) for label in targets))

    synced = errors = 0
    details = []
    for label, tracking in zip(targets, polled):
        order = label.order
        if not tracking.success:
            errors += 1
            details.append(f"#{order.id} ({label.tracking_number}): {tracking.error}")
            continue

        raw_changed = tracking.status != order.carrier_status
        if raw_changed:
            order.carrier_status = tracking.status

        mapped = map_carrier_status(tracking.status)
        if mapped is None or mapped.value == order.status:
            if raw_changed:
                await db.commit()
            continue

        if not can_transition(order.status, mapped, by_carrier=True):
            if raw_changed:
                await db.commit()
            details.append(f"#{order.id}: переход {order.status} -> {mapped.value} отклонён")
            continue

        previous = order.status
        order.status = mapped.value
        await db.commit()
        await record_sync(
            db, order.id, CARRIER_STATUS_SYNC, SUCCESS,
            f"{label.provider_name} {label.tracking_number}: «{tracking.status}» {previous} -> {mapped.value}",
        )
        synced += 1

    await log.log_info("carrier_sync", "Синхронизация статусов завершена", {
        "checked": len(targets), "synced": synced, "errors": errors, "skipped": skipped,
    })
    if details:
        await log.log_warning("carrier_sync", "Проблемы при синхронизации", {"details": details})
    return {"checked": len(targets), "synced": synced, "errors": errors, "skipped": skipped, "details": details}


# ────────────── Webhook перевозчика ──────────────
def parse_order_reference(value) -> int | None:
    text = str(value or "").strip().upper()
    if text.startswith("CMD-"):
        text = text[4:]
    return int(text) if text.isdigit() else None


async def handle_carrier_webhook(
    db: AsyncSession,
    log,
    carrier_name: str,
    payload: dict,
    secret: str | None = None,
) -> dict:
    """
    Уведомление перевозчика о смене статуса. Этикетка ищется по трек-номеру,
    при его отсутствии - по ссылке на заказ. Каждое обращение попадает в журнал.
    """
    carrier_name = carrier_name.upper()
    # у внутреннего перевозчика нет внешней стороны, webhook только от известных
    if carrier_name not in CARRIERS:
        await record_sync(db, None, CARRIER_WEBHOOK, FAILURE, f"{carrier_name}: неизвестный перевозчик")
        raise HTTPException(status_code=404, detail=f"Неизвестный перевозчик: {carrier_name}")

    values = await get_settings_map(db)
    expected = values.get(f"carrier_{carrier_name.lower()}_webhook_secret")
    if expected and not hmac.compare_digest(expected, secret or ""):
        await record_sync(db, None, CARRIER_WEBHOOK, FAILURE, f"{carrier_name}: неверный секрет webhook")
        raise HTTPException(status_code=401, detail="Неверный секрет webhook")

    tracking_number = pick(payload, "tracking_number", "trackingNumber", "tracking_id", "tracking")
    raw_status = pick(payload, "status", "shipment_status")
    order_ref = parse_order_reference(pick(payload, "order_id", "orderId", "reference"))

    if raw_status is None or (tracking_number is None and order_ref is None):
        await record_sync(db, order_ref, CARRIER_WEBHOOK, FAILURE, f"{carrier_name}: неполные данные {payload}")
        raise HTTPException(status_code=400, detail="Требуются трек-номер (или ссылка на заказ) и статус")

    label = None
    if tracking_number is not None:
        result = await db.execute(select(LabelModel).where(LabelModel.tracking_number == str(tracking_number)))
        label = result.scalars().first()
    if label is None and order_ref is not None:
        labels = await read_order_labels(db, order_ref)
        label = labels[0] if labels else None

    if label is None or (label.provider_name or "").upper() != carrier_name:
        await record_sync(
            db, None, CARRIER_WEBHOOK, FAILURE,
            f"{carrier_name}: отправление {tracking_number or order_ref} не найдено",
        )
        raise HTTPException(status_code=404, detail="Отправление не найдено")

    order = label.order
    mapped = map_carrier_status(raw_status)
    if mapped is None:
        await record_sync(db, order.id, CARRIER_WEBHOOK, FAILURE, f"{carrier_name}: неизвестный статус «{raw_status}»")
        raise HTTPException(status_code=400, detail=f"Неизвестный статус: {raw_status}")

    previous = order.status
    if not can_transition(previous, mapped, by_carrier=True):
        await record_sync(
            db, order.id, CARRIER_WEBHOOK, FAILURE,
            f"{carrier_name}: переход {previous} -> {mapped.value} отклонён",
        )
        raise HTTPException(status_code=409, detail=f"Переход {previous} -> {mapped.value} недопустим")

    order.carrier_status = str(raw_status)
    order.status = mapped.value
    await db.commit()
    await record_sync(
        db, order.id, CARRIER_WEBHOOK, SUCCESS,
        f"{carrier_name} {label.tracking_number}: «{raw_status}» {previous} -> {mapped.value}",
    )
    await log.log_info("carrier_webhook", "Статус обновлён по webhook", {
        "order_id": order.id, "from": previous, "to": mapped.value,
    })
    return {"order_id": order.id, "status": mapped.value, "previous_status": previous, "updated": previous != mapped.value}


# ────────────── Загрузка этикеток ──────────────
@dataclass
class LabelContent:
    pdf: bytes | None = None
    filename: str | None = None
    redirect_url: str | None = None


def decode_pdf(pdf_base64: str) -> bytes:
    try:
        return base64.b64decode(pdf_base64, validate=False)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=500, detail="Содержимое этикетки повреждено")


async def carrier_for_provider(db: AsyncSession, client: httpx.AsyncClient, provider_name: str) -> ShipmentCarrier:
    name = (provider_name or "").upper()
    if name not in CARRIERS:
        raise HTTPException(status_code=400, detail=f"Перевозчик {provider_name} не поддерживает загрузку этикеток")
    try:
        config = build_config(name, await get_settings_map(db))
    except CarrierConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not config.is_ready:
        raise HTTPException(status_code=400, detail=f"{name} не настроен или отключён")
    return make_carrier(config, client)


async def download_label_service(db: AsyncSession, log, client: httpx.AsyncClient, id: int) -> LabelContent:
    """
    Содержимое этикетки: сохранённый PDF, PDF от перевозчика (сохраняется
    в этикетку для следующих запросов) или ссылка для перенаправления.
    """
    label = await read_label_service(db, log, id)

    if label.pdf_base64:
        return LabelContent(pdf=decode_pdf(label.pdf_base64), filename=f"etiquette-{label.order_id}.pdf")

    if label.tracking_number and not is_internal(label.provider_name) and not label.label_url:
        carrier = await carrier_for_provider(db, client, label.provider_name)
        download = await carrier.download_labels([label.tracking_number])
        if not download.success:
            await record_sync(db, label.order_id, LABEL_DOWNLOAD, FAILURE, f"{carrier.name}: {download.error}")
            raise HTTPException(status_code=502, detail=download.error)

        label.pdf_base64 = download.pdf_base64
        await db.commit()
        await record_sync(db, label.order_id, LABEL_DOWNLOAD, SUCCESS, f"{carrier.name}: этикетка {label.tracking_number} загружена")
        return LabelContent(pdf=decode_pdf(download.pdf_base64), filename=f"etiquette-{label.tracking_number}.pdf")

    if label.label_url:
        return LabelContent(redirect_url=label.label_url)

    raise HTTPException(status_code=404, detail="Содержимое этикетки отсутствует")


async def download_labels_batch_service(
    db: AsyncSession, log, client: httpx.AsyncClient, tracking_numbers: list[str]
) -> LabelContent:
    """Одна PDF на несколько отправлений одного перевозчика (пакетная печать)."""
    result = await db.execute(select(LabelModel).where(LabelModel.tracking_number.in_(tracking_numbers)))
    labels = result.scalars().all()
    found = {label.tracking_number for label in labels}
    missing = [t for t in tracking_numbers if t not in found]
    if missing:
        raise HTTPException(status_code=404, detail=f"Отправления не найдены: {', '.join(missing)}")

    providers = {(label.provider_name or "").upper() for label in labels}
    if len(providers) != 1:
        raise HTTPException(status_code=400, detail="Пакетная печать возможна только для одного перевозчика")

    carrier = await carrier_for_provider(db, client, providers.pop())
    download = await carrier.download_labels(tracking_numbers)
    if not download.success:
        await record_sync(db, None, LABEL_DOWNLOAD, FAILURE, f"{carrier.name}: {download.error}")
        raise HTTPException(status_code=502, detail=download.error)

    await log.log_info("label", "Пакет этикеток загружен", {"carrier": carrier.name, "count": len(tracking_numbers)})
    return LabelContent(pdf=decode_pdf(download.pdf_base64), filename=f"etiquettes-{carrier.name.lower()}.pdf")
