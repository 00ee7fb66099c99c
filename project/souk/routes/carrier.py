# souk/routes/carrier.py

from typing import Optional

from fastapi import APIRouter, Body, Depends, Header, Request

from souk.carriers.base import CarrierConfigError
from souk.carriers.registry import CARRIERS, build_config, make_carrier
from souk.routes.auth import OPERATOR_OR_ABOVE, require_roles
from souk.schemas.carrier import (
    BulkSendResult,
    QuoteRequest,
    QuoteResponse,
    SyncConfirmedRequest,
    SyncStatusesResult,
    WebhookResult,
)
from souk.services.settings import get_settings_map
from souk.services.shipping import (
    handle_carrier_webhook,
    resolve_active_carrier,
    send_all_confirmed,
    sync_statuses,
)

router = APIRouter()
webhook_router = APIRouter()


# ────────────── Массовые операции ──────────────
@router.post(
    "/sync-confirmed",
    response_model=BulkSendResult,
    summary="Передать перевозчику все подтверждённые заказы",
    response_description="Итог по каждому заказу: success / error / skipped",
)
async def sync_confirmed(
    request: Request,
    body: Optional[SyncConfirmedRequest] = None,
    _=Depends(require_roles(*OPERATOR_OR_ABOVE)),
):
    order_ids = body.order_ids if body else None
    try:
        return await send_all_confirmed(request.state.db, request.app.state.log, request.app.state.http, order_ids)
    except Exception as e:
        await request.app.state.log.log_error("carrier_bulk", f"Ошибка массовой отправки: {str(e)}")
        raise


@router.post(
    "/sync-statuses",
    response_model=SyncStatusesResult,
    summary="Обновить статусы заказов у перевозчиков",
)
async def sync_carrier_statuses(request: Request, _=Depends(require_roles(*OPERATOR_OR_ABOVE))):
    try:
        return await sync_statuses(request.state.db, request.app.state.log, request.app.state.http)
    except Exception as e:
        await request.app.state.log.log_error("carrier_sync", f"Ошибка синхронизации статусов: {str(e)}")
        raise


@router.post(
    "/quote",
    response_model=QuoteResponse,
    summary="Стоимость доставки у перевозчика",
    responses={400: {"description": "Перевозчик не настроен"}},
)
async def quote(request: Request, body: QuoteRequest, _=Depends(require_roles(*OPERATOR_OR_ABOVE))):
    db = request.state.db
    client = request.app.state.http
    if body.carrier:
        name = body.carrier.upper()
        if name not in CARRIERS:
            return QuoteResponse(carrier=name, success=False, error=f"Неизвестный перевозчик {body.carrier}")
        try:
            config = build_config(name, await get_settings_map(db))
        except CarrierConfigError as e:
            return QuoteResponse(carrier=name, success=False, error=str(e))
        if not config.is_ready:
            return QuoteResponse(carrier=name, success=False, error=f"{name} не настроен или отключён")
        carrier = make_carrier(config, client)
    else:
        carrier = await resolve_active_carrier(db, request.app.state.log, client)

    result = await carrier.get_quote(body.city, body.weight)
    return QuoteResponse(
        carrier=carrier.name,
        success=result.success,
        price=result.price,
        estimated_days=result.estimated_days,
        error=result.error,
    )


# ────────────── Webhook (публичный) ──────────────
@webhook_router.post(
    "/carrier/{carrier_name}",
    response_model=WebhookResult,
    summary="Уведомление перевозчика о смене статуса",
    responses={
        400: {"description": "Неполные данные или неизвестный статус"},
        401: {"description": "Неверный секрет webhook"},
        404: {"description": "Отправление не найдено"},
        409: {"description": "Переход статуса недопустим"},
    },
)
async def carrier_webhook(
    carrier_name: str,
    request: Request,
    payload: dict = Body(...),
    x_webhook_secret: Optional[str] = Header(default=None),
):
    return await handle_carrier_webhook(
        request.state.db, request.app.state.log, carrier_name, payload, secret=x_webhook_secret
    )
