# souk/routes/order.py

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import Response

from souk.routes.auth import ADMIN_OR_ABOVE, ANY_ROLE, OPERATOR_OR_ABOVE, require_roles
from souk.schemas.label import SendToCarrierResponse, ShippingLabel
from souk.schemas.order import ConfirmResponse, Order, OrderDetail
from souk.services.order import (
    change_order_status_service,
    confirm_order_service,
    export_orders_service,
    orders_to_csv,
    read_order_service,
    read_orders_service,
    send_order_to_carrier_service,
)
from souk.services.order_status import OrderStatus
from souk.services.sheets import sync_order_to_sheet
from souk.services.shipping import read_order_labels

router = APIRouter()


# ────────────── READ ALL ──────────────
@router.get(
    "/",
    response_model=List[Order],
    status_code=status.HTTP_200_OK,
    summary="Получить список заказов",
    response_description="Новые заказы первыми",
    responses={
        200: {"description": "Список заказов успешно получен"},
        401: {"description": "Некорректный пользователь или токен"},
    },
)
async def read_orders(
    request: Request,
    skip: int = 0,
    limit: int = 100,
    status: Optional[str] = None,
    search: Optional[str] = None,
    city: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    _=Depends(require_roles(*ANY_ROLE)),
):
    try:
        return await read_orders_service(
            request.state.db, request.app.state.log, skip, limit,
            status=status, search=search, city=city, date_from=date_from, date_to=date_to,
        )
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка при получении списка заказов: {str(e)}")
        raise


# ────────────── Экспорт ──────────────
@router.get(
    "/export/csv",
    summary="Выгрузить заказы в CSV",
    responses={200: {"description": "CSV", "content": {"text/csv": {}}}},
)
async def export_orders(
    request: Request,
    status: Optional[str] = None,
    _=Depends(require_roles(*ADMIN_OR_ABOVE)),
):
    orders = await export_orders_service(request.state.db, request.app.state.log, status=status)
    filename = f"commandes-{datetime.now():%Y-%m-%d}.csv"
    return Response(
        content=orders_to_csv(orders),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ────────────── READ ONE ──────────────
@router.get(
    "/{id}",
    response_model=OrderDetail,
    summary="Получить заказ по ID",
    responses={
        200: {"description": "Заказ найден и возвращён"},
        404: {"description": "Заказ не найден"},
    },
)
async def read_order(id: int, request: Request, _=Depends(require_roles(*ANY_ROLE))):
    return await read_order_service(request.state.db, request.app.state.log, id)


@router.get(
    "/{id}/labels",
    response_model=List[ShippingLabel],
    summary="Этикетки заказа",
)
async def read_labels_of_order(id: int, request: Request, _=Depends(require_roles(*ANY_ROLE))):
    await read_order_service(request.state.db, request.app.state.log, id)
    return await read_order_labels(request.state.db, id)


# ────────────── Действия ──────────────
@router.post(
    "/{id}/confirm",
    response_model=ConfirmResponse,
    summary="Подтвердить заказ",
    response_description="Заказ и результат попытки передачи перевозчику",
    responses={
        200: {"description": "Заказ подтверждён (передача перевозчику по возможности)"},
        404: {"description": "Заказ не найден"},
        409: {"description": "Недопустимый переход статуса"},
    },
)
async def confirm_order(id: int, request: Request, _=Depends(require_roles(*OPERATOR_OR_ABOVE))):
    try:
        return await confirm_order_service(request.state.db, request.app.state.log, request.app.state.http, id)
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка при подтверждении заказа: {str(e)}", {"id": id})
        raise


@router.post(
    "/{id}/send-to-carrier",
    response_model=SendToCarrierResponse,
    summary="Передать заказ перевозчику",
    responses={
        200: {"description": "Этикетка создана (или уже была), заказ в ENVOYEE"},
        400: {"description": "Перевозчик отклонил заказ, статус не изменён"},
        404: {"description": "Заказ не найден"},
        409: {"description": "Заказ в неподходящем статусе"},
    },
)
async def send_to_carrier(id: int, request: Request, _=Depends(require_roles(*OPERATOR_OR_ABOVE))):
    try:
        result = await send_order_to_carrier_service(
            request.state.db, request.app.state.log, request.app.state.http, id
        )
        return {"order_id": id, "status": result["order"].status, "label": result["label"]}
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка при передаче перевозчику: {str(e)}", {"id": id})
        raise


STATUS_RESPONSES = {
    200: {"description": "Статус изменён"},
    404: {"description": "Заказ не найден"},
    409: {"description": "Недопустимый переход статуса"},
}


@router.post("/{id}/mark-pending", response_model=Order, summary="Отложить заказ (EN_ATTENTE)", responses=STATUS_RESPONSES)
async def mark_pending(id: int, request: Request, _=Depends(require_roles(*OPERATOR_OR_ABOVE))):
    return await change_order_status_service(request.state.db, request.app.state.log, id, OrderStatus.EN_ATTENTE)


@router.post("/{id}/cancel", response_model=Order, summary="Отменить заказ", responses=STATUS_RESPONSES)
async def cancel_order(id: int, request: Request, _=Depends(require_roles(*OPERATOR_OR_ABOVE))):
    return await change_order_status_service(request.state.db, request.app.state.log, id, OrderStatus.ANNULEE)


@router.post("/{id}/mark-unreachable", response_model=Order, summary="Клиент недоступен", responses=STATUS_RESPONSES)
async def mark_unreachable(id: int, request: Request, _=Depends(require_roles(*OPERATOR_OR_ABOVE))):
    return await change_order_status_service(request.state.db, request.app.state.log, id, OrderStatus.INJOIGNABLE)


@router.post("/{id}/mark-delivered", response_model=Order, summary="Отметить доставленным", responses=STATUS_RESPONSES)
async def mark_delivered(id: int, request: Request, _=Depends(require_roles(*OPERATOR_OR_ABOVE))):
    return await change_order_status_service(request.state.db, request.app.state.log, id, OrderStatus.LIVREE)


@router.post(
    "/{id}/sync-sheets",
    summary="Выгрузить заказ в Google Sheets",
    responses={404: {"description": "Заказ не найден"}},
)
async def sync_order_sheet(id: int, request: Request, _=Depends(require_roles(*ADMIN_OR_ABOVE))):
    db = request.state.db
    order = await read_order_service(db, request.app.state.log, id)
    synced = await sync_order_to_sheet(db, request.app.state.log, request.app.state.http, order)
    return {"order_id": id, "synced": synced}
