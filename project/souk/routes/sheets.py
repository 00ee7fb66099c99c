# souk/routes/sheets.py

from fastapi import APIRouter, Depends, HTTPException, Request

from souk.routes.auth import ADMIN_OR_ABOVE, OPERATOR_OR_ABOVE, require_roles
from souk.services.order import read_order_service
from souk.services.sheets import (
    SheetsError,
    sync_error_orders_from_sheet,
    sync_order_from_sheet,
    sync_unsynced_orders,
)

router = APIRouter()


@router.post(
    "/sync",
    summary="Выгрузить все невыгруженные подтверждённые заказы",
    responses={400: {"description": "Таблица не настроена или недоступна"}},
)
async def sync_sheet(request: Request, _=Depends(require_roles(*ADMIN_OR_ABOVE))):
    try:
        return await sync_unsynced_orders(request.state.db, request.app.state.log, request.app.state.http)
    except SheetsError as e:
        await request.app.state.log.log_error("sheets", f"Ошибка выгрузки: {str(e)}")
        raise HTTPException(status_code=400, detail=str(e))


@router.post(
    "/sync-from/{id}",
    summary="Перенести исправления заказа из таблицы",
    responses={400: {"description": "Строка не найдена или таблица недоступна"}, 404: {"description": "Заказ не найден"}},
)
async def sync_from_sheet(id: int, request: Request, _=Depends(require_roles(*OPERATOR_OR_ABOVE))):
    db = request.state.db
    order = await read_order_service(db, request.app.state.log, id)
    try:
        updates = await sync_order_from_sheet(db, request.app.state.log, request.app.state.http, order)
    except SheetsError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"order_id": id, "updates": updates}


@router.post("/sync-errors", summary="Перенести исправления всех заказов со статусом Error")
async def sync_errors(request: Request, _=Depends(require_roles(*OPERATOR_OR_ABOVE))):
    try:
        return await sync_error_orders_from_sheet(request.state.db, request.app.state.log, request.app.state.http)
    except SheetsError as e:
        raise HTTPException(status_code=400, detail=str(e))
