# souk/routes/checkout.py
# Публичное оформление заказа с витрины

from fastapi import APIRouter, Request, status

from souk.schemas.order import OrderCreate, OrderCreated
from souk.services.order import create_order_service

router = APIRouter()


@router.post(
    "/",
    response_model=OrderCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Оформить заказ (оплата при доставке)",
    response_description="Созданный заказ в статусе NOUVELLE",
    responses={
        201: {"description": "Заказ успешно создан"},
        400: {"description": "Товар не найден или недостаточно на складе"},
        422: {"description": "Неверные данные запроса"},
    },
)
async def create_order(request: Request, order: OrderCreate):
    try:
        return await create_order_service(request.state.db, request.app.state.log, order)
    except Exception as e:
        await request.app.state.log.log_error("checkout", f"Ошибка при создании заказа: {str(e)}")
        raise
