# souk/services/order.py

import csv
import io
from datetime import datetime
from decimal import Decimal

import httpx
from fastapi import HTTPException
from sqlalchemy import String, cast, or_
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession

from souk.models.order import Order as OrderModel, OrderItem as OrderItemModel
from souk.models.product import Product as ProductModel
from souk.schemas.order import OrderCreate
from souk.services.notification import notify_order_confirmed
from souk.services.order_status import OrderStatus, apply_status
from souk.services.settings import get_decimal_setting, get_setting
from souk.services.sheets import sync_order_to_sheet, update_order_status_in_sheet
from souk.services.shipping import dispatch_order, read_order_labels

DEFAULT_DELIVERY_COST = "35"
DEFAULT_FREE_DELIVERY_THRESHOLD = "300"

# повторная отправка из ENVOYEE только возвращает существующую этикетку
SENDABLE_STATUSES = (OrderStatus.CONFIRMEE.value, OrderStatus.INJOIGNABLE.value, OrderStatus.ENVOYEE.value)


async def read_orders_service(
    db: AsyncSession,
    log,
    skip: int = 0,
    limit: int = 100,
    status: str | None = None,
    search: str | None = None,
    city: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> list[OrderModel]:
    """
    Получение списка заказов (новые первыми) с фильтрами
    """
    query = select(OrderModel)
    if status and status != "all":
        query = query.where(OrderModel.status == status)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(
            OrderModel.customer_name.ilike(pattern),
            OrderModel.phone.like(pattern),
            cast(OrderModel.id, String).like(pattern),
        ))
    if city:
        query = query.where(OrderModel.city.ilike(f"%{city}%"))
    if date_from:
        query = query.where(OrderModel.created_at >= date_from)
    if date_to:
        query = query.where(OrderModel.created_at <= date_to)

    result = await db.execute(query.order_by(OrderModel.id.desc()).offset(skip).limit(limit))
    orders = result.scalars().all()

    await log.log_info("order", f"{len(orders)} заказов загружено")
    return orders


async def read_order_service(db: AsyncSession, log, id: int) -> OrderModel:
    """
    Чтение заказа по ID.
    """
    result = await db.execute(select(OrderModel).where(OrderModel.id == id))
    db_order = result.scalar_one_or_none()
    if db_order is None:
        await log.log_error("order", "Заказ не найден", {"id": id})
        raise HTTPException(status_code=404, detail="Заказ не найден")
    return db_order


# ────────────── Оформление заказа ──────────────
async def create_order_service(db: AsyncSession, log, order: OrderCreate) -> OrderModel:
    """
    Создание заказа покупателем. Цена и себестоимость каждой позиции
    фиксируются из товара, остаток проверяется и списывается.
    """
    quantities: dict[int, int] = {}
    for item in order.items:
        quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity

    result = await db.execute(select(ProductModel).where(ProductModel.id.in_(list(quantities))))
    products = {p.id: p for p in result.scalars().all()}

    total = Decimal("0")
    items = []
    for product_id, quantity in quantities.items():
        product = products.get(product_id)
        if product is None:
            raise HTTPException(status_code=400, detail=f"Товар {product_id} не найден")
        if product.stock < quantity:
            raise HTTPException(status_code=400, detail=f"Недостаточно товара «{product.title}» на складе")

        product.stock -= quantity
        total += Decimal(product.price) * quantity
        items.append(OrderItemModel(
            product_id=product.id,
            quantity=quantity,
            unit_price=product.price,
            unit_cost=product.cost_price,
        ))

    delivery_cost = await get_decimal_setting(db, "delivery_cost", DEFAULT_DELIVERY_COST)
    threshold = await get_decimal_setting(db, "free_delivery_threshold", DEFAULT_FREE_DELIVERY_THRESHOLD)
    if threshold > 0 and total >= threshold:
        delivery_cost = Decimal("0")

    db_order = OrderModel(
        customer_name=order.customer_name,
        phone=order.phone,
        address=order.address,
        city=order.city,
        notes=order.notes,
        total_price=total,
        delivery_cost=delivery_cost,
        status=OrderStatus.NOUVELLE.value,
        items=items,
    )
    db.add(db_order)
    await db.commit()
    await db.refresh(db_order)

    await log.log_info("order", "Заказ создан", {"id": db_order.id, "total": total, "delivery_cost": delivery_cost})
    return db_order


# ────────────── Действия оператора ──────────────
async def change_order_status_service(db: AsyncSession, log, id: int, target: OrderStatus) -> OrderModel:
    """Смена статуса без побочных эффектов (mark-pending, cancel, mark-unreachable, mark-delivered)."""
    db_order = await read_order_service(db, log, id)
    return await apply_status(db, db_order, target, log)


async def confirm_order_service(db: AsyncSession, log, client: httpx.AsyncClient, id: int) -> dict:
    """
    Подтверждение заказа. Передача перевозчику, выгрузка в таблицу и
    уведомление клиента выполняются по возможности: их ошибки попадают
    в журналы, но подтверждение не отменяют. Клиент уведомляется только
    при первом подтверждении.
    """
    db_order = await read_order_service(db, log, id)
    newly_confirmed = db_order.status != OrderStatus.CONFIRMEE.value
    await apply_status(db, db_order, OrderStatus.CONFIRMEE, log)

    dispatch = {"attempted": False}
    labels = await read_order_labels(db, db_order.id)
    auto_dispatch = (await get_setting(db, "carrier_dispatch_on_confirm", "true")).lower() not in ("0", "false", "no", "off")
    if labels:
        dispatch = {"attempted": False, "success": True, "tracking_number": labels[0].tracking_number}
    elif auto_dispatch:
        outcome = await dispatch_order(db, log, client, db_order)
        dispatch = {
            "attempted": True,
            "success": outcome.success,
            "provider_name": outcome.result.provider_name,
            "tracking_number": getattr(outcome.result, "tracking_number", None),
            "error": outcome.error,
        }

    if not db_order.synced_to_sheets:
        await sync_order_to_sheet(db, log, client, db_order)
    if newly_confirmed:
        await notify_order_confirmed(db, log, client, db_order)

    return {"order": db_order, "dispatch": dispatch}


async def send_order_to_carrier_service(db: AsyncSession, log, client: httpx.AsyncClient, id: int) -> dict:
    """
    Обязательная передача перевозчику и перевод в ENVOYEE. Если этикетка
    уже есть, перевозчик повторно не вызывается. Ошибка перевозчика -> 400,
    статус не меняется.
    """
    db_order = await read_order_service(db, log, id)
    if db_order.status not in SENDABLE_STATUSES:
        raise HTTPException(
            status_code=409,
            detail=f"Заказ #{id} в статусе {db_order.status} нельзя передать перевозчику",
        )

    labels = await read_order_labels(db, db_order.id)
    if labels:
        label = labels[0]
    else:
        outcome = await dispatch_order(db, log, client, db_order)
        if not outcome.success:
            await update_order_status_in_sheet(db, log, client, db_order.id, "Error", error=outcome.error)
            raise HTTPException(status_code=400, detail=outcome.error)
        label = outcome.label

    await apply_status(db, db_order, OrderStatus.ENVOYEE, log)
    await update_order_status_in_sheet(db, log, client, db_order.id, "Sent")
    return {"order": db_order, "label": label}


# ────────────── Экспорт ──────────────
ORDER_CSV_HEADER = [
    "ID", "Client", "Téléphone", "Ville", "Adresse", "Total", "Livraison",
    "Statut", "Transporteur", "Suivi", "Date",
]


async def export_orders_service(db: AsyncSession, log, status: str | None = None) -> list[OrderModel]:
    query = select(OrderModel)
    if status and status != "all":
        query = query.where(OrderModel.status == status)
    result = await db.execute(query.order_by(OrderModel.id))
    orders = result.scalars().all()
    await log.log_info("order", "Экспорт заказов в CSV", {"count": len(orders), "status": status})
    return orders


def orders_to_csv(orders) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(ORDER_CSV_HEADER)
    for order in orders:
        writer.writerow([
            order.id,
            order.customer_name,
            order.phone,
            order.city,
            order.address,
            f"{order.total_price:.2f}",
            f"{order.delivery_cost:.2f}",
            order.status,
            order.carrier_name or "",
            order.tracking_number or "",
            f"{order.created_at:%d/%m/%Y}",
        ])
    return buffer.getvalue()
