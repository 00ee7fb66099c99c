# souk/services/order_status.py
"""
Машина состояний заказа.

NOUVELLE    -> EN_ATTENTE, CONFIRMEE, ANNULEE, INJOIGNABLE
EN_ATTENTE  -> CONFIRMEE, ANNULEE, INJOIGNABLE
CONFIRMEE   -> ENVOYEE, ANNULEE
ENVOYEE     -> LIVREE, INJOIGNABLE, ANNULEE, RETOURNEE
INJOIGNABLE -> EN_ATTENTE, CONFIRMEE, ENVOYEE, LIVREE, RETOURNEE, ANNULEE
LIVREE, ANNULEE, RETOURNEE - конечные.

Обновления от перевозчика (опрос и webhook) идут по тому же графу,
но из CONFIRMEE допускают сразу LIVREE, INJOIGNABLE и RETOURNEE:
перевозчик может сообщить о доставке раньше, чем заказ переведён в ENVOYEE.
"""

import enum
import unicodedata

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession


class OrderStatus(str, enum.Enum):
    NOUVELLE = "NOUVELLE"
    EN_ATTENTE = "EN_ATTENTE"
    CONFIRMEE = "CONFIRMEE"
    ENVOYEE = "ENVOYEE"
    LIVREE = "LIVREE"
    INJOIGNABLE = "INJOIGNABLE"
    ANNULEE = "ANNULEE"
    RETOURNEE = "RETOURNEE"


TERMINAL_STATUSES = frozenset({OrderStatus.LIVREE, OrderStatus.ANNULEE, OrderStatus.RETOURNEE})

TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.NOUVELLE: frozenset({
        OrderStatus.EN_ATTENTE, OrderStatus.CONFIRMEE, OrderStatus.ANNULEE, OrderStatus.INJOIGNABLE,
    }),
    OrderStatus.EN_ATTENTE: frozenset({
        OrderStatus.CONFIRMEE, OrderStatus.ANNULEE, OrderStatus.INJOIGNABLE,
    }),
    OrderStatus.CONFIRMEE: frozenset({
        OrderStatus.ENVOYEE, OrderStatus.ANNULEE,
    }),
    OrderStatus.ENVOYEE: frozenset({
        OrderStatus.LIVREE, OrderStatus.INJOIGNABLE, OrderStatus.ANNULEE, OrderStatus.RETOURNEE,
    }),
    OrderStatus.INJOIGNABLE: frozenset({
        OrderStatus.EN_ATTENTE, OrderStatus.CONFIRMEE, OrderStatus.ENVOYEE,
        OrderStatus.LIVREE, OrderStatus.RETOURNEE, OrderStatus.ANNULEE,
    }),
    OrderStatus.LIVREE: frozenset(),
    OrderStatus.ANNULEE: frozenset(),
    OrderStatus.RETOURNEE: frozenset(),
}

CARRIER_EXTRA_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.CONFIRMEE: frozenset({OrderStatus.LIVREE, OrderStatus.INJOIGNABLE, OrderStatus.RETOURNEE}),
}

# ────────────── Статусы перевозчиков ──────────────
CARRIER_STATUS_MAP: dict[str, OrderStatus] = {
    "delivered": OrderStatus.LIVREE,
    "livre": OrderStatus.LIVREE,
    "livree": OrderStatus.LIVREE,
    "picked_up": OrderStatus.ENVOYEE,
    "in_transit": OrderStatus.ENVOYEE,
    "out_for_delivery": OrderStatus.ENVOYEE,
    "shipped": OrderStatus.ENVOYEE,
    "en_cours": OrderStatus.ENVOYEE,
    "en_cours_de_livraison": OrderStatus.ENVOYEE,
    "ramasse": OrderStatus.ENVOYEE,
    "failed": OrderStatus.INJOIGNABLE,
    "unreachable": OrderStatus.INJOIGNABLE,
    "injoignable": OrderStatus.INJOIGNABLE,
    "no_answer": OrderStatus.INJOIGNABLE,
    "returned": OrderStatus.RETOURNEE,
    "retourne": OrderStatus.RETOURNEE,
    "retour": OrderStatus.RETOURNEE,
    "cancelled": OrderStatus.ANNULEE,
    "canceled": OrderStatus.ANNULEE,
    "annule": OrderStatus.ANNULEE,
}


def normalize_carrier_status(raw: str | None) -> str:
    """' Livré ' -> 'livre', 'In Transit' -> 'in_transit', 'out-for-delivery' -> 'out_for_delivery'."""
    if raw is None:
        return ""
    text = unicodedata.normalize("NFKD", str(raw)).encode("ascii", "ignore").decode("ascii")
    text = text.strip().lower()
    for sep in (" ", "-"):
        text = text.replace(sep, "_")
    while "__" in text:
        text = text.replace("__", "_")
    return text


def map_carrier_status(raw: str | None) -> OrderStatus | None:
    """Статус перевозчика -> внутренний статус; None, если статус неизвестен."""
    return CARRIER_STATUS_MAP.get(normalize_carrier_status(raw))


# ────────────── Переходы ──────────────
def can_transition(current: str, target: str, by_carrier: bool = False) -> bool:
    current = OrderStatus(current)
    target = OrderStatus(target)
    if current == target:
        return True
    allowed = TRANSITIONS[current]
    if by_carrier:
        allowed = allowed | CARRIER_EXTRA_TRANSITIONS.get(current, frozenset())
    return target in allowed


def is_terminal(status: str) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


async def apply_status(db: AsyncSession, order, target: OrderStatus, log=None, by_carrier: bool = False):
    """
    Переводит заказ в target и сохраняет. Повторная установка того же
    статуса ничего не пишет. Недопустимый переход -> 409.
    """
    target = OrderStatus(target)
    current = order.status
    if current == target.value:
        return order

    if not can_transition(current, target, by_carrier=by_carrier):
        if log:
            await log.log_warning("order_status", "Недопустимый переход", {
                "id": order.id, "from": current, "to": target.value,
            })
        raise HTTPException(
            status_code=409,
            detail=f"Переход {current} -> {target.value} недопустим для заказа #{order.id}",
        )

    order.status = target.value
    db.add(order)
    await db.commit()
    await db.refresh(order)

    if log:
        await log.log_info("order_status", "Статус изменён", {"id": order.id, "from": current, "to": target.value})
    return order
