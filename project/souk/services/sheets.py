# souk/services/sheets.py
"""
Выгрузка заказов в Google Sheets (REST API v4).

Лист: A ссылка CMD-{id}, B имя, C телефон, D город, E адрес,
F сумма наложенного платежа, G SKU, H количество, I товары, J статус.
Все операции "по возможности": ошибка таблицы не ломает работу с заказом.
"""

import asyncio

import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession

from souk.config import settings
from souk.models.order import Order as OrderModel
from souk.services.order_status import OrderStatus
from souk.services.settings import get_setting
from souk.services.sync_log import FAILURE, SUCCESS, SYNC_TO_SHEETS, record_sync

SHEET_RANGE = "A:J"
STATUS_COLUMN = "J"


class SheetsError(Exception):
    pass


# ────────────── OAuth токен ──────────────
class AccessTokenCache:
    """
    Access token Google по refresh token. Срок жизни и обновление ведёт
    google.oauth2.credentials.Credentials, блокирующий refresh уходит в поток.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        token_url: str,
        request_factory=Request,
    ):
        self.credentials = Credentials(
            token=None,
            refresh_token=refresh_token or None,
            client_id=client_id or None,
            client_secret=client_secret or None,
            token_uri=token_url,
        )
        self.request_factory = request_factory

    @classmethod
    def from_settings(cls) -> "AccessTokenCache":
        return cls(
            settings.GOOGLE_CLIENT_ID,
            settings.GOOGLE_CLIENT_SECRET,
            settings.GOOGLE_REFRESH_TOKEN,
            settings.GOOGLE_TOKEN_URL,
        )

    @property
    def configured(self) -> bool:
        creds = self.credentials
        return bool(creds.client_id and creds.client_secret and creds.refresh_token)

    def invalidate(self):
        self.credentials.token = None

    async def get(self) -> str:
        if self.credentials.valid:
            return self.credentials.token
        if not self.configured:
            raise SheetsError("Google OAuth не настроен (GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, GOOGLE_REFRESH_TOKEN)")

        try:
            await asyncio.to_thread(self.credentials.refresh, self.request_factory())
        except GoogleAuthError as e:
            raise SheetsError(f"Google OAuth: {e}") from e
        return self.credentials.token


token_cache = AccessTokenCache.from_settings()


# ────────────── Клиент таблицы ──────────────
class GoogleSheetsClient:
    def __init__(self, client: httpx.AsyncClient, spreadsheet_id: str, tokens: AccessTokenCache | None = None):
        self.client = client
        self.spreadsheet_id = spreadsheet_id
        self.tokens = tokens or token_cache
        self.base_url = f"{settings.GOOGLE_SHEETS_API_URL.rstrip('/')}/{spreadsheet_id}"

    async def request(self, method: str, path: str, **kwargs) -> dict:
        token = await self.tokens.get()
        try:
            response = await self.client.request(
                method, f"{self.base_url}{path}", headers={"Authorization": f"Bearer {token}"}, **kwargs
            )
            if response.status_code == 401:
                self.tokens.invalidate()
            response.raise_for_status()
            return response.json() if response.content else {}
        except httpx.HTTPStatusError as e:
            raise SheetsError(f"Google Sheets: HTTP {e.response.status_code} {e.response.text[:200]}") from e
        except httpx.HTTPError as e:
            raise SheetsError(f"Google Sheets недоступен: {e}") from e
        except ValueError as e:
            raise SheetsError("Google Sheets: ответ не JSON") from e

    async def check_access(self):
        await self.request("GET", "", params={"fields": "spreadsheetId"})

    async def append_row(self, row: list[str]):
        await self.request(
            "POST", f"/values/{SHEET_RANGE}:append",
            params={"valueInputOption": "RAW"}, json={"values": [row]},
        )

    async def get_values(self, cell_range: str) -> list[list[str]]:
        data = await self.request("GET", f"/values/{cell_range}")
        return data.get("values", [])

    async def update_cell(self, cell: str, value: str):
        await self.request("PUT", f"/values/{cell}", params={"valueInputOption": "RAW"}, json={"values": [[value]]})

    async def find_row(self, reference: str) -> int | None:
        """Номер строки (с 1) по ссылке в колонке A."""
        for index, row in enumerate(await self.get_values("A:A"), start=1):
            if row and row[0] == reference:
                return index
        return None


def order_reference(order_id: int) -> str:
    return f"CMD-{order_id}"


def build_order_row(order) -> list[str]:
    items = order.items or []
    skus = ", ".join((item.product.sku if item.product and item.product.sku else f"PROD-{item.product_id}") for item in items)
    names = ", ".join(f"{item.product.title if item.product else item.product_id} x{item.quantity}" for item in items)
    quantity = sum(item.quantity for item in items)
    return [
        order_reference(order.id),
        order.customer_name,
        order.phone,
        order.city,
        order.address,
        f"{order.cod_amount:.2f}",
        skus,
        str(quantity),
        names,
        "",
    ]


async def open_sheet(db: AsyncSession, client: httpx.AsyncClient, tokens: AccessTokenCache | None = None):
    spreadsheet_id = await get_setting(db, "google_sheets_id")
    if not spreadsheet_id:
        return None
    return GoogleSheetsClient(client, spreadsheet_id, tokens)


# ────────────── Операции ──────────────
async def sync_order_to_sheet(
    db: AsyncSession, log, client: httpx.AsyncClient, order: OrderModel, tokens: AccessTokenCache | None = None
) -> bool:
    """Добавляет строку заказа. Без google_sheets_id ничего не делает."""
    sheet = await open_sheet(db, client, tokens)
    if sheet is None:
        await log.log_warning("sheets", "google_sheets_id не задан, выгрузка пропущена", {"order_id": order.id})
        return False

    try:
        await sheet.append_row(build_order_row(order))
    except SheetsError as e:
        await record_sync(db, order.id, SYNC_TO_SHEETS, FAILURE, str(e))
        await log.log_error("sheets", "Ошибка выгрузки заказа", {"order_id": order.id, "error": str(e)})
        return False

    order.synced_to_sheets = True
    await db.commit()
    await record_sync(db, order.id, SYNC_TO_SHEETS, SUCCESS, f"Заказ {order.id} выгружен в Google Sheets")
    return True


async def update_order_status_in_sheet(
    db: AsyncSession,
    log,
    client: httpx.AsyncClient,
    order_id: int,
    status: str,
    error: str | None = None,
    tokens: AccessTokenCache | None = None,
) -> bool:
    """Пишет статус в колонку J строки заказа ("Sent" или "Error: ...")."""
    sheet = await open_sheet(db, client, tokens)
    if sheet is None:
        return False

    value = f"Error: {error}" if error else status
    try:
        row = await sheet.find_row(order_reference(order_id))
        if row is None:
            await log.log_warning("sheets", "Строка заказа не найдена", {"order_id": order_id})
            return False
        await sheet.update_cell(f"{STATUS_COLUMN}{row}", value)
    except SheetsError as e:
        await log.log_error("sheets", "Ошибка обновления статуса в таблице", {"order_id": order_id, "error": str(e)})
        return False

    await log.log_info("sheets", "Статус в таблице обновлён", {"order_id": order_id, "value": value})
    return True


async def sync_unsynced_orders(
    db: AsyncSession, log, client: httpx.AsyncClient, tokens: AccessTokenCache | None = None
) -> dict:
    """Выгружает подтверждённые заказы, которых ещё нет в таблице."""
    sheet = await open_sheet(db, client, tokens)
    if sheet is None:
        raise SheetsError("Не задан ID таблицы Google Sheets (настройка google_sheets_id)")
    await sheet.check_access()

    result = await db.execute(
        select(OrderModel)
        .where(OrderModel.status == OrderStatus.CONFIRMEE.value, OrderModel.synced_to_sheets.is_(False))
        .order_by(OrderModel.id)
    )
    synced = failed = 0
    for order in result.scalars().all():
        if await sync_order_to_sheet(db, log, client, order, tokens):
            synced += 1
        else:
            failed += 1
    return {"synced": synced, "failed": failed}


# ────────────── Исправления из таблицы ──────────────
async def sync_order_from_sheet(
    db: AsyncSession, log, client: httpx.AsyncClient, order: OrderModel, tokens: AccessTokenCache | None = None
) -> dict:
    """
    Операторы исправляют данные клиента прямо в таблице. Переносим
    B-E и I обратно в заказ и очищаем статус в J, чтобы заказ можно было
    отправить повторно.
    """
    sheet = await open_sheet(db, client, tokens)
    if sheet is None:
        raise SheetsError("Не задан ID таблицы Google Sheets (настройка google_sheets_id)")

    reference = order_reference(order.id)
    rows = await sheet.get_values(SHEET_RANGE)
    index = next((i for i, row in enumerate(rows, start=1) if row and row[0] == reference), None)
    if index is None:
        raise SheetsError(f"Заказ {reference} не найден в таблице")

    row = rows[index - 1] + [""] * 10
    updates = {
        "customer_name": row[1] or order.customer_name,
        "phone": row[2] or order.phone,
        "city": row[3] or order.city,
        "address": row[4] or order.address,
        "notes": row[8] or order.notes,
    }
    for key, value in updates.items():
        setattr(order, key, value)
    await db.commit()
    await sheet.update_cell(f"{STATUS_COLUMN}{index}", "")

    await record_sync(db, order.id, SYNC_TO_SHEETS, SUCCESS, f"Заказ {order.id} обновлён из таблицы")
    await log.log_info("sheets", "Заказ обновлён из таблицы", {"order_id": order.id})
    return updates


async def sync_error_orders_from_sheet(
    db: AsyncSession, log, client: httpx.AsyncClient, tokens: AccessTokenCache | None = None
) -> dict:
    """Все строки со статусом "Error: ..." переносятся обратно в заказы."""
    sheet = await open_sheet(db, client, tokens)
    if sheet is None:
        raise SheetsError("Не задан ID таблицы Google Sheets (настройка google_sheets_id)")

    updated = failed = 0
    details = []
    for row in (await sheet.get_values(SHEET_RANGE))[1:]:   # первая строка - заголовок
        reference = row[0] if row else ""
        status = row[9] if len(row) > 9 else ""
        if not reference.startswith("CMD-") or not status.startswith("Error:"):
            continue
        suffix = reference[4:]
        if not suffix.isdigit():
            continue

        order = (await db.execute(select(OrderModel).where(OrderModel.id == int(suffix)))).scalar_one_or_none()
        if order is None:
            failed += 1
            details.append(f"Заказ #{suffix}: не найден")
            continue
        try:
            await sync_order_from_sheet(db, log, client, order, tokens)
        except SheetsError as e:
            failed += 1
            details.append(f"Заказ #{order.id}: {e}")
            continue
        updated += 1
        details.append(f"Заказ #{order.id}: обновлён из таблицы")

    return {"updated": updated, "failed": failed, "details": details}
