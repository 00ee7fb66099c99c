# souk/services/settings.py

import re
from decimal import Decimal, InvalidOperation

from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession

from souk.models.setting import Setting as SettingModel

SHEET_URL_RE = re.compile(r"/spreadsheets/d/([a-zA-Z0-9-_]+)")


async def read_settings_service(db: AsyncSession) -> list[SettingModel]:
    result = await db.execute(select(SettingModel).order_by(SettingModel.key))
    return result.scalars().all()


async def get_settings_map(db: AsyncSession) -> dict[str, str | None]:
    """Все настройки одним запросом: {key: value}."""
    return {s.key: s.value for s in await read_settings_service(db)}


async def get_setting(db: AsyncSession, key: str, default: str | None = None) -> str | None:
    result = await db.execute(select(SettingModel).where(SettingModel.key == key))
    setting = result.scalar_one_or_none()
    if setting is None or setting.value in (None, ""):
        return default
    return setting.value


async def get_decimal_setting(db: AsyncSession, key: str, default: str) -> Decimal:
    value = await get_setting(db, key, default)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError):
        return Decimal(default)


def normalize_setting_value(key: str, value: str | None) -> str | None:
    # из полной ссылки на таблицу оставляем только её ID
    if key == "google_sheets_id" and value:
        match = SHEET_URL_RE.search(value)
        if match:
            return match.group(1)
    return value


async def set_settings_service(db: AsyncSession, values: dict[str, str | None]) -> list[SettingModel]:
    """Сохраняет пачку настроек (upsert по ключу)."""
    result = await db.execute(select(SettingModel).where(SettingModel.key.in_(list(values))))
    existing = {s.key: s for s in result.scalars().all()}

    for key, value in values.items():
        value = normalize_setting_value(key, None if value is None else str(value))
        setting = existing.get(key)
        if setting is None:
            db.add(SettingModel(key=key, value=value))
        else:
            setting.value = value
    await db.commit()
    return await read_settings_service(db)
