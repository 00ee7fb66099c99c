# souk/services/sync_log.py
# Журнал обращений к внешним системам (перевозчики, Google Sheets, уведомления)

from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession

from souk.models.shipping import SyncLog as SyncLogModel

SUCCESS = "SUCCESS"
FAILURE = "FAILURE"

SEND_TO_CARRIER = "SEND_TO_CARRIER"
CARRIER_STATUS_SYNC = "CARRIER_STATUS_SYNC"
CARRIER_WEBHOOK = "CARRIER_WEBHOOK"
SYNC_TO_SHEETS = "SYNC_TO_SHEETS"
NOTIFICATION = "NOTIFICATION"
LABEL_DOWNLOAD = "LABEL_DOWNLOAD"


async def record_sync(
    db: AsyncSession,
    order_id: int | None,
    action: str,
    result: str,
    details: str | None = None,
) -> SyncLogModel:
    """Добавляет запись и сразу фиксирует её: журнал не должен теряться при откате."""
    entry = SyncLogModel(order_id=order_id, action=action, result=result, details=details)
    db.add(entry)
    await db.commit()
    return entry


async def read_sync_logs(
    db: AsyncSession,
    order_id: int | None = None,
    action: str | None = None,
    limit: int = 100,
) -> list[SyncLogModel]:
    query = select(SyncLogModel)
    if order_id is not None:
        query = query.where(SyncLogModel.order_id == order_id)
    if action:
        query = query.where(SyncLogModel.action == action)
    result = await db.execute(query.order_by(SyncLogModel.id.desc()).limit(limit))
    return result.scalars().all()
