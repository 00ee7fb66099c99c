# souk/routes/sync_log.py

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from souk.routes.auth import ADMIN_OR_ABOVE, require_roles
from souk.schemas.sync_log import SyncLog
from souk.services.sync_log import read_sync_logs

router = APIRouter()


@router.get("/", response_model=List[SyncLog], summary="Журнал обращений к внешним системам")
async def read_logs(
    request: Request,
    order_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = Query(default=100, ge=1, le=1000),
    _=Depends(require_roles(*ADMIN_OR_ABOVE)),
):
    return await read_sync_logs(request.state.db, order_id=order_id, action=action, limit=limit)
