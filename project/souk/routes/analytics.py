# souk/routes/analytics.py

from datetime import datetime, time, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import Response

from souk.routes.auth import ADMIN_OR_ABOVE, require_roles
from souk.schemas.analytics import AdCost, AdCostCreate, Analytics
from souk.services.analytics import analytics_to_csv, create_ad_cost_service, read_analytics_service

router = APIRouter()


def period(date_from: Optional[datetime], date_to: Optional[datetime]) -> tuple[datetime, datetime]:
    """По умолчанию с первого числа текущего месяца по конец сегодняшнего дня."""
    now = datetime.now(timezone.utc)
    start = date_from or now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    end = date_to or now
    if end.time() == time(0, 0):
        end = end.replace(hour=23, minute=59, second=59, microsecond=999999)
    return start, end


@router.get("/analytics", response_model=Analytics, summary="Выручка и прибыль за период")
async def read_analytics(
    request: Request,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    _=Depends(require_roles(*ADMIN_OR_ABOVE)),
):
    start, end = period(date_from, date_to)
    return await read_analytics_service(request.state.db, request.app.state.log, start, end)


@router.get("/analytics/export", summary="Отчёт за период в CSV")
async def export_analytics(
    request: Request,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    _=Depends(require_roles(*ADMIN_OR_ABOVE)),
):
    start, end = period(date_from, date_to)
    analytics = await read_analytics_service(request.state.db, request.app.state.log, start, end)
    filename = f"rapport-{start:%Y-%m-%d}-{end:%Y-%m-%d}.csv"
    return Response(
        content=analytics_to_csv(analytics),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/ad-costs", response_model=AdCost, status_code=status.HTTP_201_CREATED, summary="Добавить рекламный расход")
async def create_ad_cost(request: Request, body: AdCostCreate, _=Depends(require_roles(*ADMIN_OR_ABOVE))):
    return await create_ad_cost_service(request.state.db, request.app.state.log, body)
