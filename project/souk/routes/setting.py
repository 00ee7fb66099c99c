# souk/routes/setting.py

from typing import Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Request

from souk.routes.auth import SUPER_ADMIN, require_roles
from souk.schemas.setting import Setting
from souk.services.settings import read_settings_service, set_settings_service

router = APIRouter()


@router.get("/", response_model=List[Setting], summary="Все настройки магазина")
async def read_settings(request: Request, _=Depends(require_roles(SUPER_ADMIN))):
    return await read_settings_service(request.state.db)


@router.post(
    "/",
    response_model=List[Setting],
    summary="Сохранить настройки",
    response_description="Все настройки после сохранения",
)
async def save_settings(
    request: Request,
    values: Dict[str, Optional[str]] = Body(..., examples=[{"default_carrier": "DIGYLOG", "delivery_cost": "35"}]),
    user=Depends(require_roles(SUPER_ADMIN)),
):
    settings = await set_settings_service(request.state.db, values)
    await request.app.state.log.log_info("settings", "Настройки сохранены", {"keys": list(values), "by": user.login})
    return settings
