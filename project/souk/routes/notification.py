# souk/routes/notification.py

from fastapi import APIRouter, Depends, Request

from souk.routes.auth import ADMIN_OR_ABOVE, require_roles
from souk.schemas.notification import NotificationRequest, NotificationResult
from souk.services.notification import notify

router = APIRouter()


@router.post("/send", response_model=NotificationResult, summary="Отправить SMS или WhatsApp")
async def send_notification(request: Request, body: NotificationRequest, _=Depends(require_roles(*ADMIN_OR_ABOVE))):
    return await notify(
        request.state.db, request.app.state.log, request.app.state.http,
        body.channel, body.phone, body.message, body.order_id,
    )
