# souk/services/notification.py
# SMS и WhatsApp через Twilio REST API

from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from souk.config import settings
from souk.services.sync_log import FAILURE, NOTIFICATION, SUCCESS, record_sync

SMS = "sms"
WHATSAPP = "whatsapp"
CHANNELS = (SMS, WHATSAPP)


@dataclass
class MessageResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


def sender_for(channel: str) -> str | None:
    if channel == WHATSAPP:
        return f"whatsapp:{settings.TWILIO_WHATSAPP_NUMBER}" if settings.TWILIO_WHATSAPP_NUMBER else None
    return settings.TWILIO_PHONE_NUMBER or None


async def send_message(client: httpx.AsyncClient, channel: str, phone: str, body: str) -> MessageResult:
    if channel not in CHANNELS:
        return MessageResult(success=False, error=f"Неизвестный канал {channel}, допустимо: sms, whatsapp")

    sender = sender_for(channel)
    if not (settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN and sender):
        return MessageResult(success=False, error="Twilio не настроен")

    recipient = f"whatsapp:{phone}" if channel == WHATSAPP else phone
    url = f"{settings.TWILIO_API_URL.rstrip('/')}/Accounts/{settings.TWILIO_ACCOUNT_SID}/Messages.json"
    try:
        response = await client.post(
            url,
            data={"From": sender, "To": recipient, "Body": body},
            auth=(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN),
        )
    except httpx.HTTPError as e:
        return MessageResult(success=False, error=f"Twilio недоступен: {e}")

    if response.is_error:
        return MessageResult(success=False, error=response.text[:300] or f"HTTP {response.status_code}")
    try:
        return MessageResult(success=True, message_id=response.json().get("sid"))
    except ValueError:
        return MessageResult(success=True)


def confirmation_message(order) -> str:
    return (
        f"Bonjour {order.customer_name},\n\n"
        f"Votre commande #{order.id} a été confirmée.\n"
        f"Montant: {order.cod_amount:.2f} DH\n"
        "Vous recevrez votre colis très bientôt.\n\n"
        "Merci de votre achat!"
    )


async def notify(
    db: AsyncSession, log, client: httpx.AsyncClient, channel: str, phone: str, body: str, order_id: int | None = None
) -> MessageResult:
    """Отправка с записью в журнал синхронизации."""
    result = await send_message(client, channel, phone, body)
    if result.success:
        await record_sync(db, order_id, NOTIFICATION, SUCCESS, f"{channel} -> {phone}: {result.message_id or 'ok'}")
        await log.log_info("notification", "Сообщение отправлено", {"channel": channel, "order_id": order_id})
    else:
        await record_sync(db, order_id, NOTIFICATION, FAILURE, f"{channel} -> {phone}: {result.error}")
        await log.log_warning("notification", "Сообщение не отправлено", {
            "channel": channel, "order_id": order_id, "error": result.error,
        })
    return result


async def notify_order_confirmed(db: AsyncSession, log, client: httpx.AsyncClient, order) -> list[MessageResult]:
    """Сообщение клиенту по включённым каналам (ENABLE_SMS, ENABLE_WHATSAPP)."""
    channels = [c for c, enabled in ((SMS, settings.ENABLE_SMS), (WHATSAPP, settings.ENABLE_WHATSAPP)) if enabled]
    body = confirmation_message(order)
    return [await notify(db, log, client, channel, order.phone, body, order.id) for channel in channels]
