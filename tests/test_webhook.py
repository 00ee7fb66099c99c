"""Tests for incoming carrier webhooks."""

import pytest
from fastapi import HTTPException
from sqlalchemy.future import select

from souk.models.shipping import SyncLog as SyncLogModel
from souk.services.shipping import handle_carrier_webhook


async def webhook_logs(db):
    result = await db.execute(select(SyncLogModel).where(SyncLogModel.action == "CARRIER_WEBHOOK"))
    return result.scalars().all()


class TestCarrierWebhook:
    async def test_updates_status(self, db, log, make_order, make_label):
        order = await make_order(status="ENVOYEE")
        await make_label(order, provider_name="SENDIT", tracking_number="SD-1")

        result = await handle_carrier_webhook(db, log, "sendit", {"tracking_number": "SD-1", "status": "Delivered"})

        assert result == {"order_id": order.id, "status": "LIVREE", "previous_status": "ENVOYEE", "updated": True}
        assert order.status == "LIVREE"
        assert order.carrier_status == "Delivered"
        logs = await webhook_logs(db)
        assert [(entry.order_id, entry.result) for entry in logs] == [(order.id, "SUCCESS")]

    async def test_lookup_by_order_reference(self, db, log, make_order, make_label):
        order = await make_order(status="ENVOYEE")
        await make_label(order, provider_name="OZON", tracking_number="OZ-7")

        result = await handle_carrier_webhook(db, log, "OZON", {"orderId": f"CMD-{order.id}", "status": "returned"})

        assert result["status"] == "RETOURNEE"

    async def test_unknown_tracking_is_404(self, db, log):
        with pytest.raises(HTTPException) as exc:
            await handle_carrier_webhook(db, log, "OZON", {"tracking_number": "NOPE", "status": "delivered"})
        assert exc.value.status_code == 404
        logs = await webhook_logs(db)
        assert len(logs) == 1
        assert logs[0].result == "FAILURE"

    async def test_other_carrier_label_is_not_found(self, db, log, make_order, make_label):
        order = await make_order(status="ENVOYEE")
        await make_label(order, provider_name="OZON", tracking_number="OZ-1")

        with pytest.raises(HTTPException) as exc:
            await handle_carrier_webhook(db, log, "SENDIT", {"tracking_number": "OZ-1", "status": "delivered"})
        assert exc.value.status_code == 404

    async def test_terminal_order_is_409(self, db, log, make_order, make_label):
        order = await make_order(status="ANNULEE")
        await make_label(order, provider_name="OZON", tracking_number="OZ-1")

        with pytest.raises(HTTPException) as exc:
            await handle_carrier_webhook(db, log, "OZON", {"tracking_number": "OZ-1", "status": "delivered"})
        assert exc.value.status_code == 409
        assert order.status == "ANNULEE"

    async def test_unknown_status_is_400(self, db, log, make_order, make_label):
        order = await make_order(status="ENVOYEE")
        await make_label(order, provider_name="OZON", tracking_number="OZ-1")

        with pytest.raises(HTTPException) as exc:
            await handle_carrier_webhook(db, log, "OZON", {"tracking_number": "OZ-1", "status": "teleported"})
        assert exc.value.status_code == 400

    async def test_secret_is_checked_when_configured(self, db, log, make_order, make_label, configure):
        await configure(carrier_ozon_webhook_secret="s3cret")
        order = await make_order(status="ENVOYEE")
        await make_label(order, provider_name="OZON", tracking_number="OZ-1")
        payload = {"tracking_number": "OZ-1", "status": "delivered"}

        with pytest.raises(HTTPException) as exc:
            await handle_carrier_webhook(db, log, "OZON", payload, secret="wrong")
        assert exc.value.status_code == 401

        result = await handle_carrier_webhook(db, log, "OZON", payload, secret="s3cret")
        assert result["status"] == "LIVREE"

    async def test_internal_carrier_is_rejected(self, db, log, make_order, make_label):
        order = await make_order(status="CONFIRMEE")
        await make_label(order, provider_name="Internal", tracking_number="TRK0000001000001")

        with pytest.raises(HTTPException) as exc:
            await handle_carrier_webhook(db, log, "internal", {"tracking_number": "TRK0000001000001", "status": "delivered"})

        assert exc.value.status_code == 404
        assert order.status == "CONFIRMEE"
        logs = await webhook_logs(db)
        assert [(entry.order_id, entry.result) for entry in logs] == [(None, "FAILURE")]
