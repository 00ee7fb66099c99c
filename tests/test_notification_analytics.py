"""Tests for Twilio notifications and the profit analytics."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import httpx
import pytest
from sqlalchemy.future import select

from souk.config import settings
from souk.models.setting import AdCost as AdCostModel
from souk.models.shipping import SyncLog as SyncLogModel
from souk.services.analytics import analytics_to_csv, read_analytics_service
from souk.services.notification import confirmation_message, notify, send_message


@pytest.fixture
def twilio(monkeypatch):
    monkeypatch.setattr(settings, "TWILIO_ACCOUNT_SID", "AC123")
    monkeypatch.setattr(settings, "TWILIO_AUTH_TOKEN", "tw-token")
    monkeypatch.setattr(settings, "TWILIO_PHONE_NUMBER", "+15550001")
    monkeypatch.setattr(settings, "TWILIO_WHATSAPP_NUMBER", "+15550002")


class TestTwilio:
    async def test_whatsapp_message(self, twilio, http_factory):
        seen = {}

        def handler(request):
            seen["request"] = request
            return httpx.Response(201, json={"sid": "SM1"})

        result = await send_message(http_factory(handler), "whatsapp", "+212612345678", "Salam")

        assert result.success
        assert result.message_id == "SM1"
        request = seen["request"]
        assert request.url.path == "/2010-04-01/Accounts/AC123/Messages.json"
        assert b"To=whatsapp%3A%2B212612345678" in request.content
        assert b"From=whatsapp%3A%2B15550002" in request.content

    async def test_not_configured(self, offline_http):
        result = await send_message(offline_http, "sms", "+212612345678", "Salam")
        assert not result.success

    async def test_unknown_channel(self, twilio, offline_http):
        result = await send_message(offline_http, "pigeon", "+212612345678", "Salam")
        assert not result.success

    async def test_notify_logs_result(self, twilio, db, log, http_factory):
        client = http_factory(lambda request: httpx.Response(400, text="invalid number"))

        result = await notify(db, log, client, "sms", "+2120000", "Salam", order_id=None)

        assert not result.success
        entries = (await db.execute(select(SyncLogModel))).scalars().all()
        assert [(e.action, e.result) for e in entries] == [("NOTIFICATION", "FAILURE")]

    async def test_confirmation_message(self, make_order):
        order = await make_order(price="100.00", quantity=1, delivery_cost="35.00")
        message = confirmation_message(order)
        assert f"#{order.id}" in message
        assert "135.00 DH" in message


class TestAnalytics:
    async def test_profit_of_delivered_orders(self, db, log, make_order, configure):
        await configure(delivery_cost="20")
        await make_order(status="LIVREE", price="100.00", quantity=2)
        await make_order(status="ENVOYEE", price="500.00", quantity=1)
        now = datetime.now(timezone.utc)
        db.add(AdCostModel(amount=Decimal("30.00"), description="Facebook", date=now))
        await db.commit()

        analytics = await read_analytics_service(db, log, now - timedelta(days=1), now + timedelta(days=1))

        assert analytics["orders_count"] == 1
        assert analytics["revenue"] == Decimal("200.00")
        assert analytics["product_costs"] == Decimal("80.00")
        assert analytics["delivery_costs"] == Decimal("20")
        assert analytics["ad_costs"] == Decimal("30.00")
        assert analytics["profit"] == Decimal("70.00")
        assert analytics["top_products"][0]["quantity"] == 2

        csv_text = analytics_to_csv(analytics)
        assert "Profit net,70.00 DH" in csv_text


class TestAnalyticsRoutes:
    MARCH = {"date_from": "2025-03-01T00:00:00+00:00", "date_to": "2025-03-31T00:00:00+00:00"}

    async def test_ad_cost_then_csv_export(self, api, auth_headers):
        headers = await auth_headers("admin")

        created = await api.post("/admin/ad-costs", headers=headers, json={
            "amount": "45.00", "description": "Instagram", "date": "2025-03-10T12:00:00+00:00",
        })
        await api.post("/admin/ad-costs", headers=headers, json={
            "amount": "99.00", "description": "Hors période", "date": "2025-04-02T12:00:00+00:00",
        })
        response = await api.get("/admin/analytics/export", params=self.MARCH, headers=headers)

        assert created.status_code == 201
        assert created.json()["description"] == "Instagram"
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "rapport-2025-03-01-2025-03-31.csv" in response.headers["content-disposition"]
        assert "Coût publicité,45.00 DH" in response.text
        assert "Profit net,-45.00 DH" in response.text

    async def test_ad_cost_must_be_positive(self, api, auth_headers):
        response = await api.post("/admin/ad-costs", headers=await auth_headers("admin"), json={
            "amount": "0", "date": "2025-03-10T12:00:00+00:00",
        })
        assert response.status_code == 422

    async def test_operator_cannot_read_analytics(self, api, auth_headers):
        response = await api.get("/admin/analytics/export", params=self.MARCH, headers=await auth_headers())
        assert response.status_code == 403
