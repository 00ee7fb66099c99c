"""HTTP-level tests: checkout, auth, role gate and admin order actions."""

import base64
import csv
import io
import json
from decimal import Decimal

import httpx
from sqlalchemy.future import select

from souk.models.product import Product as ProductModel
from souk.models.shipping import ShippingLabel as LabelModel, SyncLog as SyncLogModel
from souk.utils.database import AsyncSessionLocal


async def add_product(db, price="120.00", stock=5):
    product = ProductModel(title="Babouches", sku="BAB-1", price=Decimal(price), cost_price=Decimal("50.00"), stock=stock)
    db.add(product)
    await db.commit()
    return product


def checkout_body(product_id, quantity=1):
    return {
        "customer_name": "Youssef",
        "phone": "0661122334",
        "address": "Derb Sidi Bouloukat 4",
        "city": "Marrakech",
        "items": [{"product_id": product_id, "quantity": quantity}],
    }


class TestCheckout:
    async def test_prices_are_frozen_and_stock_decremented(self, api, db):
        product = await add_product(db)

        response = await api.post("/orders/", json=checkout_body(product.id, quantity=2))

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "NOUVELLE"
        assert Decimal(body["total_price"]) == Decimal("240.00")
        assert Decimal(body["delivery_cost"]) == Decimal("35")
        async with AsyncSessionLocal() as session:
            fresh = (await session.execute(select(ProductModel).where(ProductModel.id == product.id))).scalar_one()
        assert fresh.stock == 3

    async def test_free_delivery_above_threshold(self, api, db):
        product = await add_product(db, price="150.00")
        response = await api.post("/orders/", json=checkout_body(product.id, quantity=2))
        assert Decimal(response.json()["delivery_cost"]) == Decimal("0")

    async def test_not_enough_stock(self, api, db):
        product = await add_product(db, stock=1)
        response = await api.post("/orders/", json=checkout_body(product.id, quantity=3))
        assert response.status_code == 400

    async def test_unknown_product(self, api, db):
        response = await api.post("/orders/", json=checkout_body(999))
        assert response.status_code == 400


class TestAuth:
    async def test_token_and_me(self, api, db):
        from souk.models.user import User as UserModel
        from souk.utils.security import hash_password

        db.add(UserModel(name="Amina", login="amina", password=hash_password("pw"), role="admin"))
        await db.commit()

        response = await api.post("/auth/token", data={"username": "amina", "password": "pw"})
        assert response.status_code == 200
        token = response.json()["access_token"]

        me = await api.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.json()["role"] == "admin"
        assert "password" not in me.json()

    async def test_wrong_password(self, api, db):
        response = await api.post("/auth/token", data={"username": "nobody", "password": "x"})
        assert response.status_code == 401

    async def test_admin_routes_require_token(self, api):
        response = await api.get("/admin/orders/")
        assert response.status_code == 401

    async def test_support_cannot_confirm(self, api, make_order, auth_headers):
        order = await make_order(status="NOUVELLE")
        headers = await auth_headers("support")
        response = await api.post(f"/admin/orders/{order.id}/confirm", headers=headers)
        assert response.status_code == 403

    async def test_settings_are_super_admin_only(self, api, auth_headers):
        response = await api.get("/admin/settings/", headers=await auth_headers("admin"))
        assert response.status_code == 403


class TestOrderActions:
    async def test_confirm_dispatches_to_internal_carrier(self, api, make_order, auth_headers):
        order = await make_order(status="NOUVELLE")
        headers = await auth_headers("operator")

        response = await api.post(f"/admin/orders/{order.id}/confirm", headers=headers)

        assert response.status_code == 200
        body = response.json()
        assert body["order"]["status"] == "CONFIRMEE"
        assert body["dispatch"]["attempted"] is True
        assert body["dispatch"]["provider_name"] == "Internal"
        assert body["dispatch"]["tracking_number"].startswith("TRK")

    async def test_reconfirm_does_not_dispatch_or_notify_again(self, api, make_order, auth_headers, monkeypatch):
        from souk.config import settings
        from souk.main import app

        monkeypatch.setattr(settings, "ENABLE_SMS", True)
        monkeypatch.setattr(settings, "TWILIO_ACCOUNT_SID", "AC1")
        monkeypatch.setattr(settings, "TWILIO_AUTH_TOKEN", "tw-token")
        monkeypatch.setattr(settings, "TWILIO_PHONE_NUMBER", "+212500000000")
        sent = []

        def twilio(request):
            sent.append(request)
            return httpx.Response(201, json={"sid": f"SM{len(sent)}"})

        app.state.http = httpx.AsyncClient(transport=httpx.MockTransport(twilio))
        order = await make_order(status="NOUVELLE")
        headers = await auth_headers()

        first = await api.post(f"/admin/orders/{order.id}/confirm", headers=headers)
        second = await api.post(f"/admin/orders/{order.id}/confirm", headers=headers)

        assert first.json()["dispatch"]["attempted"] is True
        assert second.status_code == 200
        assert second.json()["dispatch"]["attempted"] is False
        assert second.json()["dispatch"]["tracking_number"] == first.json()["dispatch"]["tracking_number"]
        assert len(sent) == 1
        async with AsyncSessionLocal() as session:
            labels = (await session.execute(select(LabelModel).where(LabelModel.order_id == order.id))).scalars().all()
            dispatch_logs = (await session.execute(
                select(SyncLogModel).where(SyncLogModel.order_id == order.id, SyncLogModel.action == "SEND_TO_CARRIER")
            )).scalars().all()
        assert len(labels) == 1
        assert len(dispatch_logs) == 1

    async def test_confirm_survives_carrier_failure(self, api, make_order, auth_headers, configure, digylog_settings):
        await configure(**digylog_settings)
        order = await make_order(status="NOUVELLE")

        response = await api.post(f"/admin/orders/{order.id}/confirm", headers=await auth_headers())

        body = response.json()
        assert response.status_code == 200
        assert body["order"]["status"] == "CONFIRMEE"
        assert body["dispatch"]["success"] is False

    async def test_send_to_carrier(self, api, make_order, auth_headers):
        order = await make_order(status="CONFIRMEE")
        headers = await auth_headers()

        first = await api.post(f"/admin/orders/{order.id}/send-to-carrier", headers=headers)
        second = await api.post(f"/admin/orders/{order.id}/send-to-carrier", headers=headers)

        assert first.status_code == 200
        assert first.json()["status"] == "ENVOYEE"
        assert second.json()["label"]["id"] == first.json()["label"]["id"]

    async def test_send_to_carrier_failure_keeps_status(
        self, api, make_order, auth_headers, configure, digylog_settings
    ):
        await configure(**digylog_settings)
        order = await make_order(status="CONFIRMEE")

        response = await api.post(f"/admin/orders/{order.id}/send-to-carrier", headers=await auth_headers())

        assert response.status_code == 400
        detail = await api.get(f"/admin/orders/{order.id}", headers=await auth_headers("support"))
        assert detail.json()["status"] == "CONFIRMEE"

    async def test_illegal_transition_is_409(self, api, make_order, auth_headers):
        order = await make_order(status="NOUVELLE")
        headers = await auth_headers()

        assert (await api.post(f"/admin/orders/{order.id}/cancel", headers=headers)).status_code == 200
        response = await api.post(f"/admin/orders/{order.id}/mark-delivered", headers=headers)
        assert response.status_code == 409

    async def test_missing_order_is_404(self, api, auth_headers):
        response = await api.post("/admin/orders/4242/confirm", headers=await auth_headers())
        assert response.status_code == 404

    async def test_list_filters(self, api, make_order, auth_headers):
        await make_order(status="NOUVELLE", customer_name="Khadija", city="Fès")
        await make_order(status="CONFIRMEE", customer_name="Omar", city="Tanger")
        headers = await auth_headers("support")

        response = await api.get("/admin/orders/", params={"status": "CONFIRMEE"}, headers=headers)
        assert [o["customer_name"] for o in response.json()] == ["Omar"]

        response = await api.get("/admin/orders/", params={"search": "khad"}, headers=headers)
        assert [o["customer_name"] for o in response.json()] == ["Khadija"]


class TestCarrierRoutes:
    async def test_sync_confirmed(self, api, make_order, auth_headers):
        await make_order()
        await make_order()

        response = await api.post("/admin/carrier/sync-confirmed", headers=await auth_headers())

        assert response.status_code == 200
        assert response.json()["sent"] == 2

    async def test_sync_statuses(self, api, auth_headers):
        response = await api.post("/admin/carrier/sync-statuses", headers=await auth_headers())
        assert response.json() == {"checked": 0, "synced": 0, "errors": 0, "skipped": 0, "details": []}

    async def test_webhook_unknown_tracking(self, api):
        response = await api.post("/webhooks/carrier/ozon", json={"tracking_number": "X", "status": "delivered"})
        assert response.status_code == 404

    async def test_webhook_updates_order(self, api, make_order, make_label):
        order = await make_order(status="ENVOYEE")
        await make_label(order, provider_name="OZON", tracking_number="OZ-5")

        response = await api.post("/webhooks/carrier/OZON", json={"trackingNumber": "OZ-5", "status": "livré"})

        assert response.status_code == 200
        assert response.json()["status"] == "LIVREE"

    async def test_webhook_for_internal_carrier_is_404(self, api, make_order, make_label, auth_headers):
        order = await make_order(status="CONFIRMEE")
        await make_label(order, provider_name="Internal", tracking_number="TRK0000001000001")

        response = await api.post(
            "/webhooks/carrier/internal", json={"tracking_number": "TRK0000001000001", "status": "delivered"},
        )

        assert response.status_code == 404
        detail = await api.get(f"/admin/orders/{order.id}", headers=await auth_headers("support"))
        assert detail.json()["status"] == "CONFIRMEE"


class TestLabelDownload:
    async def test_stored_pdf(self, api, make_order, make_label, auth_headers):
        order = await make_order(status="ENVOYEE")
        label = await make_label(order, provider_name="Internal", tracking_number="TRK1",
                                 pdf_base64=base64.b64encode(b"%PDF-1.4 test").decode())

        response = await api.get(f"/admin/shipping-labels/{label.id}/download", headers=await auth_headers())

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content == b"%PDF-1.4 test"

    async def test_redirect_to_label_url(self, api, make_order, make_label, auth_headers):
        order = await make_order(status="ENVOYEE")
        label = await make_label(order, provider_name="DIGYLOG", tracking_number="S1", label_url="https://dg.test/bl/1/pdf")

        response = await api.get(f"/admin/shipping-labels/{label.id}/download", headers=await auth_headers())

        assert response.status_code == 302
        assert response.headers["location"] == "https://dg.test/bl/1/pdf"

    async def test_digylog_pdf_is_backfilled(
        self, api, db, make_order, make_label, auth_headers, configure, digylog_settings
    ):
        from souk.main import app

        await configure(**digylog_settings)
        order = await make_order(status="ENVOYEE")
        label = await make_label(order, provider_name="DIGYLOG", tracking_number="S1")
        app.state.http = httpx.AsyncClient(transport=httpx.MockTransport(
            lambda request: httpx.Response(200, content=b"%PDF-dg", headers={"content-type": "application/pdf"})
        ))

        response = await api.get(f"/admin/shipping-labels/{label.id}/download", headers=await auth_headers())

        assert response.content == b"%PDF-dg"
        async with AsyncSessionLocal() as session:
            stored = (await session.execute(select(LabelModel).where(LabelModel.id == label.id))).scalar_one()
        assert base64.b64decode(stored.pdf_base64) == b"%PDF-dg"

    async def test_no_content_is_404(self, api, make_order, make_label, auth_headers):
        order = await make_order(status="ENVOYEE")
        label = await make_label(order, provider_name="Internal", tracking_number="TRK1")
        response = await api.get(f"/admin/shipping-labels/{label.id}/download", headers=await auth_headers())
        assert response.status_code == 404

    async def test_batch_rejects_mixed_carriers(self, api, make_order, make_label, auth_headers):
        order = await make_order(status="ENVOYEE")
        await make_label(order, provider_name="DIGYLOG", tracking_number="S1")
        await make_label(order, provider_name="OZON", tracking_number="OZ1")

        response = await api.post(
            "/admin/shipping-labels/download-batch",
            json={"tracking_numbers": ["S1", "OZ1"]},
            headers=await auth_headers(),
        )
        assert response.status_code == 400

    async def test_batch_unknown_tracking_is_404(self, api, auth_headers):
        response = await api.post(
            "/admin/shipping-labels/download-batch",
            json={"tracking_numbers": ["NOPE"]},
            headers=await auth_headers(),
        )
        assert response.status_code == 404


class TestSyncLogs:
    async def test_newest_first_and_filtered(self, api, db, make_order, auth_headers):
        from souk.services.sync_log import FAILURE, SEND_TO_CARRIER, SUCCESS, SYNC_TO_SHEETS, record_sync

        order = await make_order()
        await record_sync(db, order.id, SEND_TO_CARRIER, FAILURE, "timeout")
        await record_sync(db, order.id, SEND_TO_CARRIER, SUCCESS, "ok")
        await record_sync(db, order.id, SYNC_TO_SHEETS, SUCCESS, "row")

        response = await api.get(
            "/admin/sync-logs/",
            params={"order_id": order.id, "action": SEND_TO_CARRIER},
            headers=await auth_headers("admin"),
        )

        assert response.status_code == 200
        assert [entry["result"] for entry in response.json()] == [SUCCESS, FAILURE]

    async def test_operator_is_forbidden(self, api, auth_headers):
        response = await api.get("/admin/sync-logs/", headers=await auth_headers())
        assert response.status_code == 403


class TestOrderExport:
    async def test_csv_rows(self, api, db, make_order, auth_headers):
        shipped = await make_order(status="ENVOYEE", customer_name="Nadia, El Amrani", city="Tétouan")
        shipped.carrier_name = "OZON"
        shipped.tracking_number = "OZ-42"
        await db.commit()
        await make_order(status="NOUVELLE", customer_name="Hamid")

        response = await api.get("/admin/orders/export/csv", headers=await auth_headers("admin"))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "commandes-" in response.headers["content-disposition"]
        rows = list(csv.reader(io.StringIO(response.text)))
        assert rows[0][:10] == [
            "ID", "Client", "Téléphone", "Ville", "Adresse", "Total", "Livraison", "Statut", "Transporteur", "Suivi",
        ]
        assert rows[1][:10] == [
            str(shipped.id), "Nadia, El Amrani", "0612345678", "Tétouan", "12 Rue Atlas",
            "200.00", "35.00", "ENVOYEE", "OZON", "OZ-42",
        ]
        assert rows[2][1] == "Hamid"
        assert rows[2][8:10] == ["", ""]

    async def test_status_filter(self, api, make_order, auth_headers):
        await make_order(status="ENVOYEE")
        await make_order(status="NOUVELLE")

        response = await api.get(
            "/admin/orders/export/csv", params={"status": "NOUVELLE"}, headers=await auth_headers("admin"),
        )

        rows = list(csv.reader(io.StringIO(response.text)))
        assert [row[7] for row in rows[1:]] == ["NOUVELLE"]

    async def test_operator_is_forbidden(self, api, auth_headers):
        response = await api.get("/admin/orders/export/csv", headers=await auth_headers())
        assert response.status_code == 403


class TestCarrierQuote:
    async def test_active_carrier_is_internal_by_default(self, api, auth_headers):
        response = await api.post("/admin/carrier/quote", json={"city": "Fès", "weight": 1.5}, headers=await auth_headers())

        assert response.status_code == 200
        assert response.json()["carrier"] == "Internal"

    async def test_named_carrier(self, api, auth_headers, configure):
        from souk.main import app

        await configure(
            carrier_ozon_enabled="true",
            carrier_ozon_api_url="https://api.ozon.test",
            carrier_ozon_api_key="oz-key",
        )
        seen = []

        def ozon(request):
            seen.append(request)
            return httpx.Response(200, json={"price": "28.50", "estimatedDays": 2})

        app.state.http = httpx.AsyncClient(transport=httpx.MockTransport(ozon))

        response = await api.post(
            "/admin/carrier/quote", json={"carrier": "ozon", "city": "Fès", "weight": 1.5}, headers=await auth_headers(),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["carrier"] == "OZON"
        assert float(body["price"]) == 28.5
        assert body["estimated_days"] == 2
        assert json.loads(seen[0].content) == {"city": "Fès", "weight": 1.5}
