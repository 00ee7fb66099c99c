"""Shared fixtures: throw-away SQLite database, file log, fake HTTP transports."""

import os
import tempfile
import uuid
from decimal import Decimal

_TMP = tempfile.mkdtemp(prefix="souk-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP}/souk-test.db"
os.environ["LOG_DIR"] = os.path.join(_TMP, "log")
os.environ["LOG_PRINT"] = "0"
os.environ["ENABLE_SMS"] = "false"
os.environ["ENABLE_WHATSAPP"] = "false"

import httpx  # noqa: E402
import pytest  # noqa: E402

from souk.models.order import Order as OrderModel, OrderItem as OrderItemModel  # noqa: E402
from souk.models.product import Product as ProductModel  # noqa: E402
from souk.models.shipping import ShippingLabel as LabelModel  # noqa: E402
from souk.models.user import User as UserModel  # noqa: E402
from souk.models import setting as _setting_models  # noqa: E402,F401
from souk.services.settings import set_settings_service  # noqa: E402
from souk.utils.database import AsyncSessionLocal, Base, engine  # noqa: E402
from souk.utils.log import Log  # noqa: E402
from souk.utils.security import create_access_token, hash_password  # noqa: E402


@pytest.fixture
async def db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
async def log(tmp_path):
    log = Log(log_dir=str(tmp_path / "log"), log_print=False)
    yield log
    await log.shutdown()


@pytest.fixture
async def http_factory():
    """httpx.AsyncClient поверх MockTransport с заданным обработчиком."""
    clients = []

    def factory(handler):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield factory
    for client in clients:
        await client.aclose()


@pytest.fixture
def offline_http(http_factory):
    def handler(request):
        raise httpx.ConnectError("offline", request=request)
    return http_factory(handler)


@pytest.fixture
def make_order(db):
    async def factory(
        status="CONFIRMEE",
        customer_name="Fatima Zahra",
        city="Casablanca",
        price="100.00",
        quantity=2,
        delivery_cost="35.00",
    ):
        product = ProductModel(
            title="Caftan brodé",
            sku=f"SKU-{uuid.uuid4().hex[:8]}",
            price=Decimal(price),
            cost_price=Decimal("40.00"),
            stock=50,
        )
        db.add(product)
        await db.flush()
        order = OrderModel(
            customer_name=customer_name,
            phone="0612345678",
            address="12 Rue Atlas",
            city=city,
            total_price=Decimal(price) * quantity,
            delivery_cost=Decimal(delivery_cost),
            status=status,
            items=[OrderItemModel(
                product_id=product.id,
                quantity=quantity,
                unit_price=product.price,
                unit_cost=product.cost_price,
            )],
        )
        db.add(order)
        await db.commit()
        await db.refresh(order)
        return order
    return factory


@pytest.fixture
def make_label(db):
    async def factory(order, provider_name="DIGYLOG", tracking_number=None, **fields):
        label = LabelModel(
            order_id=order.id,
            provider_name=provider_name,
            tracking_number=tracking_number,
            **fields,
        )
        db.add(label)
        await db.commit()
        await db.refresh(label)
        return label
    return factory


@pytest.fixture
def configure(db):
    async def factory(**values):
        await set_settings_service(db, values)
    return factory


@pytest.fixture
def digylog_settings():
    return {
        "carrier_digylog_enabled": "true",
        "carrier_digylog_api_url": "https://api.digylog.test/api/v2/seller",
        "carrier_digylog_api_key": "dg-key",
        "carrier_digylog_store": "Souk Store",
        "carrier_digylog_network": "1",
    }


@pytest.fixture
async def api(db, log):
    """Клиент к приложению; lifespan не запускается, состояние задаётся вручную."""
    from souk.main import app

    app.state.log = log
    app.state.http = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client
    await app.state.http.aclose()


@pytest.fixture
def auth_headers(db):
    async def factory(role="operator"):
        user = UserModel(
            name=role,
            login=f"{role}-{uuid.uuid4().hex[:6]}",
            password=hash_password("secret"),
            role=role,
        )
        db.add(user)
        await db.commit()
        return {"Authorization": f"Bearer {create_access_token({'sub': user.login})}"}
    return factory
