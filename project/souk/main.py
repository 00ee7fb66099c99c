# souk/main.py

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import httpx
import uvicorn
from dotenv import load_dotenv
from contextlib import asynccontextmanager

from souk.config import settings
from souk.utils.log import Log
from souk.utils.database import init_db
from souk.middleware.db_middleware import DBSessionMiddleware

import os
import multiprocessing

# --- загрузка переменных окружения ---
load_dotenv()

# --- sync логгер для раннего старта ---
boot_log = Log()
if os.environ.get("RUN_MAIN") == "true" or multiprocessing.current_process().name == "MainProcess":
    boot_log.log_info_sync(target="startup", message="Импорты main.py выполнены")

# ────────────── Lifespan ──────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    boot_log.log_info_sync(target="startup", message="lifespan: startup начат")

    # Инициализация БД
    created_admin = await init_db()
    boot_log.log_info_sync(target="startup", message="База инициализирована", data={"created_admin": created_admin})

    app.state.log = Log()
    await app.state.log.log_info(target="startup", message="Async Log инициализирован")

    # один HTTP-клиент на все внешние вызовы (перевозчики, Google, Twilio)
    app.state.http = httpx.AsyncClient(timeout=settings.CARRIER_TIMEOUT)

    yield

    # shutdown
    await app.state.http.aclose()
    await app.state.log.log_info(target="shutdown", message="Остановка приложения")
    await app.state.log.shutdown()
    boot_log.log_info_sync(target="shutdown", message="Log корректно завершён")

# ────────────── Создаём FastAPI приложение ──────────────
app = FastAPI(title="Souk COD Back-office API", lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# DB middleware для request.state.db
app.add_middleware(DBSessionMiddleware)

@app.get("/")
def read_root():
    return {"status": "ok"}

# ────────────── Подключение роутов ──────────────
from souk.routes import (  # noqa: E402
    analytics, auth, carrier, checkout, label, notification, order, setting, sheets, sync_log,
)

app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(checkout.router, prefix="/orders", tags=["checkout"])
app.include_router(carrier.webhook_router, prefix="/webhooks", tags=["webhooks"])

app.include_router(order.router, prefix="/admin/orders", tags=["orders"])
app.include_router(carrier.router, prefix="/admin/carrier", tags=["carrier"])
app.include_router(label.router, prefix="/admin/shipping-labels", tags=["shipping-labels"])
app.include_router(sync_log.router, prefix="/admin/sync-logs", tags=["sync-logs"])
app.include_router(setting.router, prefix="/admin/settings", tags=["settings"])
app.include_router(sheets.router, prefix="/admin/google-sheets", tags=["google-sheets"])
app.include_router(notification.router, prefix="/admin/notifications", tags=["notifications"])
app.include_router(analytics.router, prefix="/admin", tags=["analytics"])

# ────────────── Запуск uvicorn ──────────────
if __name__ == "__main__":
    boot_log.log_info_sync(target="startup", message="Запуск uvicorn.run")
    uvicorn.run(
        "souk.main:app",
        host="127.0.0.1",
        port=8000,
        log_level="info",
        reload=True
    )
