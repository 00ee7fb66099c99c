# souk/utils/database.py

from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from sqlalchemy.future import select
from souk.config import settings
from souk.utils.security import hash_password

# ────────────── Base для моделей ──────────────
Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)

# ────────────── Асинхронный движок ──────────────
SQLALCHEMY_DATABASE_URL = settings.DATABASE_URL

engine_options = {"echo": False}
if SQLALCHEMY_DATABASE_URL.startswith("sqlite"):
    # соединения aiosqlite привязаны к event loop, поэтому без пула
    engine_options["poolclass"] = NullPool

engine = create_async_engine(SQLALCHEMY_DATABASE_URL, **engine_options)

# ────────────── Асинхронная сессия ──────────────
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# ────────────── Инициализация базы данных ──────────────
async def init_db():
    """
    Создаёт все таблицы (если ещё не созданы) и первого супер-админа,
    если в базе нет ни одного пользователя с ролью super_admin.
    """
    from souk.models import order, product, shipping, setting, user  # noqa: F401  регистрация таблиц
    from souk.models.user import User

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        result = await session.execute(select(User).where(User.role == "super_admin"))
        if result.scalars().first() is None:
            session.add(User(
                name="Administrator",
                login=settings.AUTH_ADMIN_LOGIN,
                password=hash_password(settings.AUTH_ADMIN_PASSWORD),
                role="super_admin",
            ))
            await session.commit()
            return True
    return False
