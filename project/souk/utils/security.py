# souk/utils/security.py

"""
Хэширование паролей и JWT токены.
passlib с sha256_crypt, чтобы не зависеть от bcrypt.
"""

from datetime import datetime, timedelta, timezone

from jwt import encode, decode
from passlib.context import CryptContext

from souk.config import settings

pwd_context = CryptContext(schemes=["sha256_crypt"], deprecated="auto")

ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Проверяет совпадение пароля с его хэшем.

    :param plain_password: строка пароля пользователя
    :param hashed_password: хэшированный пароль из базы
    :return: True если пароль совпадает с хэшем, иначе False
    """
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """
    Вход: dict (например {"sub": "login", "role": "operator"})
    Выход: JWT строка
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.AUTH_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return encode(to_encode, settings.AUTH_SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Бросает ExpiredSignatureError / InvalidTokenError из PyJWT."""
    return decode(token, settings.AUTH_SECRET_KEY, algorithms=[ALGORITHM])
