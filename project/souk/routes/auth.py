# souk/routes/auth.py

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jwt import ExpiredSignatureError, InvalidTokenError
from sqlalchemy.future import select

from souk.models.user import User as UserModel
from souk.schemas.user import Token, UserResponse
from souk.utils.security import create_access_token, decode_access_token, verify_password

router = APIRouter()

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")

# ────────────── Роли ──────────────
SUPER_ADMIN = "super_admin"
ADMIN = "admin"
OPERATOR = "operator"
SUPPORT = "support"

ANY_ROLE = (SUPER_ADMIN, ADMIN, OPERATOR, SUPPORT)
OPERATOR_OR_ABOVE = (SUPER_ADMIN, ADMIN, OPERATOR)
ADMIN_OR_ABOVE = (SUPER_ADMIN, ADMIN)


async def read_user_by_login(request: Request, login: str) -> UserModel | None:
    result = await request.state.db.execute(select(UserModel).where(UserModel.login == login))
    return result.scalar_one_or_none()


async def get_current_user(request: Request, token: str = Depends(oauth2_scheme)) -> UserModel:
    """
    Проверяет JWT токен и возвращает активного пользователя.

    **Статусы:**
    - 401 Unauthorized – токен истёк, неверный, пользователь не найден или отключён
    """
    log = request.app.state.log
    try:
        payload = decode_access_token(token)
        login: str = payload.get("sub")
        if login is None:
            await log.log_error("auth", "Токен не содержит login")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    except ExpiredSignatureError:
        await log.log_warning("auth", "Токен истёк")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except InvalidTokenError:
        await log.log_warning("auth", "Неверный токен")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token invalid")

    user = await read_user_by_login(request, login)
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def require_roles(*roles: str):
    """Зависимость: пользователь с одной из ролей, иначе 403."""
    async def checker(request: Request, user: UserModel = Depends(get_current_user)) -> UserModel:
        if user.role not in roles:
            await request.app.state.log.log_warning("auth", "Доступ запрещён", {"login": user.login, "role": user.role})
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Недостаточно прав")
        return user
    return checker


# ────────────── TOKEN ──────────────
@router.post(
    "/token",
    response_model=Token,
    summary="Получение JWT токена (авторизация пользователя)",
    responses={
        200: {"description": "✅ Токен успешно получен"},
        401: {"description": "❌ Неверный логин или пароль"},
        403: {"description": "⛔ Учётная запись отключена"},
        422: {"description": "⚠️ Ошибка валидации входных данных"},
    }
)
async def login_for_access_token(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends()
):
    """
    Авторизация пользователя и получение JWT токена.

    **Входные данные (form-data):**
    - `username` (str): логин пользователя
    - `password` (str): пароль пользователя
    """
    log = request.app.state.log
    user = await read_user_by_login(request, form_data.username)

    if not user or not verify_password(form_data.password, user.password):
        await log.log_warning("auth", "Неудачная попытка входа", {"username": form_data.username})
        raise HTTPException(
            status_code=401,
            detail="Неверный логин или пароль",
            headers={"WWW-Authenticate": "Bearer"}
        )
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Учётная запись отключена")

    access_token = create_access_token(data={"sub": user.login, "role": user.role})
    await log.log_info("auth", "Пользователь успешно авторизован", {"login": user.login, "role": user.role})

    return {"access_token": access_token, "token_type": "bearer", "user": user}


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Текущий пользователь",
    responses={401: {"description": "Токен невалиден"}},
)
async def read_me(user: UserModel = Depends(get_current_user)):
    return user
