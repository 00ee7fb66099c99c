# souk/middleware/db_middleware.py

from souk.utils.database import AsyncSessionLocal


class DBSessionMiddleware:
    """Одна сессия БД на HTTP-запрос: request.state.db."""

    def __init__(self, app, session_factory=AsyncSessionLocal):
        self.app = app
        self.session_factory = session_factory

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        state = scope.setdefault("state", {})
        state["db"] = self.session_factory()
        try:
            await self.app(scope, receive, send)
        finally:
            # закрываем сессию только после завершения запроса
            await state["db"].close()
