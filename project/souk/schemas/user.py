# souk/schemas/user.py

from pydantic import BaseModel
from typing import Optional
from datetime import datetime

class UserResponse(BaseModel):
    """
    Схема для ответа API при чтении пользователя (без пароля)
    """
    id: int
    name: Optional[str] = None
    login: str
    role: str
    is_active: bool
    timestamp: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
