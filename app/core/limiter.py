# app/core/limiter.py

import logging
from typing import Optional

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings
from app.models.user import User

logger = logging.getLogger(__name__)

# --- Функция-ключ для идентификации запросов ---

def key_func(request: Request) -> str:
    """
    Определяет, как идентифицировать запрос для применения лимита.
    Приоритет: ID пользователя (если авторизован) -> IP-адрес.
    """
    # Пользователь кладется в request.state зависимостью get_current_user
    user: Optional[User] = getattr(request.state, "user", None)

    if user and user.id:
        return str(user.id)

    return get_remote_address(request)

# --- Создание и конфигурация лимитера ---

# Хранилище счетчиков берется из настроек: в проде это Redis,
# локально и в тестах - память процесса.
# 'moving-window' - гибкий алгоритм, не допускающий всплесков на границе окна.
limiter = Limiter(
    key_func=key_func,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    strategy="moving-window",
)
