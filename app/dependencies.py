# app/dependencies.py

import logging
from typing import Iterator

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from jose import JWTError

from app.core.security import decode_access_token
from app.crud import user as crud_user
from app.db.session import SessionLocal
from app.models.user import User

logger = logging.getLogger(__name__)

# --- Схемы аутентификации ---
strict_bearer_scheme = HTTPBearer(auto_error=True)


# --- Управление сессией БД ---
def get_db() -> Iterator[Session]:
    """
    Основная зависимость FastAPI для получения сессии БД.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# --- Зависимости аутентификации и авторизации ---

def _user_id_from_token(token: str) -> int | None:
    try:
        payload = decode_access_token(token)
    except JWTError as e:
        logger.warning(f"JWT Error during token decoding: {e}")
        return None

    user_id = payload.get("sub")
    if user_id is None:
        logger.warning("Token payload is missing 'sub' (user_id).")
        return None
    try:
        return int(user_id)
    except (TypeError, ValueError):
        logger.warning(f"Token 'sub' is not a valid user id: {user_id!r}")
        return None


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(strict_bearer_scheme),
    db: Session = Depends(get_db)
) -> User:
    """
    ОБЯЗАТЕЛЬНАЯ зависимость.
    Требует валидный токен. Если его нет или он невалиден - ошибка 401.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    user_id = _user_id_from_token(credentials.credentials)
    if user_id is None:
        raise credentials_exception

    user = crud_user.get_user_by_id(db, user_id)
    if user is None or not user.is_active:
        logger.warning(f"User with ID {user_id} from token not found in DB or inactive.")
        raise credentials_exception

    request.state.user = user
    logger.debug(f"Successfully authenticated user ID: {user.id}")
    return user


def get_admin_user(current_user: User = Depends(get_current_user)) -> User:
    """
    Зависимость для защиты админских эндпоинтов.
    Проверяет роль текущего пользователя.
    """
    if not current_user.is_admin:
        logger.warning(f"Permission denied for user {current_user.id} with role {current_user.role}.")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to access this resource."
        )
    return current_user
