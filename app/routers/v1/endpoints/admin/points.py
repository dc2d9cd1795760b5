# app/routers/v1/endpoints/admin/points.py

import logging
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.dependencies import get_db
from app.models.loyalty import PointTransactionType
from app.schemas.common import GenericResponse
from app.schemas.loyalty import (
    AwardPointsInput,
    CreatePointTransactionInput,
    PaginatedPointTransactions,
    PointBalance,
    PointTransaction,
    SearchPointTransactionInput,
    UpdatePointTransactionInput,
)
from app.services import loyalty as loyalty_service

logger = logging.getLogger(__name__)

# Префикс /points добавляется в admin/__init__.py
router = APIRouter()


@router.get("", response_model=PaginatedPointTransactions)
def search_point_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    user_id: Optional[int] = None,
    order_id: Optional[int] = None,
    type: Optional[PointTransactionType] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    active: Optional[bool] = None,
    sort_by: Literal["created_at", "points", "type", "expires_at"] = "created_at",
    sort_direction: Literal["asc", "desc"] = "desc",
    db: Session = Depends(get_db)
):
    """
    [АДМИН] Поиск по журналу баллов с фильтрами и пагинацией.
    """
    params = SearchPointTransactionInput(
        page=page,
        limit=limit,
        user_id=user_id,
        order_id=order_id,
        type=type,
        start_date=start_date,
        end_date=end_date,
        active=active,
        sort_by=sort_by,
        sort_direction=sort_direction,
    )
    return loyalty_service.search_point_transactions(db, params)


@router.post("", response_model=PointTransaction, status_code=status.HTTP_201_CREATED)
def create_point_transaction(
    data: CreatePointTransactionInput,
    db: Session = Depends(get_db)
):
    """
    [АДМИН] Прямая запись в журнал (начисление или корректировка).
    Для списаний используйте эндпоинт redeem: он проверяет баланс.
    """
    return loyalty_service.create_point_transaction(db, data)


@router.post("/award", response_model=PointTransaction, status_code=status.HTTP_201_CREATED)
def award_points(
    data: AwardPointsInput,
    db: Session = Depends(get_db)
):
    """[АДМИН] Начисляет баллы пользователю со стандартным сроком действия."""
    return loyalty_service.award_points(
        db,
        user_id=data.user_id,
        points=data.points,
        order_id=data.order_id,
        description=data.description,
        expires_at=data.expires_at,
    )


@router.post("/orders/{order_id}/cashback", response_model=Optional[PointTransaction])
def award_order_cashback(
    order_id: int,
    db: Session = Depends(get_db)
):
    """
    [АДМИН] Начисляет кешбэк за заказ.
    Возвращает null, если сумма заказа слишком мала для начисления.
    """
    return loyalty_service.award_cashback_for_order(db, order_id)


@router.get("/users/{user_id}/balance", response_model=PointBalance)
def get_user_balance(
    user_id: int,
    db: Session = Depends(get_db)
):
    """[АДМИН] Баланс произвольного пользователя."""
    return loyalty_service.get_user_point_balance(db, user_id)


@router.get("/{transaction_id}", response_model=PointTransaction)
def get_point_transaction(
    transaction_id: int,
    db: Session = Depends(get_db)
):
    return loyalty_service.get_point_transaction(db, transaction_id)


@router.patch("/{transaction_id}", response_model=PointTransaction)
def update_point_transaction(
    transaction_id: int,
    data: UpdatePointTransactionInput,
    db: Session = Depends(get_db)
):
    """[АДМИН] Частичное обновление записи журнала."""
    return loyalty_service.update_point_transaction(db, transaction_id, data)


@router.delete("/{transaction_id}", response_model=GenericResponse)
def delete_point_transaction(
    transaction_id: int,
    db: Session = Depends(get_db)
):
    """
    [АДМИН] Физически удаляет запись. Баланс пользователя пересчитается
    при следующем чтении.
    """
    return loyalty_service.delete_point_transaction(db, transaction_id)
