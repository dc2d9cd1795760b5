# app/routers/v1/endpoints/points.py

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.limiter import limiter
from app.dependencies import get_current_user, get_db
from app.models.loyalty import PointTransactionType
from app.models.user import User
from app.schemas.loyalty import (
    PaginatedPointTransactions,
    PointBalance,
    PointTransaction,
    RedeemPointsInput,
    SearchPointTransactionInput,
)
from app.services import loyalty as loyalty_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/points/me/balance", response_model=PointBalance)
def get_my_point_balance(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Баланс бонусных баллов текущего пользователя.
    Побочный эффект: просроченные начисления переводятся в EXPIRED.
    """
    return loyalty_service.get_user_point_balance(db, current_user.id)


@router.get("/points/me/transactions", response_model=PaginatedPointTransactions)
def get_my_point_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    type: Optional[PointTransactionType] = None,
    active: Optional[bool] = None,
    sort_by: Literal["created_at", "points", "type", "expires_at"] = "created_at",
    sort_direction: Literal["asc", "desc"] = "desc",
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """История операций с баллами текущего пользователя (от новых к старым)."""
    params = SearchPointTransactionInput(
        page=page,
        limit=limit,
        user_id=current_user.id,
        type=type,
        active=active,
        sort_by=sort_by,
        sort_direction=sort_direction,
    )
    return loyalty_service.search_point_transactions(db, params)


@router.post("/points/me/redeem", response_model=PointTransaction, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.REDEEM_RATE_LIMIT)
def redeem_my_points(
    request: Request,
    redeem_data: RedeemPointsInput,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Списание баллов. Не больше доступного баланса.
    """
    return loyalty_service.redeem_points(db, current_user.id, redeem_data)
