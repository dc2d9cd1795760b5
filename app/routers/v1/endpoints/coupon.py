# app/routers/v1/endpoints/coupon.py

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.limiter import limiter
from app.dependencies import get_current_user, get_db
from app.models.user import User
from app.schemas.coupon import (
    ApplyUserCouponInput,
    CouponUser,
    CouponVerification,
    PaginatedCouponUsers,
    SearchCouponUserInput,
    UsedCoupon,
    VerifyCouponInput,
)
from app.services import coupon as coupon_service

logger = logging.getLogger(__name__)
router = APIRouter()


# --- Персональные купоны за баллы ---

@router.get("/coupons/user/me", response_model=PaginatedCouponUsers)
def get_my_coupons(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    used: Optional[bool] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Персональные купоны текущего пользователя."""
    params = SearchCouponUserInput(page=page, limit=limit, used=used, user_id=current_user.id)
    return coupon_service.search_coupon_users(db, params)


@router.post("/coupons/user/verify", response_model=CouponVerification)
def verify_my_coupon(
    request_data: VerifyCouponInput,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Проверяет персональный купон и считает скидку для корзины."""
    return coupon_service.verify_user_coupon(db, current_user.id, request_data.code, request_data.cart_total)


@router.post("/coupons/user/apply", response_model=CouponUser)
@limiter.limit(settings.REDEEM_RATE_LIMIT)
def apply_my_coupon(
    request: Request,
    request_data: ApplyUserCouponInput,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Погашает персональный купон. Повторно использовать его нельзя."""
    return coupon_service.apply_user_coupon(db, current_user.id, request_data.code)


# --- Общие промокоды магазина ---

@router.post("/coupons/verify", response_model=CouponVerification)
def verify_coupon_endpoint(
    request_data: VerifyCouponInput,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Валидирует промокод для суммы корзины.
    Возвращает признак применимости и точную сумму скидки.
    """
    return coupon_service.verify_coupon(db, current_user.id, request_data.code, request_data.cart_total)


@router.post("/coupons/{coupon_id}/apply", response_model=UsedCoupon)
def apply_coupon_endpoint(
    coupon_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Фиксирует использование промокода текущим пользователем."""
    return coupon_service.apply_coupon(db, current_user.id, coupon_id)
