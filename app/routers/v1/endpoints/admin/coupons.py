# app/routers/v1/endpoints/admin/coupons.py

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.dependencies import get_admin_user, get_db
from app.models.user import User
from app.schemas.common import GenericResponse
from app.schemas.coupon import (
    CouponCreate,
    CouponDetails,
    CouponUpdate,
    CouponUser,
    CreateCouponUserInput,
    PaginatedAdminCoupons,
    PaginatedCouponUsers,
    SearchCouponInput,
    SearchCouponUserInput,
)
from app.services import coupon as coupon_service
from app.services import coupon_admin as coupon_admin_service

logger = logging.getLogger(__name__)

# Создаем роутер для этого модуля.
router = APIRouter()


# --- Персональные купоны ---
# Регистрируются раньше "/{coupon_id}", иначе "user" попадет в coupon_id.

@router.post("/user", response_model=CouponUser, status_code=status.HTTP_201_CREATED)
def create_user_coupon(
    data: CreateCouponUserInput,
    db: Session = Depends(get_db)
):
    """
    [АДМИН] Выпускает персональный купон за баллы пользователя.
    Баллы списываются в той же транзакции.
    """
    return coupon_service.create_coupon_user(db, data)


@router.get("/user", response_model=PaginatedCouponUsers)
def search_user_coupons(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    search: Optional[str] = None,
    user_id: Optional[int] = None,
    used: Optional[bool] = None,
    sort_by: Literal["code", "discount", "points", "created_at", "used_at"] = "created_at",
    sort_direction: Literal["asc", "desc"] = "desc",
    db: Session = Depends(get_db)
):
    params = SearchCouponUserInput(
        page=page,
        limit=limit,
        search=search,
        user_id=user_id,
        used=used,
        sort_by=sort_by,
        sort_direction=sort_direction,
    )
    return coupon_service.search_coupon_users(db, params)


@router.get("/user/code/{code}", response_model=CouponUser)
def get_user_coupon_by_code(
    code: str,
    db: Session = Depends(get_db)
):
    return coupon_service.get_coupon_user_by_code(db, code)


@router.get("/user/{coupon_user_id}", response_model=CouponUser)
def get_user_coupon(
    coupon_user_id: int,
    db: Session = Depends(get_db)
):
    return coupon_service.get_coupon_user(db, coupon_user_id)


# --- Промокоды магазина ---

@router.get("", response_model=PaginatedAdminCoupons)
def get_coupons_list(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    search: Optional[str] = None,
    active: Optional[bool] = None,
    sort_by: Literal["name", "code", "discount", "expires_at", "created_at"] = "created_at",
    sort_direction: Literal["asc", "desc"] = "desc",
    db: Session = Depends(get_db)
):
    """
    [АДМИН] Получает список промокодов с поиском по коду и названию.
    """
    params = SearchCouponInput(
        page=page,
        limit=limit,
        search=search,
        active=active,
        sort_by=sort_by,
        sort_direction=sort_direction,
    )
    return coupon_admin_service.search_coupons(db, params)


@router.post("", response_model=CouponDetails, status_code=status.HTTP_201_CREATED)
def create_new_coupon(
    coupon_data: CouponCreate,
    admin_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """
    [АДМИН] Создает новый промокод.
    """
    return coupon_admin_service.create_coupon(db, admin_user.id, coupon_data)


@router.get("/code/{code}", response_model=CouponDetails)
def get_coupon_by_code(
    code: str,
    db: Session = Depends(get_db)
):
    return coupon_admin_service.get_coupon_by_code(db, code)


@router.get("/{coupon_id}", response_model=CouponDetails)
def get_coupon(
    coupon_id: int,
    db: Session = Depends(get_db)
):
    return coupon_admin_service.get_coupon(db, coupon_id)


@router.patch("/{coupon_id}", response_model=CouponDetails)
def update_coupon(
    coupon_id: int,
    coupon_data: CouponUpdate,
    db: Session = Depends(get_db)
):
    return coupon_admin_service.update_coupon(db, coupon_id, coupon_data)


@router.delete("/{coupon_id}", response_model=GenericResponse)
def delete_existing_coupon(
    coupon_id: int,
    db: Session = Depends(get_db)
):
    """
    [АДМИН] Безвозвратно удаляет промокод.
    """
    return coupon_admin_service.delete_coupon(db, coupon_id)
