# app/services/coupon.py

import logging
import math
from datetime import datetime

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.crud import coupon as crud_coupon
from app.models.coupon import Coupon, CouponUser, DiscountUnit, UsedCoupon
from app.schemas.coupon import (
    CouponVerification,
    CreateCouponUserInput,
    PaginatedCouponUsers,
    SearchCouponUserInput,
)
from app.services import loyalty as loyalty_service
from app.utils.time import as_utc, utcnow

logger = logging.getLogger(__name__)


def calculate_discount(discount: float, discount_unit: str, cart_total: float, maximum_discount: float | None = None) -> float:
    """Сумма скидки для корзины. Никогда не больше самой корзины."""
    if discount_unit == DiscountUnit.PERCENT.value:
        amount = cart_total * discount / 100
        if maximum_discount is not None:
            amount = min(amount, maximum_discount)
    else:
        amount = discount
    return round(min(amount, cart_total), 2)

def ensure_percent_within_limit(discount_unit: DiscountUnit | str | None, discount: float | None) -> None:
    if discount_unit is None or discount is None:
        return
    if DiscountUnit(discount_unit) == DiscountUnit.PERCENT and discount > 100:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Percentage discount cannot exceed 100%",
        )

# --- Общие промокоды: проверка и применение ---

def verify_coupon(
    db: Session,
    user_id: int,
    code: str,
    cart_total: float,
    now: datetime | None = None,
) -> CouponVerification:
    """Проверяет промокод и считает скидку. Ничего не пишет в базу."""
    now = as_utc(now) or utcnow()
    coupon = crud_coupon.get_coupon_by_code(db, code)

    if coupon is None:
        return CouponVerification(valid=False, message="Invalid coupon code")
    if not coupon.is_active:
        return CouponVerification(valid=False, code=code, message="Coupon is not active")
    if coupon.start_date is not None and as_utc(coupon.start_date) > now:
        return CouponVerification(valid=False, code=code, message="Coupon is not active yet")
    if as_utc(coupon.expires_at) < now:
        return CouponVerification(valid=False, code=code, message="Coupon has expired")
    if coupon.minimum_purchase and cart_total < coupon.minimum_purchase:
        return CouponVerification(
            valid=False, code=code,
            message=f"Minimum purchase of {coupon.minimum_purchase} required",
        )
    if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
        return CouponVerification(valid=False, code=code, message="Coupon usage limit reached")
    if crud_coupon.has_user_used_coupon(db, coupon.id, user_id):
        return CouponVerification(valid=False, code=code, message="You have already used this coupon")

    discount = calculate_discount(coupon.discount, coupon.discount_unit, cart_total, coupon.maximum_discount)
    return CouponVerification(valid=True, code=code, discount=discount)

def apply_coupon(db: Session, user_id: int, coupon_id: int, now: datetime | None = None) -> UsedCoupon:
    """Фиксирует использование общего промокода пользователем."""
    now = as_utc(now) or utcnow()
    coupon = crud_coupon.get_coupon(db, coupon_id)

    if coupon is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Coupon not found")
    if not coupon.is_active or as_utc(coupon.expires_at) < now:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Coupon has expired")
    if coupon.start_date is not None and as_utc(coupon.start_date) > now:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Coupon is not active yet")
    if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Coupon usage limit reached")
    if crud_coupon.has_user_used_coupon(db, coupon.id, user_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You have already used this coupon")

    try:
        used_coupon = crud_coupon.create_used_coupon(db, coupon_id=coupon.id, user_id=user_id)
        coupon.usage_count = Coupon.usage_count + 1
        db.commit()
    except IntegrityError:
        # Параллельный запрос того же пользователя успел первым
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You have already used this coupon")
    except Exception:
        db.rollback()
        raise

    db.refresh(used_coupon)
    logger.info(f"User {user_id} applied coupon '{coupon.code}'.")
    return used_coupon

# --- Персональные купоны за баллы ---

def create_coupon_user(db: Session, data: CreateCouponUserInput, now: datetime | None = None) -> CouponUser:
    """
    Выпускает персональный купон в обмен на баллы.
    Купон и REDEEMED-запись в журнале создаются в одной транзакции:
    либо обе записи, либо ни одной.
    """
    ensure_percent_within_limit(data.discount_unit, data.discount)

    try:
        _, balance = loyalty_service.lock_user_balance(db, data.user_id, now)

        if data.points > balance.available_points:
            logger.warning(
                f"User {data.user_id}: coupon '{data.code}' for {data.points} points rejected, "
                f"only {balance.available_points} available."
            )
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Not enough points")

        if crud_coupon.get_coupon_user_by_code(db, data.code) is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Coupon with this code already exists",
            )

        coupon_user = CouponUser(
            code=data.code,
            user_id=data.user_id,
            discount=data.discount,
            discount_unit=data.discount_unit.value,
            points=data.points,
            minimum_purchase=data.minimum_purchase,
            expires_at=as_utc(data.expires_at),
        )
        db.add(coupon_user)
        db.flush()

        loyalty_service.append_redemption(
            db,
            user_id=data.user_id,
            points=data.points,
            balance=balance,
            description=f"Points redeemed for coupon: {data.code}",
        )
        db.commit()
    except HTTPException:
        # Отказ до записи списания: фиксируем только сгорание, выполненное при расчете баланса
        db.commit()
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(coupon_user)
    logger.info(f"User {data.user_id}: issued coupon '{data.code}' for {data.points} points.")
    return coupon_user

def search_coupon_users(db: Session, params: SearchCouponUserInput) -> PaginatedCouponUsers:
    items, total = crud_coupon.search_coupon_users(db, params)
    return PaginatedCouponUsers(
        total_items=total,
        total_pages=math.ceil(total / params.limit),
        current_page=params.page,
        size=params.limit,
        items=items,
    )

def get_coupon_user(db: Session, coupon_user_id: int) -> CouponUser:
    coupon_user = crud_coupon.get_coupon_user(db, coupon_user_id)
    if coupon_user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User coupon not found")
    return coupon_user

def get_coupon_user_by_code(db: Session, code: str) -> CouponUser:
    coupon_user = crud_coupon.get_coupon_user_by_code(db, code)
    if coupon_user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User coupon not found")
    return coupon_user

def verify_user_coupon(
    db: Session,
    user_id: int,
    code: str,
    cart_total: float,
    now: datetime | None = None,
) -> CouponVerification:
    """Проверяет персональный купон без изменения его состояния."""
    now = as_utc(now) or utcnow()
    coupon_user = crud_coupon.get_coupon_user_by_code(db, code)

    if coupon_user is None:
        return CouponVerification(valid=False, message="Invalid coupon code")
    if coupon_user.user_id != user_id:
        return CouponVerification(valid=False, code=code, message="This coupon belongs to another user")
    if coupon_user.used_at is not None:
        return CouponVerification(valid=False, code=code, message="This coupon has already been used")
    if coupon_user.expires_at is not None and as_utc(coupon_user.expires_at) < now:
        return CouponVerification(valid=False, code=code, message="Coupon has expired")
    if coupon_user.minimum_purchase and cart_total < coupon_user.minimum_purchase:
        return CouponVerification(
            valid=False, code=code,
            message=f"Minimum purchase of {coupon_user.minimum_purchase} required",
        )

    discount = calculate_discount(coupon_user.discount, coupon_user.discount_unit, cart_total)
    return CouponVerification(valid=True, code=code, discount=discount)

def apply_user_coupon(db: Session, user_id: int, code: str, now: datetime | None = None) -> CouponUser:
    """
    Погашает персональный купон: used_at переходит из NULL в момент погашения.
    Обратного перехода нет.
    """
    now = as_utc(now) or utcnow()
    coupon_user = crud_coupon.get_coupon_user_by_code(db, code)

    if coupon_user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Coupon not found")
    if coupon_user.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="This coupon belongs to another user")
    if coupon_user.used_at is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="This coupon has already been used")
    if coupon_user.expires_at is not None and as_utc(coupon_user.expires_at) < now:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Coupon has expired")

    # Условие на used_at IS NULL защищает от двойного погашения параллельными запросами
    updated = db.query(CouponUser).filter(
        CouponUser.id == coupon_user.id,
        CouponUser.used_at.is_(None),
    ).update({CouponUser.used_at: now}, synchronize_session="fetch")
    if not updated:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="This coupon has already been used")

    db.commit()
    db.refresh(coupon_user)
    logger.info(f"User {user_id} applied personal coupon '{code}'.")
    return coupon_user
