# app/services/coupon_admin.py

import logging
import math

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.crud import coupon as crud_coupon
from app.models.coupon import Coupon
from app.schemas.common import GenericResponse
from app.schemas.coupon import CouponCreate, CouponUpdate, PaginatedAdminCoupons, SearchCouponInput
from app.services.coupon import ensure_percent_within_limit
from app.utils.time import as_utc, utcnow

logger = logging.getLogger(__name__)

_DATE_FIELDS = ("start_date", "expires_at")


def create_coupon(db: Session, admin_user_id: int, coupon_data: CouponCreate) -> Coupon:
    """
    Создает новый промокод.
    """
    if crud_coupon.get_coupon_by_code(db, coupon_data.code) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Coupon with this code already exists")

    ensure_percent_within_limit(coupon_data.discount_unit, coupon_data.discount)

    payload = coupon_data.model_dump()
    payload["discount_unit"] = coupon_data.discount_unit.value
    for field in _DATE_FIELDS:
        payload[field] = as_utc(payload[field])

    coupon = Coupon(**payload, created_by=admin_user_id)
    db.add(coupon)
    db.commit()
    db.refresh(coupon)
    logger.info(f"Admin {admin_user_id} created coupon '{coupon.code}'.")
    return coupon


def search_coupons(db: Session, params: SearchCouponInput) -> PaginatedAdminCoupons:
    items, total = crud_coupon.search_coupons(db, params, now=utcnow())
    return PaginatedAdminCoupons(
        total_items=total,
        total_pages=math.ceil(total / params.limit),
        current_page=params.page,
        size=params.limit,
        items=items,
    )


def get_coupon(db: Session, coupon_id: int) -> Coupon:
    coupon = crud_coupon.get_coupon(db, coupon_id)
    if coupon is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Coupon not found")
    return coupon


def get_coupon_by_code(db: Session, code: str) -> Coupon:
    coupon = crud_coupon.get_coupon_by_code(db, code)
    if coupon is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Coupon not found")
    return coupon


def update_coupon(db: Session, coupon_id: int, coupon_data: CouponUpdate) -> Coupon:
    coupon = get_coupon(db, coupon_id)
    changes = coupon_data.model_dump(exclude_unset=True)

    new_code = changes.get("code")
    if new_code and new_code != coupon.code and crud_coupon.get_coupon_by_code(db, new_code) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Coupon with this code already exists")

    # Проверяем итоговое состояние: новая единица скидки или старая
    ensure_percent_within_limit(
        changes.get("discount_unit") or coupon.discount_unit,
        changes.get("discount", coupon.discount),
    )

    for field, value in changes.items():
        if field == "discount_unit" and value is not None:
            value = value.value
        elif field in _DATE_FIELDS:
            value = as_utc(value)
        setattr(coupon, field, value)

    db.commit()
    db.refresh(coupon)
    logger.info(f"Coupon {coupon_id} updated.")
    return coupon


def delete_coupon(db: Session, coupon_id: int) -> GenericResponse:
    """
    Безвозвратно удаляет промокод вместе с историей его использования.
    """
    coupon = get_coupon(db, coupon_id)
    db.delete(coupon)
    db.commit()
    logger.info(f"Coupon {coupon_id} deleted.")
    return GenericResponse(success=True, message="Coupon deleted successfully")
