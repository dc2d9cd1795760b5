# app/crud/coupon.py

from datetime import datetime
from typing import List, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models.coupon import Coupon, CouponUser, UsedCoupon
from app.schemas.coupon import SearchCouponInput, SearchCouponUserInput

# --- Общие промокоды ---

def get_coupon(db: Session, coupon_id: int) -> Coupon | None:
    return db.query(Coupon).filter(Coupon.id == coupon_id).first()

def get_coupon_by_code(db: Session, code: str) -> Coupon | None:
    return db.query(Coupon).filter(Coupon.code == code).first()

def search_coupons(db: Session, params: SearchCouponInput, now: datetime) -> Tuple[List[Coupon], int]:
    query = db.query(Coupon)

    if params.search:
        pattern = f"%{params.search}%"
        query = query.filter(or_(Coupon.name.ilike(pattern), Coupon.code.ilike(pattern)))
    if params.active is True:
        query = query.filter(Coupon.expires_at >= now)
    elif params.active is False:
        query = query.filter(Coupon.expires_at < now)

    total = query.count()

    sort_column = getattr(Coupon, params.sort_by)
    order_by = sort_column.asc() if params.sort_direction == "asc" else sort_column.desc()
    items = (
        query.order_by(order_by, Coupon.id.desc())
        .offset((params.page - 1) * params.limit)
        .limit(params.limit)
        .all()
    )
    return items, total

def has_user_used_coupon(db: Session, coupon_id: int, user_id: int) -> bool:
    return db.query(UsedCoupon.id).filter_by(
        coupon_id=coupon_id, user_id=user_id, used=True
    ).first() is not None

def create_used_coupon(db: Session, coupon_id: int, user_id: int) -> UsedCoupon:
    """Требует внешнего вызова db.commit()."""
    used_coupon = UsedCoupon(coupon_id=coupon_id, user_id=user_id, used=True)
    db.add(used_coupon)
    return used_coupon

# --- Персональные купоны за баллы ---

def get_coupon_user(db: Session, coupon_user_id: int) -> CouponUser | None:
    return db.query(CouponUser).filter(CouponUser.id == coupon_user_id).first()

def get_coupon_user_by_code(db: Session, code: str) -> CouponUser | None:
    return db.query(CouponUser).filter(CouponUser.code == code).first()

def search_coupon_users(db: Session, params: SearchCouponUserInput) -> Tuple[List[CouponUser], int]:
    query = db.query(CouponUser)

    if params.search:
        query = query.filter(CouponUser.code.ilike(f"%{params.search}%"))
    if params.user_id is not None:
        query = query.filter(CouponUser.user_id == params.user_id)
    if params.used is True:
        query = query.filter(CouponUser.used_at.isnot(None))
    elif params.used is False:
        query = query.filter(CouponUser.used_at.is_(None))

    total = query.count()

    sort_column = getattr(CouponUser, params.sort_by)
    order_by = sort_column.asc() if params.sort_direction == "asc" else sort_column.desc()
    items = (
        query.order_by(order_by, CouponUser.id.desc())
        .offset((params.page - 1) * params.limit)
        .limit(params.limit)
        .all()
    )
    return items, total
