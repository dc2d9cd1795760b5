# app/models/coupon.py
import enum

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Float, Boolean, CheckConstraint, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from app.db.session import Base


class DiscountUnit(str, enum.Enum):
    FLAT = "FLAT"
    PERCENT = "PERCENT"


class Coupon(Base):
    """Общий промокод магазина, создается администратором."""
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)

    discount = Column(Float, nullable=False)
    discount_unit = Column(String, nullable=False, default=DiscountUnit.PERCENT.value)
    minimum_purchase = Column(Float, nullable=True)
    maximum_discount = Column(Float, nullable=True)

    start_date = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, server_default="true")

    usage_limit = Column(Integer, nullable=True)
    usage_count = Column(Integer, default=0, nullable=False, server_default="0")

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    used_coupons = relationship("UsedCoupon", back_populates="coupon", cascade="all, delete-orphan")


class UsedCoupon(Base):
    """Факт использования общего промокода конкретным пользователем."""
    __tablename__ = "used_coupons"
    __table_args__ = (
        UniqueConstraint("coupon_id", "user_id", name="uq_used_coupons_coupon_user"),
    )

    id = Column(Integer, primary_key=True, index=True)
    coupon_id = Column(Integer, ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    used = Column(Boolean, default=True, nullable=False, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    coupon = relationship("Coupon", back_populates="used_coupons")


class CouponUser(Base):
    """Персональный купон, выпущенный в обмен на бонусные баллы."""
    __tablename__ = "coupon_users"
    __table_args__ = (
        CheckConstraint("points >= 1", name="ck_coupon_users_points_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, unique=True, index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    discount = Column(Float, nullable=False)
    discount_unit = Column(String, nullable=False)
    points = Column(Integer, nullable=False)
    minimum_purchase = Column(Float, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    # NULL, пока купон не использован. Переход только в одну сторону.
    used_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    user = relationship("User")
