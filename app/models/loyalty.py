# app/models/loyalty.py
import enum

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Float, Boolean, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from app.db.session import Base


class PointTransactionType(str, enum.Enum):
    EARNED = "EARNED"
    REDEEMED = "REDEEMED"
    EXPIRED = "EXPIRED"
    ADJUSTED = "ADJUSTED"


# Типы, которые пополняют баланс и могут сгорать
CREDIT_TYPES = (PointTransactionType.EARNED.value, PointTransactionType.ADJUSTED.value)


class PointTransaction(Base):
    __tablename__ = "point_transactions"
    __table_args__ = (
        CheckConstraint("points >= 1", name="ck_point_transactions_points_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)

    # Всегда положительное число. Знак определяется полем `type`.
    points = Column(Integer, nullable=False)
    monetary_value = Column(Float, nullable=True)

    # EARNED, REDEEMED, EXPIRED, ADJUSTED
    type = Column(String, nullable=False, index=True)
    # Тип до сгорания. Заполняется только при переводе записи в EXPIRED.
    original_type = Column(String, nullable=True)

    description = Column(String, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True) # Для сгораемых баллов
    active = Column(Boolean, default=True, nullable=False, server_default="true")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    user = relationship("User")
    order = relationship("Order")
