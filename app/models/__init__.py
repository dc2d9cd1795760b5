# app/models/__init__.py
# Импортируем все модели, чтобы SQLAlchemy зарегистрировал таблицы и внешние ключи
from app.models.user import User  # noqa: F401
from app.models.order import Order  # noqa: F401
from app.models.loyalty import PointTransaction  # noqa: F401
from app.models.coupon import Coupon, UsedCoupon, CouponUser  # noqa: F401
