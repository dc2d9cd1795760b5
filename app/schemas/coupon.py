# app/schemas/coupon.py

from datetime import datetime
from pydantic import BaseModel, Field, model_validator
from typing import Literal, Optional

from app.models.coupon import DiscountUnit
from app.schemas.common import PaginatedResponse


# --- Общие промокоды магазина ---

class CouponDetails(BaseModel):
    """Полная информация о промокоде."""
    id: int
    code: str
    name: str
    description: Optional[str] = None
    discount: float
    discount_unit: DiscountUnit
    minimum_purchase: Optional[float] = None
    maximum_discount: Optional[float] = None
    start_date: Optional[datetime] = None
    expires_at: datetime
    is_active: bool
    usage_limit: Optional[int] = None
    usage_count: int
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PaginatedAdminCoupons(PaginatedResponse[CouponDetails]):
    pass


class CouponCreate(BaseModel):
    """Схема для создания нового промокода."""
    code: str = Field(..., min_length=3, max_length=20, description="Код купона, например, 'SALE10'")
    name: str = Field(..., min_length=3, max_length=50)
    description: Optional[str] = None
    discount: float = Field(..., ge=0.1, description="Размер скидки: процент или фиксированная сумма")
    discount_unit: DiscountUnit = DiscountUnit.PERCENT
    minimum_purchase: Optional[float] = Field(None, ge=0)
    maximum_discount: Optional[float] = Field(None, gt=0)
    start_date: Optional[datetime] = None
    expires_at: datetime
    is_active: bool = True
    usage_limit: Optional[int] = Field(None, gt=0, description="Сколько всего раз можно использовать купон?")


class CouponUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=3, max_length=20)
    name: Optional[str] = Field(None, min_length=3, max_length=50)
    description: Optional[str] = None
    discount: Optional[float] = Field(None, ge=0.1)
    discount_unit: Optional[DiscountUnit] = None
    minimum_purchase: Optional[float] = Field(None, ge=0)
    maximum_discount: Optional[float] = Field(None, gt=0)
    start_date: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_active: Optional[bool] = None
    usage_limit: Optional[int] = Field(None, gt=0)


class SearchCouponInput(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=50)
    search: Optional[str] = None
    # True - только действующие (не истекшие), False - только истекшие
    active: Optional[bool] = None
    sort_by: Literal["name", "code", "discount", "expires_at", "created_at"] = "created_at"
    sort_direction: Literal["asc", "desc"] = "desc"


class VerifyCouponInput(BaseModel):
    code: str = Field(..., min_length=1)
    cart_total: float = Field(..., ge=0)


class CouponVerification(BaseModel):
    """
    Результат проверки купона. Проверка не бросает исключений:
    причина отказа возвращается в `message`.
    """
    valid: bool
    message: Optional[str] = None
    code: Optional[str] = None
    discount: float = 0.0


class UsedCoupon(BaseModel):
    id: int
    coupon_id: int
    user_id: int
    used: bool
    created_at: datetime

    class Config:
        from_attributes = True


# --- Персональные купоны за баллы ---

class CouponUser(BaseModel):
    id: int
    code: str
    user_id: int
    discount: float
    discount_unit: DiscountUnit
    points: int
    minimum_purchase: Optional[float] = None
    expires_at: Optional[datetime] = None
    used_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PaginatedCouponUsers(PaginatedResponse[CouponUser]):
    pass


class CreateCouponUserInput(BaseModel):
    user_id: int
    code: str = Field(..., min_length=3, max_length=32)
    discount: float = Field(..., ge=0.1)
    discount_unit: DiscountUnit
    points: int = Field(..., ge=1, description="Сколько баллов списать за купон")
    minimum_purchase: Optional[float] = Field(None, ge=0)
    expires_at: Optional[datetime] = None

    @model_validator(mode='after')
    def check_percent_limit(self):
        # Отклоняем до любых обращений к БД
        if self.discount_unit == DiscountUnit.PERCENT and self.discount > 100:
            raise ValueError("Percentage discount cannot exceed 100%")
        return self


class SearchCouponUserInput(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=50)
    search: Optional[str] = None
    user_id: Optional[int] = None
    used: Optional[bool] = None
    sort_by: Literal["code", "discount", "points", "created_at", "used_at"] = "created_at"
    sort_direction: Literal["asc", "desc"] = "desc"


class ApplyUserCouponInput(BaseModel):
    code: str = Field(..., min_length=1)
