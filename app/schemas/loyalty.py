# app/schemas/loyalty.py
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from app.models.loyalty import PointTransactionType
from app.schemas.common import PaginatedResponse


class PointTransaction(BaseModel):
    id: int
    user_id: int
    order_id: int | None = None
    points: int
    monetary_value: float | None = None
    type: PointTransactionType
    original_type: PointTransactionType | None = None
    description: str | None = None
    expires_at: datetime | None = None
    active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PaginatedPointTransactions(PaginatedResponse[PointTransaction]):
    pass


class PointBalance(BaseModel):
    """Вычисляемый снимок баланса. Нигде не хранится."""
    total_points: int = 0
    available_points: int = 0
    pending_points: int = 0  # Отложенные начисления пока не моделируются
    expired_points: int = 0
    redeemed_points: int = 0
    monetary_value: float = 0.0


# --- Входные схемы ---

class CreatePointTransactionInput(BaseModel):
    """Прямое начисление/корректировка от администратора."""
    user_id: int
    order_id: Optional[int] = None
    points: int = Field(..., ge=1)
    monetary_value: Optional[float] = None
    type: PointTransactionType
    description: Optional[str] = None
    expires_at: Optional[datetime] = None
    active: bool = True


class UpdatePointTransactionInput(BaseModel):
    points: Optional[int] = Field(None, ge=1)
    monetary_value: Optional[float] = None
    type: Optional[PointTransactionType] = None
    description: Optional[str] = None
    expires_at: Optional[datetime] = None
    active: Optional[bool] = None


class SearchPointTransactionInput(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=50)
    user_id: Optional[int] = None
    order_id: Optional[int] = None
    type: Optional[PointTransactionType] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    active: Optional[bool] = None
    sort_by: Literal["created_at", "points", "type", "expires_at"] = "created_at"
    sort_direction: Literal["asc", "desc"] = "desc"


class RedeemPointsInput(BaseModel):
    points: int = Field(..., ge=1)
    order_id: Optional[int] = None
    description: Optional[str] = None


class AwardPointsInput(BaseModel):
    user_id: int
    points: int = Field(..., ge=1)
    order_id: Optional[int] = None
    description: Optional[str] = None
    expires_at: Optional[datetime] = None
