# app/services/loyalty.py

import logging
import math
from datetime import datetime, timedelta
from typing import Tuple

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.crud import loyalty as crud_loyalty
from app.crud import user as crud_user
from app.models.loyalty import PointTransaction, PointTransactionType, CREDIT_TYPES
from app.models.order import Order
from app.models.user import User
from app.schemas.common import GenericResponse
from app.schemas.loyalty import (
    CreatePointTransactionInput,
    PaginatedPointTransactions,
    PointBalance,
    RedeemPointsInput,
    SearchPointTransactionInput,
    UpdatePointTransactionInput,
)
from app.utils.time import as_utc, utcnow

logger = logging.getLogger(__name__)


def _get_user_or_404(db: Session, user_id: int) -> User:
    user = crud_user.get_user_by_id(db, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"User not found with ID {user_id}")
    return user

def _get_order_or_404(db: Session, order_id: int) -> Order:
    order = crud_user.get_order_by_id(db, order_id)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Order not found with ID {order_id}")
    return order

# --- Расчет баланса ---

def _calculate_balance(db: Session, user_id: int, now: datetime) -> PointBalance:
    """
    Сворачивает журнал пользователя в снимок баланса.

    ВНИМАНИЕ: это не чистое чтение. Начисления, срок которых прошел,
    переводятся в EXPIRED прямо здесь (UPDATE в текущей транзакции).
    Коммит - на стороне вызывающего кода.
    """
    active_transactions = crud_loyalty.get_active_transactions(db, user_id, now)
    newly_expired = crud_loyalty.get_expired_credits(db, now, user_id=user_id)

    if newly_expired:
        count = crud_loyalty.mark_transactions_expired(db, newly_expired)
        logger.info(f"User {user_id}: reclassified {count} expired transactions during balance read.")

    credited_points = 0
    available_points = 0
    redeemed_points = 0
    monetary_value = 0.0

    for transaction in active_transactions:
        if transaction.type in CREDIT_TYPES:
            credited_points += transaction.points
            available_points += transaction.points
            monetary_value += transaction.monetary_value or 0
        elif transaction.type == PointTransactionType.REDEEMED.value:
            redeemed_points += transaction.points
            available_points -= transaction.points

    # Уже сгоревшие начисления (включая только что переведенные) остаются
    # в total_points и expired_points при каждом следующем чтении.
    expired_points = crud_loyalty.get_expired_points_total(db, user_id)

    return PointBalance(
        total_points=credited_points + expired_points,
        available_points=max(available_points, 0),
        pending_points=0,
        expired_points=expired_points,
        redeemed_points=redeemed_points,
        monetary_value=monetary_value,
    )

def get_user_point_balance(db: Session, user_id: int, now: datetime | None = None) -> PointBalance:
    """Возвращает баланс пользователя и фиксирует сгорание просроченных баллов."""
    _get_user_or_404(db, user_id)
    now = as_utc(now) or utcnow()

    try:
        balance = _calculate_balance(db, user_id, now)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return balance

def lock_user_balance(db: Session, user_id: int, now: datetime | None = None) -> Tuple[User, PointBalance]:
    """
    Блокирует строку пользователя и считает баланс в той же транзакции.
    Конкурирующие списания того же пользователя ждут до commit/rollback,
    поэтому два параллельных списания не могут оба пройти проверку.
    """
    user = crud_user.lock_user(db, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"User not found with ID {user_id}")
    balance = _calculate_balance(db, user_id, as_utc(now) or utcnow())
    return user, balance

# --- Списание ---

def proportional_monetary_value(balance: PointBalance, points: int) -> float:
    """Денежный эквивалент списания пропорционально стоимости действующих начислений."""
    credited_points = balance.total_points - balance.expired_points
    if credited_points <= 0:
        return 0.0
    return balance.monetary_value / credited_points * points

def append_redemption(
    db: Session,
    user_id: int,
    points: int,
    balance: PointBalance,
    description: str,
    order_id: int | None = None,
) -> PointTransaction:
    """
    Добавляет в журнал REDEEMED-запись. Баланс должен быть уже проверен
    под блокировкой (см. lock_user_balance). Требует внешнего db.commit().
    """
    transaction = crud_loyalty.create_transaction(
        db=db,
        user_id=user_id,
        points=points,
        type=PointTransactionType.REDEEMED,
        order_id=order_id,
        monetary_value=proportional_monetary_value(balance, points),
        description=description,
    )
    db.flush()
    return transaction

def redeem_points(
    db: Session,
    user_id: int,
    data: RedeemPointsInput,
    now: datetime | None = None,
) -> PointTransaction:
    """
    Безопасно списывает баллы: проверка баланса и запись списания
    выполняются в одной транзакции под блокировкой пользователя.
    """
    try:
        _, balance = lock_user_balance(db, user_id, now)

        if data.order_id is not None:
            _get_order_or_404(db, data.order_id)

        if data.points > balance.available_points:
            logger.warning(
                f"User {user_id}: redemption of {data.points} points rejected, "
                f"only {balance.available_points} available."
            )
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=(
                    f"Not enough points to redeem. Available: {balance.available_points}, "
                    f"requested: {data.points}"
                ),
            )

        transaction = append_redemption(
            db,
            user_id=user_id,
            points=data.points,
            balance=balance,
            description=data.description or "Points redeemed",
            order_id=data.order_id,
        )
        db.commit()
    except HTTPException:
        # Отказ до записи списания: фиксируем только сгорание, выполненное при расчете баланса
        db.commit()
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(transaction)
    logger.info(
        f"User {user_id}: redeemed {data.points} points. "
        f"Balance before: {balance.available_points}, after: {balance.available_points - data.points}"
    )
    return transaction

# --- Начисление ---

def award_points(
    db: Session,
    user_id: int,
    points: int,
    order_id: int | None = None,
    description: str | None = None,
    expires_at: datetime | None = None,
) -> PointTransaction:
    """Начисляет баллы. Проверка баланса не нужна: начисление не может не пройти по сумме."""
    if points < 1:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Points must be a positive integer")

    _get_user_or_404(db, user_id)
    if order_id is not None:
        _get_order_or_404(db, order_id)

    if expires_at is None:
        expires_at = utcnow() + timedelta(days=settings.POINTS_LIFETIME_DAYS)

    transaction = crud_loyalty.create_transaction(
        db=db,
        user_id=user_id,
        points=points,
        type=PointTransactionType.EARNED,
        order_id=order_id,
        monetary_value=points * settings.POINT_MONETARY_RATE,
        description=description or "Points earned",
        expires_at=as_utc(expires_at),
    )
    db.commit()
    db.refresh(transaction)
    logger.info(f"Awarded {points} points to user {user_id} (order: {order_id}).")
    return transaction

def award_cashback_for_order(db: Session, order_id: int) -> PointTransaction | None:
    """Начисляет кешбэк за выполненный заказ. Повторное начисление за тот же заказ запрещено."""
    order = _get_order_or_404(db, order_id)

    if crud_loyalty.has_earned_for_order(db, order_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Points for order {order_id} have already been awarded",
        )

    points_to_add = int(float(order.total) * settings.CASHBACK_PERCENT / 100)
    if points_to_add <= 0:
        logger.info(f"Order {order_id}: total {order.total} is too small for cashback.")
        return None

    return award_points(
        db,
        user_id=order.user_id,
        points=points_to_add,
        order_id=order.id,
        description=f"Cashback for order #{order.id}",
    )

# --- Администрирование журнала ---

# Списания проходят только через redeem (с проверкой баланса),
# сгорание - только через переклассификацию.
_NON_DIRECT_TYPES = (PointTransactionType.REDEEMED.value, PointTransactionType.EXPIRED.value)

def _ensure_direct_type(type: PointTransactionType | str) -> None:
    value = PointTransactionType(type).value
    if value in _NON_DIRECT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Transactions of type {value} cannot be created or assigned directly",
        )

def create_point_transaction(db: Session, data: CreatePointTransactionInput) -> PointTransaction:
    """Прямая запись в журнал от администратора."""
    _ensure_direct_type(data.type)
    _get_user_or_404(db, data.user_id)
    if data.order_id is not None:
        _get_order_or_404(db, data.order_id)

    transaction = crud_loyalty.create_transaction(
        db=db,
        user_id=data.user_id,
        points=data.points,
        type=data.type,
        order_id=data.order_id,
        monetary_value=data.monetary_value,
        description=data.description,
        expires_at=as_utc(data.expires_at),
        active=data.active,
    )
    db.commit()
    db.refresh(transaction)
    logger.info(f"Created {data.type.value} transaction of {data.points} points for user {data.user_id}.")
    return transaction

def search_point_transactions(db: Session, params: SearchPointTransactionInput) -> PaginatedPointTransactions:
    items, total = crud_loyalty.search_transactions(db, params)
    return PaginatedPointTransactions(
        total_items=total,
        total_pages=math.ceil(total / params.limit),
        current_page=params.page,
        size=params.limit,
        items=items,
    )

def get_point_transaction(db: Session, transaction_id: int) -> PointTransaction:
    transaction = crud_loyalty.get_transaction(db, transaction_id)
    if transaction is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Point transaction not found with ID {transaction_id}",
        )
    return transaction

def update_point_transaction(
    db: Session,
    transaction_id: int,
    data: UpdatePointTransactionInput,
) -> PointTransaction:
    """
    Частичное обновление записи журнала.
    Тип можно менять только между начислениями (EARNED/ADJUSTED).
    Увеличение списания проверяется по балансу под блокировкой пользователя.
    """
    transaction = get_point_transaction(db, transaction_id)
    changes = data.model_dump(exclude_unset=True)

    new_type = changes.get("type")
    if new_type is not None and PointTransactionType(new_type).value != transaction.type:
        if transaction.type in _NON_DIRECT_TYPES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Type of a {transaction.type} transaction cannot be changed",
            )
        _ensure_direct_type(new_type)

    try:
        new_points = changes.get("points")
        if (
            transaction.type == PointTransactionType.REDEEMED.value
            and new_points is not None
            and new_points > transaction.points
        ):
            _, balance = lock_user_balance(db, transaction.user_id)
            extra_points = new_points - transaction.points
            if extra_points > balance.available_points:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=(
                        f"Not enough points to redeem. Available: {balance.available_points}, "
                        f"requested: {extra_points}"
                    ),
                )

        for field, value in changes.items():
            if field == "type":
                if value is None:
                    continue
                value = PointTransactionType(value).value
            elif field == "expires_at":
                value = as_utc(value)
            setattr(transaction, field, value)

        db.commit()
    except HTTPException:
        # Отказ до записи списания: фиксируем только сгорание, выполненное при расчете баланса
        db.commit()
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(transaction)
    logger.info(f"Point transaction {transaction_id} updated.")
    return transaction

def delete_point_transaction(db: Session, transaction_id: int) -> GenericResponse:
    """Физическое удаление записи. Обходит семантику баланса, только для администратора."""
    transaction = get_point_transaction(db, transaction_id)
    crud_loyalty.delete_transaction(db, transaction)
    db.commit()
    logger.warning(f"Point transaction {transaction_id} was deleted by an administrator.")
    return GenericResponse(success=True, message="Point transaction deleted successfully")
