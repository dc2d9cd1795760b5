# app/crud/loyalty.py

from collections import defaultdict
from datetime import datetime
from typing import Iterable, List, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.models.loyalty import PointTransaction, PointTransactionType, CREDIT_TYPES
from app.schemas.loyalty import SearchPointTransactionInput
from app.utils.time import as_utc

# --- Базовые CRUD-операции ---

def create_transaction(
    db: Session,
    user_id: int,
    points: int,
    type: PointTransactionType,
    order_id: int | None = None,
    monetary_value: float | None = None,
    description: str | None = None,
    expires_at: datetime | None = None,
    active: bool = True,
) -> PointTransaction:
    """
    Создает объект транзакции и добавляет его в сессию.
    Требует внешнего вызова db.commit().
    """
    transaction = PointTransaction(
        user_id=user_id,
        points=points,
        type=PointTransactionType(type).value,
        order_id=order_id,
        monetary_value=monetary_value,
        description=description,
        expires_at=expires_at,
        active=active,
    )
    db.add(transaction)
    return transaction

def get_transaction(db: Session, transaction_id: int) -> PointTransaction | None:
    return db.query(PointTransaction).filter(PointTransaction.id == transaction_id).first()

def search_transactions(
    db: Session,
    params: SearchPointTransactionInput,
) -> Tuple[List[PointTransaction], int]:
    """Фильтрует, сортирует и пагинирует журнал. Возвращает (страница, всего записей)."""
    query = db.query(PointTransaction)

    if params.user_id is not None:
        query = query.filter(PointTransaction.user_id == params.user_id)
    if params.order_id is not None:
        query = query.filter(PointTransaction.order_id == params.order_id)
    if params.type is not None:
        query = query.filter(PointTransaction.type == params.type.value)
    if params.start_date is not None:
        query = query.filter(PointTransaction.created_at >= as_utc(params.start_date))
    if params.end_date is not None:
        query = query.filter(PointTransaction.created_at <= as_utc(params.end_date))
    if params.active is not None:
        query = query.filter(PointTransaction.active == params.active)

    total = query.count()

    sort_column = getattr(PointTransaction, params.sort_by)
    order_by = sort_column.asc() if params.sort_direction == "asc" else sort_column.desc()
    items = (
        query.order_by(order_by, PointTransaction.id.desc())
        .offset((params.page - 1) * params.limit)
        .limit(params.limit)
        .all()
    )
    return items, total

def delete_transaction(db: Session, transaction: PointTransaction) -> None:
    db.delete(transaction)

def has_earned_for_order(db: Session, order_id: int) -> bool:
    """Проверяет, начислялись ли уже баллы за заказ."""
    return db.query(PointTransaction.id).filter(
        PointTransaction.order_id == order_id,
        or_(
            PointTransaction.type == PointTransactionType.EARNED.value,
            PointTransaction.original_type == PointTransactionType.EARNED.value,
        ),
    ).first() is not None

# --- Выборки для расчета баланса ---

def get_active_transactions(db: Session, user_id: int, now: datetime) -> List[PointTransaction]:
    """Активные транзакции без срока действия или со сроком в будущем."""
    return db.query(PointTransaction).filter(
        PointTransaction.user_id == user_id,
        PointTransaction.active.is_(True),
        or_(
            PointTransaction.expires_at.is_(None),
            PointTransaction.expires_at > now,
        ),
    ).all()

def get_expired_credits(db: Session, now: datetime, user_id: int | None = None) -> List[PointTransaction]:
    """
    Активные начисления (EARNED/ADJUSTED), срок которых уже прошел.
    Без user_id - по всем пользователям (для фоновой задачи).
    """
    query = db.query(PointTransaction).filter(
        PointTransaction.active.is_(True),
        PointTransaction.type.in_(CREDIT_TYPES),
        PointTransaction.expires_at.isnot(None),
        PointTransaction.expires_at <= now,
    )
    if user_id is not None:
        query = query.filter(PointTransaction.user_id == user_id)
    return query.all()

def mark_transactions_expired(db: Session, transactions: Iterable[PointTransaction]) -> int:
    """
    Переводит начисления в EXPIRED одним UPDATE на каждый исходный тип:
    active=false, type=EXPIRED, original_type=<прежний тип>.
    Требует внешнего вызова db.commit().
    """
    ids_by_type = defaultdict(list)
    for transaction in transactions:
        ids_by_type[transaction.type].append(transaction.id)

    updated = 0
    for original_type, ids in ids_by_type.items():
        updated += db.query(PointTransaction).filter(
            PointTransaction.id.in_(ids)
        ).update(
            {
                PointTransaction.active: False,
                PointTransaction.type: PointTransactionType.EXPIRED.value,
                PointTransaction.original_type: original_type,
            },
            synchronize_session="fetch",
        )
    return updated

def get_expired_points_total(db: Session, user_id: int) -> int:
    """Сумма всех сгоревших начислений пользователя (за все время)."""
    total = db.query(func.sum(PointTransaction.points)).filter(
        PointTransaction.user_id == user_id,
        PointTransaction.type == PointTransactionType.EXPIRED.value,
        PointTransaction.original_type.in_(CREDIT_TYPES),
    ).scalar()
    return total or 0
