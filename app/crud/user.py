# app/crud/user.py
from sqlalchemy.orm import Session

from app.models.user import User
from app.models.order import Order


def get_user_by_id(db: Session, user_id: int) -> User | None:
    """Получает пользователя по его первичному ключу."""
    return db.query(User).filter(User.id == user_id).first()

def get_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == email).first()

def lock_user(db: Session, user_id: int) -> User | None:
    """
    Выбирает пользователя с блокировкой строки (`SELECT ... FOR UPDATE`).
    Все списания баллов одного пользователя проходят через эту блокировку
    и поэтому выполняются строго по очереди до конца транзакции.
    """
    return db.query(User).filter(User.id == user_id).with_for_update().first()

def create_user(db: Session, email: str, full_name: str | None = None, role: str = "USER") -> User:
    """Создает нового пользователя в нашей БД."""
    db_user = User(email=email, full_name=full_name, role=role)
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return db_user

def get_order_by_id(db: Session, order_id: int) -> Order | None:
    return db.query(Order).filter(Order.id == order_id).first()
