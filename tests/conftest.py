# tests/conftest.py
from datetime import timedelta
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from app.core.limiter import limiter
from app.core.security import create_access_token
from app.db.session import Base
from app.dependencies import get_db
from app.main import app
from app.models.loyalty import PointTransactionType
from app.models.order import Order
from app.models.user import User
from app.crud import loyalty as crud_loyalty
from app.utils.time import utcnow

# In-memory SQLite для тестов - это быстро и изолированно.
# StaticPool: одно соединение на весь движок, иначе каждая сессия видела бы пустую базу.
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session() -> Session:
    """
    Фикстура для создания чистой базы данных для каждого теста.
    """
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def reset_rate_limits():
    # Счетчики slowapi живут в памяти процесса и переживают тесты
    limiter.reset()
    yield


@pytest.fixture
def test_user(db_session) -> User:
    user = User(email="user@example.com", full_name="Test User")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def other_user(db_session) -> User:
    user = User(email="other@example.com", full_name="Other User")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def admin_user(db_session) -> User:
    user = User(email="admin@example.com", full_name="Admin", role="ADMIN")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def test_order(db_session, test_user) -> Order:
    order = Order(user_id=test_user.id, total=Decimal("1000.00"), status="completed")
    db_session.add(order)
    db_session.commit()
    db_session.refresh(order)
    return order


@pytest.fixture
def add_transaction(db_session):
    """
    Фабрика записей журнала. По умолчанию - действующее начисление
    с рыночной стоимостью 0.01 за балл.
    """
    def _add(
        user,
        points,
        type=PointTransactionType.EARNED,
        expires_in_days=30,
        monetary_value=None,
        order_id=None,
    ):
        expires_at = None
        if expires_in_days is not None:
            expires_at = utcnow() + timedelta(days=expires_in_days)
        if monetary_value is None and type in (PointTransactionType.EARNED, PointTransactionType.ADJUSTED):
            monetary_value = points * 0.01
        transaction = crud_loyalty.create_transaction(
            db_session,
            user_id=user.id,
            points=points,
            type=type,
            order_id=order_id,
            monetary_value=monetary_value,
            expires_at=expires_at,
        )
        db_session.commit()
        db_session.refresh(transaction)
        return transaction

    return _add


def _auth_headers(user: User) -> dict:
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_auth_headers(test_user) -> dict:
    return _auth_headers(test_user)


@pytest.fixture
def admin_auth_headers(admin_user) -> dict:
    return _auth_headers(admin_user)


@pytest.fixture
async def client(db_session):
    """
    HTTP-клиент поверх ASGI-приложения. Lifespan не запускается:
    ни Redis, ни планировщик в тестах не нужны.
    """
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
