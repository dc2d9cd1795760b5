# tests/test_points_redeem.py

import logging
import threading
from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi import HTTPException
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from app.core.config import settings
from app.db.session import Base
from app.models.loyalty import PointTransaction, PointTransactionType
from app.models.order import Order
from app.models.user import User
from app.schemas.loyalty import CreatePointTransactionInput, RedeemPointsInput, UpdatePointTransactionInput, SearchPointTransactionInput
from app.services import loyalty as loyalty_service
from app.utils.time import as_utc, utcnow

logger = logging.getLogger(__name__)


def _redeemed_rows(db, user_id):
    return db.query(PointTransaction).filter(
        PointTransaction.user_id == user_id,
        PointTransaction.type == PointTransactionType.REDEEMED.value,
    ).all()


# --- Списание ---

def test_redeem_creates_redeemed_transaction(db_session, test_user, add_transaction):
    add_transaction(test_user, 100, expires_in_days=None)

    transaction = loyalty_service.redeem_points(db_session, test_user.id, RedeemPointsInput(points=40))

    assert transaction.type == PointTransactionType.REDEEMED.value
    assert transaction.points == 40
    assert transaction.active is True
    assert transaction.description == "Points redeemed"
    assert transaction.monetary_value == pytest.approx(0.4)

    balance = loyalty_service.get_user_point_balance(db_session, test_user.id)
    assert balance.available_points == 60
    assert balance.total_points == 100
    assert balance.redeemed_points == 40


def test_redeem_decreases_available_by_exact_amount(db_session, test_user, add_transaction):
    add_transaction(test_user, 70)
    add_transaction(test_user, 30)
    before = loyalty_service.get_user_point_balance(db_session, test_user.id)

    loyalty_service.redeem_points(db_session, test_user.id, RedeemPointsInput(points=55))
    after = loyalty_service.get_user_point_balance(db_session, test_user.id)

    assert after.available_points == before.available_points - 55
    assert after.redeemed_points == before.redeemed_points + 55
    assert after.total_points == before.total_points


def test_redeem_whole_balance_is_allowed(db_session, test_user, add_transaction):
    add_transaction(test_user, 25)

    loyalty_service.redeem_points(db_session, test_user.id, RedeemPointsInput(points=25))

    assert loyalty_service.get_user_point_balance(db_session, test_user.id).available_points == 0


def test_redeem_more_than_available_fails_without_writing(db_session, test_user, add_transaction):
    add_transaction(test_user, 30)
    rows_before = db_session.query(PointTransaction).count()

    with pytest.raises(HTTPException) as exc_info:
        loyalty_service.redeem_points(db_session, test_user.id, RedeemPointsInput(points=31))

    assert exc_info.value.status_code == 400
    assert "Not enough points" in exc_info.value.detail
    assert db_session.query(PointTransaction).count() == rows_before


def test_redeem_cannot_spend_expired_points(db_session, test_user, add_transaction):
    add_transaction(test_user, 100, expires_in_days=-1)

    with pytest.raises(HTTPException) as exc_info:
        loyalty_service.redeem_points(db_session, test_user.id, RedeemPointsInput(points=10))

    assert exc_info.value.status_code == 400
    assert _redeemed_rows(db_session, test_user.id) == []


def test_rejected_redeem_keeps_expiry_reclassification(db_session, test_user, add_transaction):
    stale = add_transaction(test_user, 100, expires_in_days=-1)

    with pytest.raises(HTTPException):
        loyalty_service.redeem_points(db_session, test_user.id, RedeemPointsInput(points=10))

    # Откат после отказа не должен вернуть сгоревшую запись в действующие
    db_session.rollback()
    db_session.refresh(stale)
    assert stale.type == PointTransactionType.EXPIRED.value
    assert stale.active is False
    assert stale.original_type == PointTransactionType.EARNED.value


def test_redeem_for_unknown_user_is_404(db_session):
    with pytest.raises(HTTPException) as exc_info:
        loyalty_service.redeem_points(db_session, 999, RedeemPointsInput(points=1))

    assert exc_info.value.status_code == 404


def test_redeem_for_unknown_order_is_404(db_session, test_user, add_transaction):
    add_transaction(test_user, 100)

    with pytest.raises(HTTPException) as exc_info:
        loyalty_service.redeem_points(db_session, test_user.id, RedeemPointsInput(points=10, order_id=404))

    assert exc_info.value.status_code == 404
    assert _redeemed_rows(db_session, test_user.id) == []


def test_redeem_input_rejects_non_positive_points():
    with pytest.raises(ValueError):
        RedeemPointsInput(points=0)


def test_concurrent_redemptions_never_overspend(tmp_path):
    """
    Два параллельных списания по 60 баллов при балансе 100:
    ровно одно проходит, второе получает 400.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    # pysqlite сам управляет транзакциями; отключаем это и берем блокировку
    # на запись в начале каждой транзакции, как это делает FOR UPDATE в Postgres
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(bind=engine)
    SessionForThreads = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    with SessionForThreads() as db:
        user = User(email="race@example.com")
        db.add(user)
        db.flush()
        db.add(PointTransaction(
            user_id=user.id,
            points=100,
            monetary_value=1.0,
            type=PointTransactionType.EARNED.value,
            expires_at=utcnow() + timedelta(days=30),
            active=True,
        ))
        db.commit()
        user_id = user.id

    barrier = threading.Barrier(2)
    results = []
    lock = threading.Lock()

    def redeem():
        with SessionForThreads() as db:
            barrier.wait()
            try:
                loyalty_service.redeem_points(db, user_id, RedeemPointsInput(points=60))
                outcome = "ok"
            except HTTPException as e:
                outcome = e.status_code
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=redeem) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    logger.info(f"Concurrent redemption outcomes: {results}")
    assert sorted(results, key=str) == sorted(["ok", 400], key=str)

    with SessionForThreads() as db:
        assert len(_redeemed_rows(db, user_id)) == 1
        balance = loyalty_service.get_user_point_balance(db, user_id)
        assert balance.available_points == 40

    engine.dispose()


# --- Начисление ---

def test_award_points_uses_configured_rate_and_lifetime(db_session, test_user):
    started = utcnow()

    transaction = loyalty_service.award_points(db_session, test_user.id, 200)

    assert transaction.type == PointTransactionType.EARNED.value
    assert transaction.points == 200
    assert transaction.description == "Points earned"
    assert transaction.monetary_value == pytest.approx(200 * settings.POINT_MONETARY_RATE)
    expected_expiry = started + timedelta(days=settings.POINTS_LIFETIME_DAYS)
    assert abs(as_utc(transaction.expires_at) - expected_expiry) < timedelta(minutes=1)


def test_award_points_rejects_unknown_user(db_session):
    with pytest.raises(HTTPException) as exc_info:
        loyalty_service.award_points(db_session, 999, 10)

    assert exc_info.value.status_code == 404


def test_award_points_rejects_non_positive_amount(db_session, test_user):
    with pytest.raises(HTTPException) as exc_info:
        loyalty_service.award_points(db_session, test_user.id, 0)

    assert exc_info.value.status_code == 400


def test_cashback_for_order(db_session, test_user, test_order):
    transaction = loyalty_service.award_cashback_for_order(db_session, test_order.id)

    # 5% от 1000.00
    assert transaction.points == 50
    assert transaction.order_id == test_order.id
    assert transaction.user_id == test_user.id
    assert transaction.description == f"Cashback for order #{test_order.id}"


def test_cashback_is_awarded_only_once(db_session, test_order):
    loyalty_service.award_cashback_for_order(db_session, test_order.id)

    with pytest.raises(HTTPException) as exc_info:
        loyalty_service.award_cashback_for_order(db_session, test_order.id)

    assert exc_info.value.status_code == 409


def test_cashback_stays_unique_after_points_expire(db_session, test_order):
    transaction = loyalty_service.award_cashback_for_order(db_session, test_order.id)
    transaction.expires_at = utcnow() - timedelta(days=1)
    db_session.commit()
    loyalty_service.get_user_point_balance(db_session, test_order.user_id)

    with pytest.raises(HTTPException) as exc_info:
        loyalty_service.award_cashback_for_order(db_session, test_order.id)

    assert exc_info.value.status_code == 409


def test_cashback_for_tiny_order_is_skipped(db_session, test_user):
    order = Order(user_id=test_user.id, total=Decimal("10.00"))
    db_session.add(order)
    db_session.commit()

    assert loyalty_service.award_cashback_for_order(db_session, order.id) is None
    assert db_session.query(PointTransaction).count() == 0


# --- Администрирование журнала ---

def test_admin_transaction_crud(db_session, test_user):
    created = loyalty_service.create_point_transaction(
        db_session,
        CreatePointTransactionInput(user_id=test_user.id, points=15, type=PointTransactionType.ADJUSTED),
    )
    assert created.type == PointTransactionType.ADJUSTED.value

    updated = loyalty_service.update_point_transaction(
        db_session, created.id, UpdatePointTransactionInput(points=20, description="Goodwill")
    )
    assert updated.points == 20
    assert updated.description == "Goodwill"

    response = loyalty_service.delete_point_transaction(db_session, created.id)
    assert response.success is True

    with pytest.raises(HTTPException) as exc_info:
        loyalty_service.get_point_transaction(db_session, created.id)
    assert exc_info.value.status_code == 404


@pytest.mark.parametrize("forbidden", [PointTransactionType.REDEEMED, PointTransactionType.EXPIRED])
def test_direct_create_of_debit_types_is_refused(db_session, test_user, add_transaction, forbidden):
    add_transaction(test_user, 10)
    rows_before = db_session.query(PointTransaction).count()

    with pytest.raises(HTTPException) as exc_info:
        loyalty_service.create_point_transaction(
            db_session,
            CreatePointTransactionInput(user_id=test_user.id, points=500, type=forbidden),
        )

    assert exc_info.value.status_code == 400
    assert db_session.query(PointTransaction).count() == rows_before


@pytest.mark.parametrize("forbidden", [PointTransactionType.REDEEMED, PointTransactionType.EXPIRED])
def test_update_cannot_turn_credit_into_debit(db_session, test_user, add_transaction, forbidden):
    add_transaction(test_user, 10)
    credit = add_transaction(test_user, 500)

    with pytest.raises(HTTPException) as exc_info:
        loyalty_service.update_point_transaction(
            db_session, credit.id, UpdatePointTransactionInput(type=forbidden)
        )

    assert exc_info.value.status_code == 400
    db_session.refresh(credit)
    assert credit.type == PointTransactionType.EARNED.value
    balance = loyalty_service.get_user_point_balance(db_session, test_user.id)
    assert balance.total_points == 510
    assert balance.available_points == 510


def test_update_cannot_change_type_of_redemption(db_session, test_user, add_transaction):
    add_transaction(test_user, 100)
    redemption = loyalty_service.redeem_points(db_session, test_user.id, RedeemPointsInput(points=40))

    with pytest.raises(HTTPException) as exc_info:
        loyalty_service.update_point_transaction(
            db_session, redemption.id, UpdatePointTransactionInput(type=PointTransactionType.EARNED)
        )

    assert exc_info.value.status_code == 400
    assert loyalty_service.get_user_point_balance(db_session, test_user.id).available_points == 60


def test_update_cannot_raise_redemption_above_balance(db_session, test_user, add_transaction):
    add_transaction(test_user, 100)
    redemption = loyalty_service.redeem_points(db_session, test_user.id, RedeemPointsInput(points=40))

    with pytest.raises(HTTPException) as exc_info:
        loyalty_service.update_point_transaction(
            db_session, redemption.id, UpdatePointTransactionInput(points=101)
        )
    assert exc_info.value.status_code == 400

    updated = loyalty_service.update_point_transaction(
        db_session, redemption.id, UpdatePointTransactionInput(points=100)
    )
    assert updated.points == 100
    assert loyalty_service.get_user_point_balance(db_session, test_user.id).available_points == 0


def test_search_filters_sorts_and_paginates(db_session, test_user, other_user, add_transaction):
    for points in (10, 30, 20):
        add_transaction(test_user, points)
    add_transaction(test_user, 5, type=PointTransactionType.REDEEMED, expires_in_days=None)
    add_transaction(other_user, 99)

    page = loyalty_service.search_point_transactions(
        db_session,
        SearchPointTransactionInput(
            user_id=test_user.id,
            type=PointTransactionType.EARNED,
            sort_by="points",
            sort_direction="asc",
            limit=2,
        ),
    )

    assert page.total_items == 3
    assert page.total_pages == 2
    assert page.current_page == 1
    assert page.size == 2
    assert [item.points for item in page.items] == [10, 20]


def test_search_rejects_unknown_sort_field():
    with pytest.raises(ValueError):
        SearchPointTransactionInput(sort_by="user_id; DROP TABLE users")
