# app/services/points_expiration.py

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from app.db.session import SessionLocal
from app.crud import loyalty as crud_loyalty
from app.utils.time import as_utc, utcnow

logger = logging.getLogger(__name__)


def expire_points(db: Session, now: datetime | None = None) -> int:
    """
    Переводит в EXPIRED все просроченные начисления всех пользователей.
    Та же операция, что выполняется при чтении баланса, но без привязки
    к пользователю: баллы сгорают, даже если баланс никто не запрашивает.
    Возвращает количество обработанных записей.
    """
    now = as_utc(now) or utcnow()
    expired_transactions = crud_loyalty.get_expired_credits(db, now)

    if not expired_transactions:
        return 0

    user_ids = {transaction.user_id for transaction in expired_transactions}
    count = crud_loyalty.mark_transactions_expired(db, expired_transactions)
    db.commit()

    logger.info(f"Reclassified {count} expired transactions for {len(user_ids)} users.")
    return count


async def expire_points_task():
    """
    Фоновая задача планировщика: "сжигает" просроченные бонусные баллы.
    """
    logger.info("--- Starting scheduled job: Expire Loyalty Points ---")

    with SessionLocal() as db:
        try:
            count = expire_points(db)
            if count == 0:
                logger.info("No expired points found to process.")
        except Exception:
            logger.error("An error occurred during expire_points_task", exc_info=True)
            db.rollback()

    logger.info("--- Finished scheduled job: Expire Loyalty Points ---")
