# app/core/redis.py
import redis.asyncio as redis
from app.core.config import settings

# Асинхронный клиент Redis. Соединение открывается лениво, при первом запросе.
# decode_responses=True автоматически декодирует ответы из байтов в строки
redis_client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)

STARTUP_LOCK_KEY = "loyalty_startup_lock"
STARTUP_LOCK_TTL_SECONDS = 60


async def acquire_startup_lock() -> bool:
    """
    Только один воркер uvicorn/gunicorn получает блокировку
    и запускает планировщик. Ключ живет STARTUP_LOCK_TTL_SECONDS.
    """
    return bool(await redis_client.set(STARTUP_LOCK_KEY, "1", ex=STARTUP_LOCK_TTL_SECONDS, nx=True))


async def release_startup_lock() -> None:
    await redis_client.delete(STARTUP_LOCK_KEY)
