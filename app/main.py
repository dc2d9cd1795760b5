# app/main.py

import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

# Конфигурация и ядро
from app.core.config import settings as config
from app.core.limiter import limiter
from app.core.logging_config import setup_logging
from app.core.redis import acquire_startup_lock, release_startup_lock

# Регистрация всех моделей в метаданных
import app.models  # noqa: F401

from app.routers.v1.api import api_router
from app.services.points_expiration import expire_points_task

# --- Инициализация ---
logger = logging.getLogger(__name__)
scheduler = AsyncIOScheduler()


# --- Обработчик критических ошибок ---
async def unhandled_exception_handler(request: Request, exc: Exception):
    """
    Глобальный обработчик для всех необработанных исключений.
    Детали ошибки остаются в логах и не уходят клиенту.
    """
    logger.critical(f"Unhandled exception for request: {request.method} {request.url}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error"},
    )


def start_scheduler() -> None:
    if scheduler.running:
        return
    scheduler.add_job(
        expire_points_task,
        'cron',
        id="expire_points",
        hour=config.EXPIRE_POINTS_CRON_HOUR,
        minute=config.EXPIRE_POINTS_CRON_MINUTE,
        timezone=config.SCHEDULER_TIMEZONE,
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started: expire_points at {config.EXPIRE_POINTS_CRON_HOUR:02d}:"
        f"{config.EXPIRE_POINTS_CRON_MINUTE:02d} ({config.SCHEDULER_TIMEZONE})."
    )


# --- Lifespan Manager (запуск и остановка приложения) ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("Application lifespan startup...")

    is_main_worker = False
    if config.SCHEDULER_ENABLED:
        # Блокировка через Redis: планировщик запускается только в одном воркере
        try:
            is_main_worker = await acquire_startup_lock()
        except RedisError:
            logger.error("Redis is unavailable, background scheduler is not started.", exc_info=True)

        if is_main_worker:
            logger.info("This is the main worker. Starting background jobs...")
            start_scheduler()
        else:
            logger.info("This is a secondary worker. Skipping scheduler setup.")

    yield

    # Код при остановке
    if is_main_worker:
        logger.info("Main worker shutting down...")
        if scheduler.running:
            scheduler.shutdown()
            logger.info("Scheduler shut down.")
        await release_startup_lock()
    else:
        logger.info("Secondary worker shutting down.")


# --- Создание FastAPI приложения ---
app = FastAPI(
    title="Shop Loyalty Service",
    description="Loyalty points ledger, point-funded coupons and store coupons",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Ограничение частоты запросов ---
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# --- Регистрация обработчика исключений ---
app.add_exception_handler(Exception, unhandled_exception_handler)

# --- Подключение роутеров FastAPI ---
# Итоговые пути: /api/v1/...
app.include_router(api_router, prefix="/api")


@app.get("/health", tags=["Service"])
def health_check():
    return {"status": "ok"}
