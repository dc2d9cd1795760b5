# app/core/logging_config.py

from logging.config import dictConfig

from app.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def build_logging_config(level: str) -> dict:
    """
    Один обработчик в stdout для всего приложения.
    Сторонние библиотеки пишут только предупреждения, чтобы не забивать лог
    SQL-запросами и тиками планировщика.
    """
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": LOG_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "app": {"level": level},
            "uvicorn": {"level": "INFO"},
            "sqlalchemy.engine": {"level": "WARNING"},
            "apscheduler": {"level": "WARNING"},
            "slowapi": {"level": "WARNING"},
        },
        "root": {"level": level, "handlers": ["console"]},
    }


def setup_logging(level: str | None = None):
    """Применяет конфигурацию логирования."""
    dictConfig(build_logging_config((level or settings.LOG_LEVEL).upper()))
