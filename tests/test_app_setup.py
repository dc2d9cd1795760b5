# tests/test_app_setup.py

from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import AsyncClient

from app.core.config import Settings
from app.core.logging_config import build_logging_config
from app.main import app, lifespan


def test_cors_origins_are_parsed_from_string():
    settings = Settings(CORS_ORIGINS="https://shop.example.com, http://localhost:5173,,")

    assert settings.CORS_ORIGINS == ["https://shop.example.com", "http://localhost:5173"]


def test_redis_url_property():
    settings = Settings(REDIS_HOST="cache", REDIS_PORT=6380)

    assert settings.REDIS_URL == "redis://cache:6380"


def test_logging_config_uses_requested_level():
    config = build_logging_config("DEBUG")

    assert config["root"]["level"] == "DEBUG"
    assert config["loggers"]["app"]["level"] == "DEBUG"
    assert config["loggers"]["sqlalchemy.engine"]["level"] == "WARNING"


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_main_worker_starts_scheduler(mocker):
    mocker.patch("app.main.setup_logging")
    mocker.patch("app.main.acquire_startup_lock", new=AsyncMock(return_value=True))
    release = mocker.patch("app.main.release_startup_lock", new=AsyncMock())
    start = mocker.patch("app.main.start_scheduler")
    mocker.patch("app.main.scheduler", MagicMock(running=False))

    async with lifespan(app):
        start.assert_called_once()

    release.assert_awaited_once()


@pytest.mark.asyncio
async def test_secondary_worker_skips_scheduler(mocker):
    mocker.patch("app.main.setup_logging")
    mocker.patch("app.main.acquire_startup_lock", new=AsyncMock(return_value=False))
    release = mocker.patch("app.main.release_startup_lock", new=AsyncMock())
    start = mocker.patch("app.main.start_scheduler")

    async with lifespan(app):
        pass

    start.assert_not_called()
    release.assert_not_awaited()
