from typing import List
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    LOG_LEVEL: str = "INFO"

    # Настройки базы данных
    DATABASE_URL: str = "sqlite:///./loyalty.db"

    # Настройки JWT токенов
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7 # 7 дней

    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    # Хранилище счетчиков slowapi. В проде: "redis://host:port/1"
    RATE_LIMIT_STORAGE_URI: str = "memory://"
    REDEEM_RATE_LIMIT: str = "10/minute"

    # Программа лояльности
    POINT_MONETARY_RATE: float = 0.01  # 1 балл = 0.01 денежной единицы
    POINTS_LIFETIME_DAYS: int = 365
    CASHBACK_PERCENT: float = 5

    # Планировщик фоновых задач
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TIMEZONE: str = "UTC"
    EXPIRE_POINTS_CRON_HOUR: int = 4
    EXPIRE_POINTS_CRON_MINUTE: int = 0

    CORS_ORIGINS_STR: str = Field(
        default="http://localhost,http://localhost:3000,http://localhost:5173",
        alias="CORS_ORIGINS",
    )

    @property
    def CORS_ORIGINS(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS_STR.split(',') if origin.strip()]

    @property
    def REDIS_URL(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}"

    model_config = SettingsConfigDict(env_file=".env", populate_by_name=True, extra="ignore")

settings = Settings()
