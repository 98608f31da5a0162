"""
Конфигурация приложения с поддержкой переменных окружения
"""

import os
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Настройки сервера"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Основные настройки
    APP_NAME: str = "Loomcare Maintenance API"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # Настройки сервера
    HOST: str = "0.0.0.0"
    PORT: int = 3001

    # CORS
    CORS_ORIGINS: Annotated[List[str], NoDecode] = ["*"]

    # Хранилище
    DATA_DIR: str = "data"
    DATA_FILE_NAME: str = "maintenance-data.json"
    MAX_BACKUPS: int = Field(10, ge=1)
    SEED_SAMPLE_DATA: bool = True

    # Загрузка планов цехов
    UPLOADS_DIR: str = "uploads"
    MAX_UPLOAD_SIZE: int = 10 * 1024 * 1024  # 10MB
    ALLOWED_IMAGE_EXTENSIONS: Annotated[List[str], NoDecode] = [
        "jpeg", "jpg", "png", "gif"
    ]

    # Метрики
    ENABLE_METRICS: bool = True

    # Логирование
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    @property
    def DATA_FILE(self) -> str:
        return os.path.join(self.DATA_DIR, self.DATA_FILE_NAME)

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        allowed = ["development", "testing", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("CORS_ORIGINS", "ALLOWED_IMAGE_EXTENSIONS", mode="before")
    @classmethod
    def parse_comma_separated(cls, v):
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("ALLOWED_IMAGE_EXTENSIONS")
    @classmethod
    def normalize_extensions(cls, v):
        return [ext.lower().lstrip(".") for ext in v]


class ClientSettings(BaseSettings):
    """Настройки клиента синхронизации"""

    model_config = SettingsConfigDict(
        env_prefix="LOOMCARE_CLIENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    SERVER_URL: str = "http://localhost:3001"
    SYNC_INTERVAL: float = Field(3.0, gt=0)
    HEALTH_CHECK_TIMEOUT: float = Field(5.0, gt=0)
    REQUEST_TIMEOUT: float = Field(10.0, gt=0)
    LOCAL_CACHE_PATH: str = "data/local-cache.json"

    @field_validator("SERVER_URL")
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip("/")


# Глобальный экземпляр настроек
settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Получение экземпляра настроек (синглтон)
    """
    global settings_instance

    if settings_instance is None:
        settings_instance = Settings()

    return settings_instance
