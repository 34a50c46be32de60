"""
Конфигурация приложения
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings(BaseSettings):
    """Настройки приложения"""

    # Database
    DATABASE_URL: str = "sqlite:///./clinic_scheduler.db"

    # Календарь (внешний сервис синхронизации, например Google Calendar)
    CALENDAR_SYNC_URL: Optional[str] = None
    CALENDAR_TIMEOUT_SECONDS: float = 5.0

    # Telegram для клиники (новые записи и отмены)
    TELEGRAM_BOT_TOKEN: Optional[str] = None
    TELEGRAM_CLINIC_CHAT_ID: Optional[str] = None

    # Подтверждение пациенту (внешний сервис рассылки)
    NOTIFICATION_WEBHOOK_URL: Optional[str] = None
    NOTIFICATION_TIMEOUT_SECONDS: float = 10.0

    # Application
    SITE_URL: str = "http://localhost:8000"

    # Booking Settings
    SLOT_STEP_MINUTES: int = 30
    BOOKING_DAYS_AHEAD: int = 365
    QUEUE_POSITION_RETRIES: int = 3

    # Development
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    class Config:
        # Путь к .env относительно корня проекта
        env_file = Path(__file__).resolve().parent.parent.parent / ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Получить настройки приложения (с кешированием)"""
    return Settings()
