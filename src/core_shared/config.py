"""Общие настройки: метаданные приложения, логирование и Sentry."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """
    Базовые настройки трекера, загружаемые из переменных окружения и `.env`.

    Настройки хранилища и синхронизации объявлены в `src.tracker.core.config.Settings`.
    """

    PROJECT_NAME: str = "Habit Score Tracker"
    APP_VERSION: str = "1.0.0"

    # Режим разработки/тестирования (для продакшена - False)
    DEVELOPMENT: bool = Field(default=False, description="Режим разработки/тестирования")

    # --- Логирование ---
    LOG_LEVEL: str = Field(default="INFO", description="Уровень логирования")
    LOG_TO_FILE: bool = Field(default=True, description="Дублировать логи в файл")

    # --- Sentry ---
    SENTRY_DSN: str | None = Field(
        default=None,
        description="Sentry DSN. Если не задан, мониторинг отключен.",
    )

    @property
    def PRODUCTION(self) -> bool:
        return not self.DEVELOPMENT

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )
