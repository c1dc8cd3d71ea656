"""Конфигурация трекера привычек."""

from pydantic import Field, computed_field

from src.core_shared.config import AppSettings

# Минимальное число итераций PBKDF2 для ключа шифрования резервной копии
MIN_KDF_ITERATIONS = 150_000


class Settings(AppSettings):
    """Основные настройки трекера: локальное хранилище, облачная синхронизация и шифрование."""

    # --- Локальное хранилище ---
    DATABASE_URL: str = Field(
        default="sqlite:///habit_tracker.db",
        description="URL SQLAlchemy для локального key/value хранилища",
    )

    # Часовой пояс для вычисления "сегодня". Если не задан, используется локальное время
    TIMEZONE: str | None = Field(default=None, description="IANA часовой пояс, например Europe/Moscow")

    # --- Облачная синхронизация (Supabase) ---
    SUPABASE_URL: str | None = Field(default=None, description="Базовый URL проекта Supabase")
    SUPABASE_ANON_KEY: str | None = Field(default=None, description="Публичный (anon) ключ Supabase")
    SYNC_TABLE: str = Field(default="habit_sync", description="Таблица с зашифрованными резервными копиями")
    REQUEST_TIMEOUT: float = Field(default=10.0, gt=0, description="Таймаут HTTP-запросов в секундах")

    # --- Шифрование ---
    KDF_ITERATIONS: int = Field(
        default=MIN_KDF_ITERATIONS,
        ge=MIN_KDF_ITERATIONS,
        description="Количество итераций PBKDF2-HMAC-SHA256",
    )

    # --- Вычисляемые поля ---

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_remote_configured(self) -> bool:
        """Доступна ли облачная синхронизация (заданы URL и ключ Supabase)."""
        return bool(self.SUPABASE_URL) and bool(self.SUPABASE_ANON_KEY)


# Создаем глобальный экземпляр настроек
settings = Settings()
