from datetime import date
from pathlib import Path
from typing import Generator

import pytest

from src.tracker.core.config import settings
from src.tracker.core.database import Database
from src.tracker.repositories import InMemoryKeyValueRepository, SqlKeyValueRepository
from src.tracker.services import HabitStore
from src.tracker.services.habit_store import STORAGE_HABITS

# Фиксированное "сегодня" для всех тестов подсчёта очков
TODAY = date(2024, 6, 15)


# --- ФИКСТУРА БЕЗОПАСНОСТИ ---


@pytest.fixture(scope="session", autouse=True)
def verify_test_environment():
    """
    Проверяет, что тесты запускаются с корректными настройками окружения.

    Эта фикстура выполняется автоматически перед началом тестовой сессии.
    """
    # Проверяем режим разработки
    assert settings.DEVELOPMENT is True, (
        "❌ ОШИБКА КОНФИГУРАЦИИ: Тесты должны запускаться в режиме разработки/тестирования (DEVELOPMENT=True). "
        "Проверьте настройки [tool.pytest.ini_options] в pyproject.toml"
    )

    # Проверяем, что тесты не ходят в настоящий Supabase
    assert settings.is_remote_configured is False, (
        "❌ ОПАСНОСТЬ: В тестовом окружении заданы SUPABASE_URL/SUPABASE_ANON_KEY. "
        "Удалённый сервис в тестах подменяется фейком или httpx.MockTransport."
    )


# --- ГЛОБАЛЬНЫЕ ФИКСТУРЫ ДЛЯ ВСЕГО ПРОЕКТА ---


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def memory_repository() -> InMemoryKeyValueRepository:
    """Пустое хранилище в памяти (первый запуск)."""
    return InMemoryKeyValueRepository()


@pytest.fixture
def store(memory_repository: InMemoryKeyValueRepository, today: date) -> HabitStore:
    """Хранилище привычек с набором по умолчанию и фиксированным "сегодня"."""
    return HabitStore(memory_repository, today_provider=lambda: today)


@pytest.fixture
def empty_store(today: date) -> HabitStore:
    """Хранилище привычек без единой привычки."""
    repository = InMemoryKeyValueRepository({STORAGE_HABITS: "[]"})
    return HabitStore(repository, today_provider=lambda: today)


@pytest.fixture
def database(tmp_path: Path) -> Generator[Database, None, None]:
    """Подключённая SQLite база во временной директории, отдельная для каждого теста."""
    db = Database(f"sqlite:///{tmp_path / 'tracker_test.db'}")
    db.connect()
    yield db
    db.disconnect()


@pytest.fixture
def sql_repository(database: Database) -> SqlKeyValueRepository:
    return SqlKeyValueRepository(database)
