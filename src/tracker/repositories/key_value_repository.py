"""Репозитории локального key/value хранилища."""

from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError

from src.tracker.core.database import Database
from src.tracker.core.exceptions import PersistenceException
from src.tracker.core.logging import tracker_log as log
from src.tracker.models import KeyValueEntry


class KeyValueRepository(Protocol):
    """Контракт хранилища: атомарное чтение и запись одной коллекции целиком."""

    def get(self, key: str) -> str | None:
        """Возвращает сохранённое значение или None, если ключа нет."""
        ...

    def set(self, key: str, value: str) -> None:
        """Сохраняет значение, полностью заменяя предыдущее."""
        ...


class SqlKeyValueRepository:
    """
    Key/value хранилище поверх SQLAlchemy.

    Каждая запись сохраняется в отдельной транзакции, поэтому частично записанное значение
    никогда не видно читателю.

    Attributes:
        db: Менеджер подключений к базе данных.
    """

    def __init__(self, db: Database):
        """
        Инициализирует репозиторий.

        Args:
            db (Database): Подключённый менеджер базы данных.
        """
        self.db = db

    def get(self, key: str) -> str | None:
        """
        Получает значение по ключу.

        Args:
            key (str): Имя коллекции.

        Returns:
            str | None: JSON-строка или None, если ключ не найден.

        Raises:
            PersistenceException: При ошибке базы данных.
        """
        log.debug(f"Чтение ключа '{key}' из локального хранилища")
        try:
            with self.db.session() as session:
                entry = session.get(KeyValueEntry, key)
                return entry.value if entry else None
        except SQLAlchemyError as exc:
            raise PersistenceException(
                message=f"Не удалось прочитать '{key}' из локального хранилища.",
                error_type="storage_read_failed",
            ) from exc

    def set(self, key: str, value: str) -> None:
        """
        Создаёт или заменяет значение по ключу.

        Args:
            key (str): Имя коллекции.
            value (str): JSON-строка.

        Raises:
            PersistenceException: При ошибке базы данных.
        """
        try:
            with self.db.session() as session:
                entry = session.get(KeyValueEntry, key)
                if entry is None:
                    session.add(KeyValueEntry(key=key, value=value))
                else:
                    entry.value = value
                session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceException(
                message=f"Не удалось сохранить '{key}' в локальное хранилище.",
                error_type="storage_write_failed",
            ) from exc

        log.debug(f"Ключ '{key}' сохранён ({len(value)} символов)")


class InMemoryKeyValueRepository:
    """Хранилище в памяти процесса: для тестов и работы без диска."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
