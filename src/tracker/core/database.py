"""Настройка подключения к локальной базе данных с использованием SQLAlchemy."""

from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from src.tracker.models import Base

from .config import settings
from .exceptions import PersistenceException
from .logging import tracker_log as log


class Database:
    """
    Менеджер подключений к локальной базе данных.

    Отвечает за:
    - Инициализацию подключения и схемы
    - Создание сессий
    """

    def __init__(self, database_url: str | None = None) -> None:
        """
        Инициализирует менеджер с пустыми подключениями.

        Args:
            database_url (str | None): URL базы. Если None, берётся `DATABASE_URL` из настроек.
        """
        self.database_url = database_url or settings.DATABASE_URL
        self.engine: Engine | None = None
        self.session_factory: sessionmaker[Session] | None = None

    def connect(self, **kwargs: Any) -> None:
        """
        Устанавливает подключение к базе данных и создаёт недостающие таблицы.

        Args:
            **kwargs: Дополнительные параметры для create_engine.

        Raises:
            PersistenceException: При неудачной проверке подключения.
        """
        self.engine = create_engine(
            self.database_url,
            echo=False,
            pool_pre_ping=True,  # Проверять соединение перед использованием
            **kwargs,
        )

        self.session_factory = sessionmaker(
            bind=self.engine,
            class_=Session,
            expire_on_commit=False,
            autoflush=False,  # Управляем flush явно
        )

        try:
            Base.metadata.create_all(self.engine)
            with self.session_factory() as session:
                session.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            log.critical(f"Ошибка подключения к базе данных: {exc}")
            raise PersistenceException(
                message="Не удалось подключиться к локальной базе данных.",
                error_type="database_unavailable",
            ) from exc

        log.debug(f"Подключение к базе данных установлено: {self.engine.url.render_as_string(hide_password=True)}")

    def disconnect(self) -> None:
        """Корректное закрытие подключения к базе данных."""
        if self.engine:
            self.engine.dispose()
            self.engine = None
            self.session_factory = None
            log.debug("Подключение к базе данных закрыто.")

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        Контекстный менеджер для работы с сессиями БД.

        Yields:
            Session: Экземпляр сессии БД.

        Raises:
            RuntimeError: При вызове до инициализации подключения (`db.connect`).
        """
        if not self.session_factory:
            raise RuntimeError("База данных не инициализирована. Вызовите `db.connect()` перед использованием сессий.")

        session: Session = self.session_factory()

        try:
            yield session
        except Exception as exc:
            # Трейсбек только в DEVELOPMENT
            log.opt(exception=settings.DEVELOPMENT).error(f"Ошибка во время сессии БД, выполняется откат: {exc}")
            session.rollback()
            raise
        finally:
            session.close()
