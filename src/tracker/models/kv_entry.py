"""Модель SQLAlchemy для KeyValueEntry (запись локального хранилища)."""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class KeyValueEntry(Base):
    """
    Одна именованная коллекция локального состояния, сериализованная в JSON.

    Трекер хранит ровно две записи: привычки (`ht_habits_v3`) и отметки (`ht_logs_v2`).
    Версия в имени ключа позволяет менять формат без конфликта со старыми данными.

    Attributes:
        key: Имя коллекции (первичный ключ).
        value: JSON-представление коллекции целиком.
        updated_at: Время последней записи (из Base).
    """

    __tablename__ = "kv_store"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(key={self.key!r})>"
