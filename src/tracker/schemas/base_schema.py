"""Базовые конфигурации и схемы для Pydantic."""

from uuid import uuid4

from pydantic import BaseModel, ConfigDict


def new_id() -> str:
    """Генерирует новый непрозрачный идентификатор записи."""
    return uuid4().hex


class BaseSchema(BaseModel):
    """Базовая схема Pydantic с общей конфигурацией."""

    model_config = ConfigDict(
        from_attributes=True,  # Позволяет создавать схемы из ORM моделей
        populate_by_name=True,  # Позволяет использовать и имя поля, и alias
        extra="ignore",  # Игнорировать лишние поля при парсинге
    )
