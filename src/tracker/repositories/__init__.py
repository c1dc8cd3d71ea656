"""Инициализация модуля репозиториев."""

from .key_value_repository import InMemoryKeyValueRepository, KeyValueRepository, SqlKeyValueRepository

__all__ = [
    "KeyValueRepository",
    "SqlKeyValueRepository",
    "InMemoryKeyValueRepository",
]
