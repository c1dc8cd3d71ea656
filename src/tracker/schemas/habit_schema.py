"""Схемы Pydantic для привычки (Habit)."""

from enum import StrEnum
from typing import Annotated

from pydantic import Field, StringConstraints, field_validator

from .base_schema import BaseSchema, new_id

# Рекомендуемые значения очков (UI предлагает только их, но модель не ограничивает)
POINTS_OPTIONS: tuple[int, ...] = (5, 10, 15, 20, 25, 30, 40, 50)

HabitName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class HabitType(StrEnum):
    """Тип привычки."""

    GOOD = "good"  # Полезная: выполнение добавляет очки
    BAD = "bad"  # Вредная: срыв отнимает очки, воздержание за прошедший день даёт бонус


class HabitStatus(StrEnum):
    """
    Состояние жизненного цикла привычки.

    active   -> archived | deleted
    archived -> active (restore)
    deleted  -> active (restore)

    Окончательное удаление доступно из любого состояния и не является статусом:
    запись привычки и все её отметки просто исчезают.
    """

    ACTIVE = "active"  # Видна везде
    ARCHIVED = "archived"  # Скрыта из всех списков, но учитывается в очках
    DELETED = "deleted"  # Скрыта из активных списков, видна в деталях прошедших дней

    def can_transition_to(self, target: "HabitStatus") -> bool:
        """Разрешён ли переход из текущего статуса в `target`."""
        return target in _ALLOWED_TRANSITIONS[self]


_ALLOWED_TRANSITIONS: dict[HabitStatus, frozenset[HabitStatus]] = {
    HabitStatus.ACTIVE: frozenset({HabitStatus.ARCHIVED, HabitStatus.DELETED}),
    HabitStatus.ARCHIVED: frozenset({HabitStatus.ACTIVE}),
    HabitStatus.DELETED: frozenset({HabitStatus.ACTIVE}),
}


class Habit(BaseSchema):
    """Отслеживаемая привычка."""

    id: str = Field(default_factory=new_id, min_length=1, description="Идентификатор привычки")
    name: HabitName = Field(..., description="Название привычки")
    type: HabitType = Field(..., description="Тип привычки (good/bad)")
    points: int = Field(..., gt=0, description="Стоимость привычки в очках")
    emoji: str = Field(default="", description="Иконка, на очки не влияет")
    # Старые данные не содержали статуса: такие привычки считаются активными
    status: HabitStatus = Field(default=HabitStatus.ACTIVE, description="Статус жизненного цикла")

    @field_validator("status", mode="before")
    @classmethod
    def status_defaults_to_active(cls, value):
        return HabitStatus.ACTIVE if value is None else value

    @property
    def avoidance_bonus(self) -> int:
        """Бонус за воздержание от вредной привычки в течение прошедшего дня (40% очков, вниз)."""
        return avoidance_bonus(self.points)


class HabitSchemaCreate(BaseSchema):
    """Схема для создания новой привычки."""

    name: HabitName = Field(..., description="Название привычки")
    type: HabitType = Field(..., description="Тип привычки (good/bad)")
    points: int = Field(..., gt=0, description="Стоимость привычки в очках")
    emoji: str = Field(default="", description="Иконка")
    # id и status назначаются хранилищем


class HabitSchemaUpdate(BaseSchema):
    """
    Схема для обновления существующей привычки.
    Все поля опциональны.
    """

    name: HabitName | None = Field(None, description="Новое название привычки")
    type: HabitType | None = Field(None, description="Новый тип привычки")
    points: int | None = Field(None, gt=0, description="Новая стоимость привычки")
    emoji: str | None = Field(None, description="Новая иконка")
    status: HabitStatus | None = Field(None, description="Новый статус")


def avoidance_bonus(points: int) -> int:
    """Возвращает floor(points * 0.4) в целочисленной арифметике."""
    return (points * 2) // 5
