"""Схемы Pydantic для очков и статистики."""

import datetime
from enum import StrEnum

from pydantic import Field

from .base_schema import BaseSchema
from .habit_schema import Habit


class ScoreLevel(StrEnum):
    """Категория очков дня (для цвета ячейки календаря)."""

    EXCELLENT = "excellent"
    GREAT = "great"
    GOOD = "good"
    OK = "ok"
    NEUTRAL = "neutral"
    SLIGHTLY_BAD = "slightly-bad"
    BAD = "bad"
    VERY_BAD = "very-bad"


class DayDetails(BaseSchema):
    """Детали дня по видимым (не архивным) привычкам."""

    good_done: int = Field(..., ge=0, description="Выполнено полезных привычек")
    bad_indulged: int = Field(..., ge=0, description="Допущено вредных привычек")
    bad_avoided: int = Field(..., ge=0, description="Вредных привычек удалось избежать (только прошедшие дни)")
    score: int = Field(..., description="Полные очки дня по всем привычкам")


class DayScore(BaseSchema):
    """Очки одного дня для графика."""

    date: datetime.date
    score: int
    has_data: bool


class HabitStat(BaseSchema):
    """Сколько раз привычка была выполнена (good) или допущена (bad)."""

    habit: Habit
    count: int = Field(..., ge=0)


class PeriodStats(BaseSchema):
    """Сводка по дням с отметками за год или за всё время."""

    active_days: int = 0
    positive_days: int = 0
    negative_days: int = 0
    total_score: int = 0
    best_score: int = 0  # Не меньше 0
    worst_score: int = 0  # Не больше 0
    first_date: datetime.date | None = None


class MonthStat(BaseSchema):
    """Очки за месяц."""

    month: int = Field(..., ge=1, le=12)
    score: int
    active_days: int = Field(..., ge=0)
