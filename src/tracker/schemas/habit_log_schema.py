"""Схемы Pydantic для отметки о привычке (HabitLog)."""

import datetime
import time
from enum import StrEnum

from pydantic import Field

from .base_schema import BaseSchema, new_id


class HabitLogAction(StrEnum):
    """Действие, зафиксированное отметкой."""

    DONE = "done"  # Полезная привычка выполнена
    INDULGED = "indulged"  # Вредная привычка допущена


def now_ms() -> int:
    """Текущий момент в миллисекундах Unix-времени."""
    return int(time.time() * 1000)


class HabitLog(BaseSchema):
    """
    Отметка о выполнении (done) или срыве (indulged) привычки в конкретный день.

    Ссылается на привычку по идентификатору, но не владеет ею: отметки переживают
    архивирование и мягкое удаление привычки и удаляются только вместе с ней окончательно.
    """

    id: str = Field(default_factory=new_id, min_length=1, description="Идентификатор отметки")
    date: datetime.date = Field(..., description="Календарный день отметки (YYYY-MM-DD)")
    habit_id: str = Field(..., alias="habitId", min_length=1, description="ID привычки")
    action: HabitLogAction = Field(..., description="Действие (done/indulged)")
    # Момент создания, только для информации: в подсчёте очков не участвует
    timestamp: int = Field(default_factory=now_ms, description="Время создания (мс Unix-времени)")
