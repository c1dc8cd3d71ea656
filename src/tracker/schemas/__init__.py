from .base_schema import BaseSchema, new_id
from .habit_log_schema import HabitLog, HabitLogAction
from .habit_schema import (
    POINTS_OPTIONS,
    Habit,
    HabitSchemaCreate,
    HabitSchemaUpdate,
    HabitStatus,
    HabitType,
    avoidance_bonus,
)
from .stats_schema import DayDetails, DayScore, HabitStat, MonthStat, PeriodStats, ScoreLevel
from .sync_schema import (
    EncryptedBundle,
    RemoteSession,
    SyncPayload,
    SyncRow,
    SyncSession,
    SyncState,
    SyncStatus,
)

__all__ = [
    "BaseSchema",
    "new_id",
    # Привычки
    "POINTS_OPTIONS",
    "Habit",
    "HabitSchemaCreate",
    "HabitSchemaUpdate",
    "HabitStatus",
    "HabitType",
    "avoidance_bonus",
    # Отметки
    "HabitLog",
    "HabitLogAction",
    # Очки и статистика
    "DayDetails",
    "DayScore",
    "HabitStat",
    "MonthStat",
    "PeriodStats",
    "ScoreLevel",
    # Синхронизация
    "EncryptedBundle",
    "RemoteSession",
    "SyncPayload",
    "SyncRow",
    "SyncSession",
    "SyncState",
    "SyncStatus",
]
