"""Инициализация модуля сервисов."""

from .habit_store import DEFAULT_HABITS, HabitStore, get_score_level, migrate_habits
from .remote_client import RemoteBackend, SupabaseRemoteClient
from .stats_service import StatsService
from .sync_service import SyncCoordinator

__all__ = [
    "DEFAULT_HABITS",
    "HabitStore",
    "get_score_level",
    "migrate_habits",
    "StatsService",
    "RemoteBackend",
    "SupabaseRemoteClient",
    "SyncCoordinator",
]
