"""Точка сборки трекера привычек.

Отвечает за:
- Инициализацию Sentry (если задан DSN).
- Подключение к локальной базе данных и создание HabitStore.
- Создание клиента облачной синхронизации, если она настроена.
- Корректное освобождение ресурсов.
"""

from dataclasses import dataclass

from src.core_shared.sentry_sdk_setup import setup_sentry
from src.tracker.core.config import Settings, settings
from src.tracker.core.database import Database
from src.tracker.core.logging import tracker_log as log
from src.tracker.repositories import SqlKeyValueRepository
from src.tracker.services import HabitStore, StatsService, SupabaseRemoteClient, SyncCoordinator


@dataclass
class TrackerApp:
    """Собранное приложение: сервисы для слоя представления."""

    settings: Settings
    db: Database
    store: HabitStore
    stats: StatsService
    sync: SyncCoordinator | None = None

    async def close(self) -> None:
        """Закрывает HTTP-клиент синхронизации и подключение к базе данных."""
        log.info("Остановка приложения...")
        try:
            if self.sync is not None:
                await self.sync.remote.close()
        finally:
            self.db.disconnect()
        log.info("Приложение остановлено.")


def create_app(app_settings: Settings | None = None) -> TrackerApp:
    """
    Создаёт и конфигурирует приложение.

    Args:
        app_settings (Settings | None): Настройки. Если None, используются глобальные.

    Returns:
        TrackerApp: Сконфигурированное приложение.

    Raises:
        PersistenceException: Если локальная база данных недоступна.
    """
    app_settings = app_settings or settings
    log.info(f"Создание приложения '{app_settings.PROJECT_NAME}@{app_settings.APP_VERSION}'")
    log.info(f"Режим разработки: {app_settings.DEVELOPMENT}, Режим продакшена: {app_settings.PRODUCTION}")

    # Вызываем инициализацию Sentry, передавая настройки и уровень логирования
    if app_settings.SENTRY_DSN:
        setup_sentry(app_settings)

    db = Database(app_settings.DATABASE_URL)
    db.connect()

    store = HabitStore(SqlKeyValueRepository(db))
    stats = StatsService(store)

    sync = None
    if app_settings.is_remote_configured:
        sync = SyncCoordinator(
            SupabaseRemoteClient.from_settings(app_settings),
            iterations=app_settings.KDF_ITERATIONS,
        )
        log.info("Облачная синхронизация настроена.")
    else:
        log.info("Облачная синхронизация не настроена, приложение работает только локально.")

    log.info(f"Приложение готово: привычек {len(store.habits)}, отметок {len(store.logs)}.")
    return TrackerApp(settings=app_settings, db=db, store=store, stats=stats, sync=sync)
