import asyncio
import json
from datetime import date

import pytest

from src.tracker.core import crypto
from src.tracker.core.exceptions import (
    AuthenticationException,
    DecryptionException,
    RemoteIOException,
    SyncInProgressException,
    ValidationException,
)
from src.tracker.schemas import HabitStatus, HabitType, SyncRow, SyncStatus
from src.tracker.services import HabitStore, SyncCoordinator

# Помечаем все тесты в модуле как асинхронные
pytestmark = pytest.mark.asyncio

EMAIL = "me@example.com"
PASSWORD = "correct-horse"


async def sign_up(coordinator: SyncCoordinator, store: HabitStore) -> None:
    snapshot = store.export_data()
    await coordinator.sign_up(EMAIL, PASSWORD, snapshot.habits, snapshot.logs)


async def test_sign_up_uploads_encrypted_snapshot(
    coordinator: SyncCoordinator, remote, store: HabitStore, today: date
):
    """Регистрация создаёт аккаунт и вставляет одну зашифрованную строку."""
    store.toggle_good_habit("h1", today)

    await sign_up(coordinator, store)

    assert remote.calls == ["create_account", "insert_row"]
    row = next(iter(remote.rows.values()))
    assert row.account_id == coordinator.session.account_id
    # Сервер не видит открытый текст
    assert "Exercise" not in row.ciphertext
    assert coordinator.session.password.get_secret_value() == PASSWORD
    assert coordinator.state.status == SyncStatus.SUCCESS
    assert coordinator.state.last_synced is not None


async def test_sign_up_failure_propagates(coordinator: SyncCoordinator, remote, store: HabitStore):
    await sign_up(coordinator, store)
    await coordinator.sign_out()

    with pytest.raises(AuthenticationException):
        await sign_up(coordinator, store)

    assert coordinator.state.status == SyncStatus.ERROR
    assert coordinator.state.last_error == "User already registered"


async def test_sign_up_requires_credentials(coordinator: SyncCoordinator, remote):
    with pytest.raises(ValidationException):
        await coordinator.sign_up(EMAIL, "", [], [])

    assert remote.calls == []


async def test_sign_in_returns_remote_snapshot(
    coordinator: SyncCoordinator, store: HabitStore, empty_store: HabitStore, today: date
):
    """Вход скачивает и расшифровывает снимок; импортирует его вызывающий код."""
    store.toggle_bad_habit("h6", today)
    await sign_up(coordinator, store)
    await coordinator.sign_out()

    payload = await coordinator.sign_in(EMAIL, PASSWORD)

    assert payload == store.export_data()
    assert empty_store.habits == []

    empty_store.import_data(payload.habits, payload.logs)
    assert empty_store.is_bad_habit_indulged("h6", today) is True


async def test_sign_in_without_backup_returns_none(coordinator: SyncCoordinator, remote):
    """Отсутствие строки на сервере - нормальный пустой результат, а не ошибка."""
    remote.accounts[EMAIL] = ("account-1", PASSWORD)

    assert await coordinator.sign_in(EMAIL, PASSWORD) is None
    assert coordinator.state.status == SyncStatus.SUCCESS
    assert coordinator.is_signed_in is True


async def test_sign_in_with_wrong_credentials(coordinator: SyncCoordinator, remote):
    remote.accounts[EMAIL] = ("account-1", PASSWORD)

    with pytest.raises(AuthenticationException):
        await coordinator.sign_in(EMAIL, "wrong-horse")

    assert coordinator.is_signed_in is False
    assert coordinator.state.status == SyncStatus.ERROR


async def test_pull_with_wrong_password(coordinator: SyncCoordinator, store: HabitStore, today: date):
    """Неверный пароль шифрования даёт отдельную ошибку, а локальные данные не меняются."""
    await sign_up(coordinator, store)
    store.toggle_good_habit("h2", today)
    logs_before = store.logs

    with pytest.raises(DecryptionException) as exc_info:
        await coordinator.pull_into(store, password="wrong-horse")

    assert exc_info.value.error_type == "wrong_password"
    assert store.logs == logs_before
    assert coordinator.state.status == SyncStatus.ERROR
    assert coordinator.state.last_error == exc_info.value.message


async def test_push_overwrites_and_pull_restores(
    coordinator: SyncCoordinator, remote, store: HabitStore, today: date
):
    """Отправка перезаписывает единственную строку, получение полностью заменяет локальное состояние."""
    await sign_up(coordinator, store)
    walk = store.add_habit("Walk", HabitType.GOOD, 10)
    store.toggle_good_habit(walk.id, today)

    snapshot = store.export_data()
    await coordinator.push_data(snapshot.habits, snapshot.logs)

    assert remote.calls[-1] == "upsert_row"
    assert len(remote.rows) == 1

    store.permanently_delete_habit(walk.id)
    assert await coordinator.pull_into(store) is True

    assert store.get_habit(walk.id) == walk
    assert store.calculate_day_score(today) == 10


async def test_pull_without_backup(coordinator: SyncCoordinator, remote, store: HabitStore):
    remote.accounts[EMAIL] = ("account-1", PASSWORD)
    await coordinator.sign_in(EMAIL, PASSWORD)
    habits_before = store.habits

    assert await coordinator.pull_data() is None
    assert await coordinator.pull_into(store) is False
    assert store.habits == habits_before


async def test_push_requires_sign_in(coordinator: SyncCoordinator, remote):
    with pytest.raises(AuthenticationException) as exc_info:
        await coordinator.push_data([], [], password=PASSWORD)

    assert exc_info.value.error_type == "not_signed_in"
    assert "upsert_row" not in remote.calls


async def test_push_network_failure(coordinator: SyncCoordinator, remote, store: HabitStore):
    await sign_up(coordinator, store)
    rows_before = dict(remote.rows)
    remote.fail_with = RemoteIOException(message="Удалённый сервис недоступен (сетевая ошибка).")

    with pytest.raises(RemoteIOException):
        await coordinator.push_data(store.habits, store.logs)

    assert remote.rows == rows_before
    assert coordinator.state.status == SyncStatus.ERROR


async def test_sign_out_clears_session(coordinator: SyncCoordinator, remote, store: HabitStore):
    """Выход удаляет пароль из памяти и сбрасывает статус; локальные данные не меняются."""
    await sign_up(coordinator, store)
    habits_before = store.habits

    await coordinator.sign_out()

    assert coordinator.session is None
    assert coordinator.state.status == SyncStatus.IDLE
    assert coordinator.state.last_synced is None
    assert coordinator.state.last_error is None
    assert remote.session is None
    assert store.habits == habits_before

    with pytest.raises(AuthenticationException):
        await coordinator.pull_data(password=PASSWORD)


async def test_sign_out_clears_session_even_if_remote_fails(
    coordinator: SyncCoordinator, remote, store: HabitStore
):
    await sign_up(coordinator, store)
    remote.fail_with = RemoteIOException()

    with pytest.raises(RemoteIOException):
        await coordinator.sign_out()

    assert coordinator.session is None
    assert coordinator.state.status == SyncStatus.IDLE


async def test_expired_session_clears_password(
    coordinator: SyncCoordinator, remote, store: HabitStore
):
    """Если сервер больше не знает сессию, пароль удаляется из памяти."""
    await sign_up(coordinator, store)
    remote.session = None

    with pytest.raises(AuthenticationException) as exc_info:
        await coordinator.pull_data()

    assert exc_info.value.error_type == "session_expired"
    assert coordinator.session is None


async def test_restore_session_without_password(
    coordinator: SyncCoordinator, remote, store: HabitStore
):
    """Подхваченная сессия не знает пароль: push/pull требуют передать его явно."""
    helper = SyncCoordinator(remote)
    await sign_up(helper, store)

    session = await coordinator.restore_session()

    assert session.account_id == helper.session.account_id
    assert session.password is None

    with pytest.raises(AuthenticationException) as exc_info:
        await coordinator.pull_data()
    assert exc_info.value.error_type == "password_required"

    payload = await coordinator.pull_data(password=PASSWORD)
    assert payload == store.export_data()


async def test_restore_session_when_signed_out(coordinator: SyncCoordinator):
    assert await coordinator.restore_session() is None
    assert coordinator.session is None


async def test_overlapping_operations_are_rejected(
    coordinator: SyncCoordinator, remote, store: HabitStore
):
    """Пока выполняется одна синхронизация, вторая отклоняется."""
    await sign_up(coordinator, store)
    remote.gate = asyncio.Event()

    push = asyncio.create_task(coordinator.push_data(store.habits, store.logs))
    # Даём задаче дойти до ожидания на удалённом сервисе
    while "upsert_row" not in remote.calls:
        await asyncio.sleep(0)

    assert coordinator.is_syncing is True
    assert coordinator.state.status == SyncStatus.SYNCING
    with pytest.raises(SyncInProgressException):
        await coordinator.pull_data()

    remote.gate.set()
    await push

    assert coordinator.is_syncing is False
    assert coordinator.state.status == SyncStatus.SUCCESS


async def test_corrupt_payload_is_validation_error(
    coordinator: SyncCoordinator, remote, store: HabitStore
):
    """Расшифрованный, но некорректный снимок отклоняется, а не импортируется."""

    await sign_up(coordinator, store)
    account_id = coordinator.session.account_id
    bundle = crypto.encrypt('{"habits": [{"name": ""}], "logs": []}', PASSWORD)
    remote.rows[account_id] = SyncRow.from_bundle(account_id, bundle, updated_at=remote.rows[account_id].updated_at)

    with pytest.raises(ValidationException) as exc_info:
        await coordinator.pull_into(store)

    assert exc_info.value.error_type == "corrupt_payload"
    assert len(store.habits) == 10


async def test_pull_restores_habits_without_status(
    coordinator: SyncCoordinator, remote, store: HabitStore, today: date
):
    """Резервная копия старого формата (статус null или отсутствует) восстанавливается с активными привычками."""
    await sign_up(coordinator, store)
    account_id = coordinator.session.account_id
    snapshot = json.dumps(
        {
            "habits": [
                {"id": "a", "name": "Walk", "type": "good", "points": 10, "emoji": "🚶", "status": None},
                {"id": "b", "name": "Soda", "type": "bad", "points": 15, "emoji": "🥤"},
            ],
            "logs": [{"id": "l1", "date": today.isoformat(), "habitId": "a", "action": "done"}],
        }
    )
    bundle = crypto.encrypt(snapshot, PASSWORD)
    remote.rows[account_id] = SyncRow.from_bundle(account_id, bundle, updated_at=remote.rows[account_id].updated_at)

    assert await coordinator.pull_into(store) is True

    assert [habit.status for habit in store.habits] == [HabitStatus.ACTIVE, HabitStatus.ACTIVE]
    assert store.calculate_day_score(today) == 10
