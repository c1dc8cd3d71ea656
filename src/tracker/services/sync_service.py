"""
Координатор облачной синхронизации.

Снимок {habits, logs} шифруется паролем на клиенте и хранится как одна строка на аккаунт.
Отправка перезаписывает строку целиком (последняя запись выигрывает), получение
возвращает снимок, который вызывающий код импортирует в HabitStore.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Iterable, Mapping

from pydantic import ValidationError

from src.tracker.core.crypto import decrypt_data, encrypt_data
from src.tracker.core.exceptions import (
    AuthenticationException,
    HabitTrackerException,
    SyncInProgressException,
    ValidationException,
)
from src.tracker.core.logging import tracker_log as log
from src.tracker.schemas import Habit, HabitLog, SyncPayload, SyncRow, SyncSession, SyncState, SyncStatus

from .habit_store import HabitStore
from .remote_client import RemoteBackend

HabitsInput = Iterable[Habit | Mapping[str, Any]]
LogsInput = Iterable[HabitLog | Mapping[str, Any]]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SyncCoordinator:
    """
    Регистрация, вход, выход и перенос зашифрованного снимка между клиентом и сервером.

    Пароль шифрования хранится только в памяти, в объекте `SyncSession`, и удаляется при выходе
    или когда удалённый сервис сообщает об отсутствии сессии.

    Одновременно выполняется не более одной операции синхронизации: пересекающийся вызов
    отклоняется с `SyncInProgressException`. Любая ошибка оставляет локальные данные нетронутыми.

    Attributes:
        remote: Удалённый сервис аккаунтов и хранилища строк.
        state: Наблюдаемое состояние синхронизации.
        session: Текущая сессия или None.
    """

    def __init__(self, remote: RemoteBackend, *, iterations: int | None = None):
        """
        Инициализирует координатор.

        Args:
            remote (RemoteBackend): Удалённый сервис.
            iterations (int | None): Количество итераций PBKDF2. Если None, берётся из настроек.
        """
        self.remote = remote
        self.iterations = iterations
        self.state = SyncState()
        self.session: SyncSession | None = None
        self._lock = asyncio.Lock()

    @property
    def is_signed_in(self) -> bool:
        return self.session is not None

    @property
    def is_syncing(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def _single_flight(self, operation: str) -> AsyncIterator[None]:
        """
        Выполняет операцию под защитой от параллельного запуска и ведёт статус.

        Raises:
            SyncInProgressException: Если другая операция синхронизации ещё выполняется.
        """
        if self._lock.locked():
            log.warning(f"Операция '{operation}' отклонена: синхронизация уже выполняется.")
            raise SyncInProgressException()

        async with self._lock:
            self.state = SyncState(status=SyncStatus.SYNCING, last_synced=self.state.last_synced)
            log.debug(f"Синхронизация: начало операции '{operation}'.")
            try:
                yield
            except Exception as exc:
                if isinstance(exc, AuthenticationException) and exc.error_type == "session_expired":
                    self._drop_session()
                message = exc.message if isinstance(exc, HabitTrackerException) else str(exc)
                self.state = SyncState(
                    status=SyncStatus.ERROR,
                    last_synced=self.state.last_synced,
                    last_error=message,
                )
                log.warning(f"Синхронизация: операция '{operation}' завершилась ошибкой: {message}")
                raise

            self.state = SyncState(status=SyncStatus.SUCCESS, last_synced=_utc_now())
            log.info(f"Синхронизация: операция '{operation}' выполнена.")

    def _drop_session(self) -> None:
        """Забывает истёкшую сессию вместе с паролем шифрования."""
        if self.session is not None:
            log.info(f"Сессия аккаунта ID: {self.session.account_id} истекла, пароль удалён из памяти.")
        self.session = None

    def _password(self, password: str | None) -> str:
        """Возвращает явно переданный пароль или пароль текущей сессии."""
        if password:
            return password
        if self.session is not None and self.session.password is not None:
            return self.session.password.get_secret_value()
        raise AuthenticationException(
            message="Для синхронизации нужен пароль шифрования.",
            error_type="password_required",
        )

    async def _require_session(self) -> SyncSession:
        """
        Проверяет, что сессия открыта и всё ещё действует на сервере.

        Raises:
            AuthenticationException: Если вход не выполнен или сессия истекла.
        """
        if self.session is None:
            raise AuthenticationException(message="Вход в аккаунт не выполнен.", error_type="not_signed_in")

        if await self.remote.current_session() is None:
            self._drop_session()
            raise AuthenticationException(message="Сессия истекла, войдите снова.", error_type="session_expired")

        return self.session

    @staticmethod
    def _build_payload(habits: HabitsInput, logs: LogsInput) -> SyncPayload:
        try:
            return SyncPayload(habits=list(habits), logs=list(logs))
        except ValidationError as exc:
            raise ValidationException(message="Некорректный снимок данных.", error_type="invalid_snapshot") from exc

    async def _seal(self, account_id: str, payload: SyncPayload, password: str) -> SyncRow:
        bundle = await encrypt_data(payload.to_json(), password, iterations=self.iterations)
        return SyncRow.from_bundle(account_id, bundle, updated_at=_utc_now())

    async def _open(self, row: SyncRow, password: str) -> SyncPayload:
        """
        Расшифровывает строку и разбирает снимок.

        Raises:
            DecryptionException: Неверный пароль или повреждённый шифротекст.
            ValidationException: Расшифрованный текст не является корректным снимком.
        """
        plaintext = await decrypt_data(row.to_bundle(), password, iterations=self.iterations)
        try:
            return SyncPayload.model_validate_json(plaintext)
        except ValidationError as exc:
            log.error(f"Расшифрованный снимок аккаунта ID: {row.account_id} некорректен: {exc.error_count()} ошибок")
            raise ValidationException(
                message="Данные резервной копии повреждены.",
                error_type="corrupt_payload",
            ) from exc

    async def sign_up(self, email: str, password: str, habits: HabitsInput, logs: LogsInput) -> SyncSession:
        """
        Регистрирует аккаунт и загружает первую резервную копию.

        Args:
            email (str): Email.
            password (str): Пароль аккаунта, он же пароль шифрования.
            habits: Текущие привычки.
            logs: Текущие отметки.

        Returns:
            SyncSession: Открытая сессия.

        Raises:
            ValidationException: Пустой email или пароль, некорректный снимок.
            AuthenticationException: Сервис отклонил регистрацию.
            RemoteIOException: Сетевая ошибка.
        """
        if not email or not password:
            raise ValidationException(message="Email и пароль обязательны.", error_type="missing_credentials")

        payload = self._build_payload(habits, logs)

        async with self._single_flight("sign_up"):
            remote_session = await self.remote.create_account(email, password)
            self.session = SyncSession(account_id=remote_session.account_id, email=email, password=password)

            row = await self._seal(remote_session.account_id, payload, password)
            await self.remote.insert_row(row)

        log.info(f"Аккаунт ID: {remote_session.account_id} создан, загружено привычек: {len(payload.habits)}.")
        return self.session

    async def sign_in(self, email: str, password: str) -> SyncPayload | None:
        """
        Входит в аккаунт и скачивает резервную копию.

        Returns:
            SyncPayload | None: Расшифрованный снимок или None, если копии на сервере ещё нет.

        Raises:
            ValidationException: Пустой email или пароль, повреждённый снимок.
            AuthenticationException: Неверные учётные данные.
            DecryptionException: Пароль не подходит к сохранённой копии.
            RemoteIOException: Сетевая ошибка.
        """
        if not email or not password:
            raise ValidationException(message="Email и пароль обязательны.", error_type="missing_credentials")

        async with self._single_flight("sign_in"):
            remote_session = await self.remote.sign_in(email, password)
            self.session = SyncSession(account_id=remote_session.account_id, email=email, password=password)

            row = await self.remote.fetch_row(remote_session.account_id)
            if row is None:
                log.info(f"Для аккаунта ID: {remote_session.account_id} резервной копии нет.")
                return None

            return await self._open(row, password)

    async def sign_out(self) -> None:
        """
        Выходит из аккаунта.

        Пароль удаляется из памяти и статус сбрасывается даже если сервер недоступен.
        Локальные привычки и отметки не затрагиваются.
        """
        try:
            await self.remote.sign_out()
        finally:
            self.session = None
            self.state = SyncState()
            log.info("Выход из аккаунта синхронизации выполнен.")

    async def restore_session(self) -> SyncSession | None:
        """
        Подхватывает уже открытую на сервере сессию (например, при запуске приложения).

        Пароль шифрования при этом неизвестен, если сессия не была открыта в этом процессе:
        push/pull потребуют передать его явно.

        Returns:
            SyncSession | None: Сессия или None, если удалённой сессии нет.
        """
        remote_session = await self.remote.current_session()
        if remote_session is None:
            self.session = None
            return None

        if self.session is None or self.session.account_id != remote_session.account_id:
            self.session = SyncSession(account_id=remote_session.account_id, email=remote_session.email)
        return self.session

    async def push_data(self, habits: HabitsInput, logs: LogsInput, password: str | None = None) -> None:
        """
        Шифрует снимок и перезаписывает резервную копию на сервере.

        Args:
            habits: Привычки.
            logs: Отметки.
            password (str | None): Пароль шифрования. По умолчанию пароль сессии.

        Raises:
            AuthenticationException: Вход не выполнен, сессия истекла или пароль неизвестен.
            ValidationException: Некорректный снимок.
            RemoteIOException: Сетевая ошибка.
        """
        payload = self._build_payload(habits, logs)

        async with self._single_flight("push"):
            session = await self._require_session()
            row = await self._seal(session.account_id, payload, self._password(password))
            await self.remote.upsert_row(row)

    async def pull_data(self, password: str | None = None) -> SyncPayload | None:
        """
        Скачивает и расшифровывает резервную копию.

        Returns:
            SyncPayload | None: Снимок или None, если копии на сервере нет.

        Raises:
            AuthenticationException: Вход не выполнен, сессия истекла или пароль неизвестен.
            DecryptionException: Неверный пароль.
            ValidationException: Повреждённый снимок.
            RemoteIOException: Сетевая ошибка.
        """
        async with self._single_flight("pull"):
            session = await self._require_session()
            secret = self._password(password)

            row = await self.remote.fetch_row(session.account_id)
            if row is None:
                return None
            return await self._open(row, secret)

    async def pull_into(self, store: HabitStore, password: str | None = None) -> bool:
        """
        Скачивает резервную копию и заменяет ею локальное состояние.

        Локальные данные меняются только если снимок получен и расшифрован успешно.

        Returns:
            bool: True, если данные импортированы; False, если копии на сервере нет.
        """
        payload = await self.pull_data(password)
        if payload is None:
            return False

        store.import_data(payload.habits, payload.logs)
        return True
