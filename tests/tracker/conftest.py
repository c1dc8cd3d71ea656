import asyncio
from uuid import uuid4

import pytest

from src.tracker.core.exceptions import AuthenticationException, RemoteIOException
from src.tracker.schemas import RemoteSession, SyncRow
from src.tracker.services import SyncCoordinator

# --- ФИКСТУРЫ, СПЕЦИФИЧНЫЕ ДЛЯ ТЕСТИРОВАНИЯ СИНХРОНИЗАЦИИ ---


class FakeRemoteBackend:
    """
    Удалённый сервис в памяти: аккаунты, одна строка на аккаунт и текущая сессия.

    `fail_with` заставляет следующий сетевой вызов завершиться ошибкой,
    `gate` приостанавливает вызовы до его установки (для проверки параллельных операций).
    """

    def __init__(self):
        self.accounts: dict[str, tuple[str, str]] = {}
        self.rows: dict[str, SyncRow] = {}
        self.session: RemoteSession | None = None
        self.fail_with: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.calls: list[str] = []
        self.closed = False

    async def _call(self, operation: str) -> None:
        self.calls.append(operation)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            exc, self.fail_with = self.fail_with, None
            raise exc

    async def create_account(self, email: str, password: str) -> RemoteSession:
        await self._call("create_account")
        if email in self.accounts:
            raise AuthenticationException(message="User already registered")
        account_id = uuid4().hex
        self.accounts[email] = (account_id, password)
        self.session = RemoteSession(account_id=account_id, email=email, access_token="token")
        return self.session

    async def sign_in(self, email: str, password: str) -> RemoteSession:
        await self._call("sign_in")
        account = self.accounts.get(email)
        if account is None or account[1] != password:
            raise AuthenticationException(message="Invalid login credentials")
        self.session = RemoteSession(account_id=account[0], email=email, access_token="token")
        return self.session

    async def sign_out(self) -> None:
        await self._call("sign_out")
        self.session = None

    async def current_session(self) -> RemoteSession | None:
        return self.session

    async def fetch_row(self, account_id: str) -> SyncRow | None:
        await self._call("fetch_row")
        return self.rows.get(account_id)

    async def insert_row(self, row: SyncRow) -> None:
        await self._call("insert_row")
        if row.account_id in self.rows:
            raise RemoteIOException(message="duplicate key value violates unique constraint")
        self.rows[row.account_id] = row

    async def upsert_row(self, row: SyncRow) -> None:
        await self._call("upsert_row")
        self.rows[row.account_id] = row

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def remote() -> FakeRemoteBackend:
    return FakeRemoteBackend()


@pytest.fixture
def coordinator(remote: FakeRemoteBackend) -> SyncCoordinator:
    return SyncCoordinator(remote)
