import json
from datetime import datetime, timedelta, timezone
from typing import Callable

import httpx
import pytest

from src.tracker.core.config import MIN_KDF_ITERATIONS, Settings
from src.tracker.core.exceptions import AuthenticationException, RemoteIOException, RemoteNotConfiguredException
from src.tracker.schemas import EncryptedBundle, SyncRow, SyncStatus
from src.tracker.services import SupabaseRemoteClient, SyncCoordinator

# Помечаем все тесты в модуле как асинхронные
pytestmark = pytest.mark.asyncio

BASE_URL = "https://project.supabase.co"
ANON_KEY = "anon-key"
ACCOUNT_ID = "7b1c3f2e-0000-4000-8000-000000000001"

Handler = Callable[[httpx.Request], httpx.Response]


def make_client(handler: Handler) -> SupabaseRemoteClient:
    return SupabaseRemoteClient(BASE_URL, ANON_KEY, transport=httpx.MockTransport(handler))


def token_response(request: httpx.Request, **extra) -> httpx.Response:
    return httpx.Response(
        200,
        json={"access_token": "user-token", "user": {"id": ACCOUNT_ID, "email": "me@example.com"}, **extra},
    )


def make_row() -> SyncRow:
    bundle = EncryptedBundle(ciphertext="Y2lwaGVy", salt="c2FsdA==", iv="aXY=")
    return SyncRow.from_bundle(ACCOUNT_ID, bundle, updated_at=datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc))


async def test_sign_in_sends_credentials_and_keeps_token():
    """Тест входа: пароль уходит в GoTrue, токен используется в следующих запросах."""
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path == "/auth/v1/token":
            return token_response(request)
        return httpx.Response(200, json=[])

    client = make_client(handler)
    session = await client.sign_in("me@example.com", "secret")

    assert session.account_id == ACCOUNT_ID
    assert session.access_token.get_secret_value() == "user-token"
    assert await client.current_session() == session

    login = requests[0]
    assert login.method == "POST"
    assert login.url.params["grant_type"] == "password"
    assert json.loads(login.content) == {"email": "me@example.com", "password": "secret"}
    assert login.headers["apikey"] == ANON_KEY
    assert login.headers["Authorization"] == f"Bearer {ANON_KEY}"

    await client.fetch_row(ACCOUNT_ID)
    assert requests[1].headers["Authorization"] == "Bearer user-token"

    await client.close()


async def test_sign_up_without_token():
    """Регистрация с подтверждением email возвращает только пользователя, без токена."""

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/auth/v1/signup"
        return httpx.Response(200, json={"id": ACCOUNT_ID, "email": "me@example.com"})

    client = make_client(handler)
    session = await client.create_account("me@example.com", "secret")

    assert session.account_id == ACCOUNT_ID
    assert session.access_token is None


@pytest.mark.parametrize("status_code", [400, 401, 422])
async def test_rejected_credentials_raise_authentication_error(status_code: int):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json={"error_description": "Invalid login credentials"})

    client = make_client(handler)

    with pytest.raises(AuthenticationException) as exc_info:
        await client.sign_in("me@example.com", "wrong")

    assert exc_info.value.message == "Invalid login credentials"
    assert await client.current_session() is None


async def test_fetch_row_query_and_parsing():
    captured: dict[str, httpx.Request] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["request"] = request
        return httpx.Response(200, json=[make_row().model_dump(mode="json", by_alias=True)])

    client = make_client(handler)
    row = await client.fetch_row(ACCOUNT_ID)

    request = captured["request"]
    assert request.method == "GET"
    assert request.url.path == "/rest/v1/habit_sync"
    assert request.url.params["user_id"] == f"eq.{ACCOUNT_ID}"
    assert row == make_row()


async def test_fetch_row_returns_none_when_no_backup():
    client = make_client(lambda request: httpx.Response(200, json=[]))

    assert await client.fetch_row(ACCOUNT_ID) is None


async def test_fetch_row_malformed_response():
    client = make_client(lambda request: httpx.Response(200, json=[{"user_id": ACCOUNT_ID}]))

    with pytest.raises(RemoteIOException):
        await client.fetch_row(ACCOUNT_ID)


async def test_insert_and_upsert_rows():
    """Вставка - обычный POST, upsert - POST с on_conflict=user_id и merge-duplicates."""
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(201)

    client = make_client(handler)
    await client.insert_row(make_row())
    await client.upsert_row(make_row())

    insert, upsert = requests
    body = json.loads(insert.content)
    assert body["user_id"] == ACCOUNT_ID
    assert set(body) == {"user_id", "ciphertext", "salt", "iv", "updated_at"}
    assert "on_conflict" not in insert.url.params

    assert upsert.url.params["on_conflict"] == "user_id"
    assert "resolution=merge-duplicates" in upsert.headers["Prefer"]


async def test_row_access_denied_is_authentication_error():
    client = make_client(lambda request: httpx.Response(401, json={"message": "JWT expired"}))

    with pytest.raises(AuthenticationException):
        await client.upsert_row(make_row())


async def test_server_error_is_remote_io_error():
    client = make_client(lambda request: httpx.Response(409, json={"message": "duplicate key value"}))

    with pytest.raises(RemoteIOException) as exc_info:
        await client.insert_row(make_row())

    assert "409" in exc_info.value.message


async def test_network_error_is_remote_io_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)

    with pytest.raises(RemoteIOException) as exc_info:
        await client.fetch_row(ACCOUNT_ID)

    assert exc_info.value.error_type == "remote_io_error"


async def test_sign_out_clears_session():
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        if request.url.path == "/auth/v1/token":
            return token_response(request)
        return httpx.Response(204)

    client = make_client(handler)
    await client.sign_in("me@example.com", "secret")
    await client.sign_out()

    assert paths == ["/auth/v1/token", "/auth/v1/logout"]
    assert await client.current_session() is None


async def test_from_settings_requires_configuration():
    with pytest.raises(RemoteNotConfiguredException):
        SupabaseRemoteClient.from_settings(Settings(SUPABASE_URL=None, SUPABASE_ANON_KEY=None))

    client = SupabaseRemoteClient.from_settings(
        Settings(SUPABASE_URL=BASE_URL, SUPABASE_ANON_KEY=ANON_KEY, SYNC_TABLE="backups")
    )
    assert client.table == "backups"
    await client.close()


# --- Истечение сессии ---


async def test_session_expires_by_token_lifetime():
    """Сессия с истёкшим `expires_at` больше не считается открытой."""
    expired_at = int((datetime.now(timezone.utc) - timedelta(minutes=1)).timestamp())
    client = make_client(lambda request: token_response(request, expires_at=expired_at))

    session = await client.sign_in("me@example.com", "secret")

    assert session.is_expired() is True
    assert await client.current_session() is None
    await client.close()


async def test_session_with_expires_in_stays_open():
    client = make_client(lambda request: token_response(request, expires_in=3600))

    session = await client.sign_in("me@example.com", "secret")

    assert session.expires_at > datetime.now(timezone.utc) + timedelta(minutes=59)
    assert await client.current_session() == session
    await client.close()


async def test_rejected_user_token_drops_session():
    """Ответ 401 на запрос с токеном пользователя означает истёкшую сессию."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/auth/v1/token":
            return token_response(request)
        return httpx.Response(401, json={"message": "JWT expired"})

    client = make_client(handler)
    await client.sign_in("me@example.com", "secret")

    with pytest.raises(AuthenticationException) as exc_info:
        await client.fetch_row(ACCOUNT_ID)

    assert exc_info.value.error_type == "session_expired"
    assert await client.current_session() is None
    await client.close()


async def test_coordinator_forgets_password_when_token_rejected():
    """Координатор поверх HTTP-клиента удаляет пароль из памяти, когда сервер отклоняет токен."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/auth/v1/token":
            return token_response(request, expires_in=3600)
        if request.method == "GET":
            return httpx.Response(200, json=[])
        return httpx.Response(401, json={"message": "JWT expired"})

    client = make_client(handler)
    coordinator = SyncCoordinator(client, iterations=MIN_KDF_ITERATIONS)
    assert await coordinator.sign_in("me@example.com", "secret") is None
    assert coordinator.session.password is not None

    with pytest.raises(AuthenticationException) as exc_info:
        await coordinator.push_data([], [])

    assert exc_info.value.error_type == "session_expired"
    assert coordinator.session is None
    assert coordinator.state.status == SyncStatus.ERROR
    assert await client.current_session() is None
    await client.close()


async def test_coordinator_detects_expired_token_before_request():
    expired_at = int((datetime.now(timezone.utc) - timedelta(seconds=1)).timestamp())
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path == "/auth/v1/token":
            return token_response(request, expires_at=expired_at)
        return httpx.Response(200, json=[])

    client = make_client(handler)
    coordinator = SyncCoordinator(client, iterations=MIN_KDF_ITERATIONS)
    await coordinator.sign_in("me@example.com", "secret")
    requests_before = len(requests)

    with pytest.raises(AuthenticationException) as exc_info:
        await coordinator.pull_data()

    assert exc_info.value.error_type == "session_expired"
    assert coordinator.session is None
    assert len(requests) == requests_before
    await client.close()


# --- Некорректные ответы аутентификации ---


@pytest.mark.parametrize(
    "body",
    [
        {"text": "<html>gateway</html>"},
        {"json": ["not", "an", "object"]},
        {"json": {"user": {"id": ACCOUNT_ID}, "expires_at": "soon"}},
    ],
)
async def test_malformed_auth_response_is_remote_io_error(body: dict):
    client = make_client(lambda request: httpx.Response(200, **body))

    with pytest.raises(RemoteIOException):
        await client.sign_in("me@example.com", "secret")
    with pytest.raises(RemoteIOException):
        await client.create_account("me@example.com", "secret")

    assert await client.current_session() is None
    await client.close()
