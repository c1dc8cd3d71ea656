"""
Клиент удалённого хранилища резервных копий.

Предоставляет аутентификацию по email/паролю и таблицу с одной зашифрованной строкой
на аккаунт. Реализация для Supabase: GoTrue (`/auth/v1`) и PostgREST (`/rest/v1`) поверх httpx.
Сервер видит только шифротекст, соль и nonce.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from src.tracker.core.config import Settings, settings
from src.tracker.core.exceptions import AuthenticationException, RemoteIOException, RemoteNotConfiguredException
from src.tracker.core.logging import tracker_log as log
from src.tracker.schemas import RemoteSession, SyncRow

# Колонки строки синхронизации
ROW_COLUMNS = "user_id,ciphertext,salt,iv,updated_at"


class RemoteBackend(Protocol):
    """Контракт внешнего сервиса аккаунтов и хранилища строк."""

    async def create_account(self, email: str, password: str) -> RemoteSession: ...

    async def sign_in(self, email: str, password: str) -> RemoteSession: ...

    async def sign_out(self) -> None: ...

    async def current_session(self) -> RemoteSession | None: ...

    async def fetch_row(self, account_id: str) -> SyncRow | None: ...

    async def insert_row(self, row: SyncRow) -> None: ...

    async def upsert_row(self, row: SyncRow) -> None: ...

    async def close(self) -> None: ...


def _error_detail(response: httpx.Response) -> str:
    """Извлекает текст ошибки из ответа GoTrue/PostgREST."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]

    if isinstance(data, dict):
        for key in ("error_description", "msg", "message", "error"):
            if data.get(key):
                return str(data[key])
    return response.text[:200]


def _token_expiry(data: dict[str, Any]) -> datetime | None:
    """Момент истечения токена из ответа GoTrue: `expires_at` (unix-время) или `expires_in` (секунды)."""
    if data.get("expires_at") is not None:
        return datetime.fromtimestamp(int(data["expires_at"]), tz=timezone.utc)
    if data.get("expires_in") is not None:
        return datetime.now(timezone.utc) + timedelta(seconds=int(data["expires_in"]))
    return None


class SupabaseRemoteClient:
    """
    Асинхронный HTTP-клиент Supabase.

    Обеспечивает:
    - Регистрацию и вход по email/паролю (получение access token).
    - Чтение, вставку и upsert строки синхронизации текущего аккаунта.
    - Преобразование ошибок httpx в исключения трекера.

    Доступ к строкам ограничен политикой RLS (`auth.uid() = user_id`), поэтому запросы
    к таблице выполняются с токеном пользователя.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        table: str = "habit_sync",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Инициализирует клиент.

        Args:
            base_url (str): URL проекта Supabase.
            api_key (str): Публичный (anon) ключ.
            table (str): Таблица с резервными копиями.
            timeout (float): Таймаут запроса в секундах.
            transport (httpx.AsyncBaseTransport | None): Транспорт httpx (для тестов).
        """
        self.table = table
        self._api_key = api_key
        self._session: RemoteSession | None = None

        # Один клиент на всё время жизни приложения для connection pooling
        self.http_client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"apikey": api_key},
            transport=transport,
        )

    @classmethod
    def from_settings(cls, app_settings: Settings | None = None, **kwargs: Any) -> "SupabaseRemoteClient":
        """
        Создаёт клиент из настроек.

        Raises:
            RemoteNotConfiguredException: Если SUPABASE_URL или SUPABASE_ANON_KEY не заданы.
        """
        app_settings = app_settings or settings
        if not app_settings.is_remote_configured:
            raise RemoteNotConfiguredException()

        return cls(
            str(app_settings.SUPABASE_URL),
            str(app_settings.SUPABASE_ANON_KEY),
            table=app_settings.SYNC_TABLE,
            timeout=app_settings.REQUEST_TIMEOUT,
            **kwargs,
        )

    async def close(self) -> None:
        """Корректно закрывает сессию HTTP-клиента."""
        await self.http_client.aclose()

    def _has_user_token(self) -> bool:
        return self._session is not None and self._session.access_token is not None

    def _auth_headers(self) -> dict[str, str]:
        token = self._api_key
        if self._has_user_token():
            token = self._session.access_token.get_secret_value()
        return {"Authorization": f"Bearer {token}"}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        is_auth_call: bool = False,
    ) -> httpx.Response:
        """
        Выполняет запрос и преобразует ошибки.

        Args:
            method (str): HTTP метод.
            path (str): Путь относительно URL проекта.
            json (Any): Тело запроса.
            params (dict | None): Query параметры.
            headers (dict | None): Дополнительные заголовки.
            is_auth_call (bool): Запрос к GoTrue: ответы 4xx означают отказ в аутентификации.

        Returns:
            httpx.Response: Успешный ответ.

        Raises:
            AuthenticationException: Сервис отклонил учётные данные или токен.
                Ответ 401 на запрос с токеном пользователя сбрасывает сессию (`session_expired`).
            RemoteIOException: Сетевая ошибка или иная ошибка сервиса.
        """
        with_user_token = not is_auth_call and self._has_user_token()
        try:
            log.debug(f"Remote request: {method} {path}")
            response = await self.http_client.request(
                method,
                path,
                json=json,
                params=params,
                headers={**self._auth_headers(), **(headers or {})},
            )
            # Если статус ответа 4xx или 5xx, выбрасываем исключение
            response.raise_for_status()
            return response

        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            detail = _error_detail(exc.response)
            log.warning(f"Удалённый сервис вернул ошибку {status_code} на {method} {path}: {detail}")

            if status_code == 401 and with_user_token:
                log.info(f"Токен аккаунта ID: {self._session.account_id} отклонён, сессия сброшена.")
                self._session = None
                raise AuthenticationException(
                    message="Сессия истекла, войдите снова.", error_type="session_expired"
                ) from exc
            if status_code in (401, 403) or (is_auth_call and 400 <= status_code < 500):
                raise AuthenticationException(message=detail or "Доступ запрещён.") from exc
            raise RemoteIOException(message=f"Ошибка удалённого сервиса ({status_code}): {detail}") from exc

        except httpx.RequestError as exc:
            log.error(f"Сетевая ошибка на {method} {path}: {exc}")
            raise RemoteIOException(message="Удалённый сервис недоступен (сетевая ошибка).") from exc

    @staticmethod
    def _session_from_auth_response(response: httpx.Response, email: str) -> RemoteSession:
        """
        Строит сессию из ответа GoTrue.

        Ответ регистрации без подтверждения email содержит только пользователя,
        ответ входа содержит токен, срок его действия и вложенного пользователя.

        Raises:
            RemoteIOException: Ответ не является корректным JSON-объектом.
            AuthenticationException: В ответе нет пользователя.
        """
        try:
            data = response.json()
            if not isinstance(data, dict):
                raise TypeError(f"ожидался объект, получен {type(data).__name__}")
            expires_at = _token_expiry(data)
        except (ValueError, TypeError, OverflowError) as exc:
            log.error(f"Некорректный ответ сервиса аутентификации: {exc}")
            raise RemoteIOException(message="Некорректный ответ сервиса аутентификации.") from exc

        user = data.get("user") if isinstance(data.get("user"), dict) else data
        account_id = user.get("id")
        if not account_id:
            raise AuthenticationException(message="Сервис аутентификации не вернул пользователя.", error_type="no_user")

        return RemoteSession(
            account_id=str(account_id),
            email=user.get("email") or email,
            access_token=data.get("access_token"),
            expires_at=expires_at,
        )

    async def create_account(self, email: str, password: str) -> RemoteSession:
        """Регистрирует аккаунт и открывает сессию."""
        response = await self._request(
            "POST", "/auth/v1/signup", json={"email": email, "password": password}, is_auth_call=True
        )
        self._session = self._session_from_auth_response(response, email)
        log.info(f"Аккаунт ID: {self._session.account_id} зарегистрирован.")
        return self._session

    async def sign_in(self, email: str, password: str) -> RemoteSession:
        """Входит в аккаунт по email и паролю."""
        response = await self._request(
            "POST",
            "/auth/v1/token",
            json={"email": email, "password": password},
            params={"grant_type": "password"},
            is_auth_call=True,
        )
        self._session = self._session_from_auth_response(response, email)
        log.info(f"Вход в аккаунт ID: {self._session.account_id} выполнен.")
        return self._session

    async def sign_out(self) -> None:
        """Завершает сессию на сервере. Локальная сессия сбрасывается в любом случае."""
        session, self._session = self._session, None
        if session is None or session.access_token is None or session.is_expired():
            return

        await self._request(
            "POST",
            "/auth/v1/logout",
            headers={"Authorization": f"Bearer {session.access_token.get_secret_value()}"},
        )
        log.info(f"Выход из аккаунта ID: {session.account_id} выполнен.")

    async def current_session(self) -> RemoteSession | None:
        """Возвращает текущую сессию или None, если входа нет или срок токена истёк."""
        if self._session is not None and self._session.is_expired():
            log.info(f"Срок токена аккаунта ID: {self._session.account_id} истёк, сессия сброшена.")
            self._session = None
        return self._session

    async def fetch_row(self, account_id: str) -> SyncRow | None:
        """
        Получает строку синхронизации аккаунта.

        Returns:
            SyncRow | None: Строка или None, если резервной копии ещё нет.
        """
        response = await self._request(
            "GET",
            f"/rest/v1/{self.table}",
            params={"select": ROW_COLUMNS, "user_id": f"eq.{account_id}"},
        )

        try:
            rows = response.json()
            if not rows:
                return None
            return SyncRow.model_validate(rows[0])
        except (ValueError, TypeError, KeyError, ValidationError) as exc:
            log.error(f"Некорректная строка синхронизации для аккаунта ID: {account_id}: {exc}")
            raise RemoteIOException(message="Удалённый сервис вернул некорректные данные.") from exc

    async def insert_row(self, row: SyncRow) -> None:
        """Вставляет новую строку (ошибка, если строка аккаунта уже существует)."""
        await self._request(
            "POST",
            f"/rest/v1/{self.table}",
            json=row.model_dump(mode="json", by_alias=True),
            headers={"Prefer": "return=minimal"},
        )

    async def upsert_row(self, row: SyncRow) -> None:
        """Вставляет строку или заменяет существующую по уникальному user_id."""
        await self._request(
            "POST",
            f"/rest/v1/{self.table}",
            json=row.model_dump(mode="json", by_alias=True),
            params={"on_conflict": "user_id"},
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )
