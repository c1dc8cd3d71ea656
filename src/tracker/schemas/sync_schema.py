"""Схемы Pydantic для шифрования и облачной синхронизации."""

from datetime import datetime, timezone
from enum import StrEnum

from pydantic import Field, SecretStr

from .base_schema import BaseSchema
from .habit_log_schema import HabitLog
from .habit_schema import Habit


class EncryptedBundle(BaseSchema):
    """Результат шифрования: всё, кроме пароля, необходимое для расшифровки. Поля в base64."""

    ciphertext: str = Field(..., description="Шифротекст AES-GCM вместе с тегом аутентификации")
    salt: str = Field(..., description="Соль PBKDF2 (16 байт)")
    iv: str = Field(..., description="Nonce AES-GCM (12 байт)")


class SyncPayload(BaseSchema):
    """Полный снимок локального состояния: открытый текст до шифрования и после расшифровки."""

    habits: list[Habit] = Field(default_factory=list)
    logs: list[HabitLog] = Field(default_factory=list)

    def to_json(self) -> str:
        """Сериализует снимок в JSON с ключами в camelCase (`habitId`)."""
        return self.model_dump_json(by_alias=True)


class SyncRow(BaseSchema):
    """Строка удалённой таблицы: одна на аккаунт."""

    account_id: str = Field(..., alias="user_id", description="ID аккаунта (уникальный ключ строки)")
    ciphertext: str
    salt: str
    iv: str
    updated_at: datetime | None = None

    @classmethod
    def from_bundle(cls, account_id: str, bundle: EncryptedBundle, updated_at: datetime) -> "SyncRow":
        return cls(
            account_id=account_id,
            ciphertext=bundle.ciphertext,
            salt=bundle.salt,
            iv=bundle.iv,
            updated_at=updated_at,
        )

    def to_bundle(self) -> EncryptedBundle:
        return EncryptedBundle(ciphertext=self.ciphertext, salt=self.salt, iv=self.iv)


class RemoteSession(BaseSchema):
    """Сессия удалённого сервиса аутентификации."""

    account_id: str
    email: str | None = None
    access_token: SecretStr | None = None
    expires_at: datetime | None = Field(None, description="Момент истечения токена (UTC)")

    def is_expired(self, now: datetime | None = None) -> bool:
        """Истёк ли токен к моменту `now` (по умолчанию текущее время). Сессия без срока не истекает."""
        if self.expires_at is None:
            return False
        return (now or datetime.now(timezone.utc)) >= self.expires_at


class SyncSession(BaseSchema):
    """
    Активная сессия синхронизации.

    Хранит пароль шифрования только в памяти процесса на время сессии.
    Пароль никогда не сохраняется на диск и не передаётся на сервер.
    """

    account_id: str
    email: str | None = None
    password: SecretStr | None = None


class SyncStatus(StrEnum):
    """Статус синхронизации для отображения в UI."""

    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"


class SyncState(BaseSchema):
    """Наблюдаемое состояние синхронизации."""

    status: SyncStatus = SyncStatus.IDLE
    last_synced: datetime | None = None
    last_error: str | None = None
