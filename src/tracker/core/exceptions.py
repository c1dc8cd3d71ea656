"""
Иерархия исключений трекера.

Все исключения несут человекочитаемое сообщение (`message`) и машинный код ошибки (`error_type`),
по которому вызывающий слой (UI) может отличить, например, неверный пароль от сетевой ошибки.
"""


class HabitTrackerException(Exception):
    """Базовое исключение приложения."""

    default_message = "Внутренняя ошибка трекера."
    default_error_type = "tracker_error"

    def __init__(self, message: str | None = None, error_type: str | None = None):
        self.message = message or self.default_message
        self.error_type = error_type or self.default_error_type
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, error_type={self.error_type!r})"


class ValidationException(HabitTrackerException):
    """Некорректные входные данные. Вызов отклонён, состояние не изменилось."""

    default_message = "Некорректные данные."
    default_error_type = "validation_error"


class PersistenceException(HabitTrackerException):
    """Ошибка чтения или записи локального хранилища."""

    default_message = "Ошибка локального хранилища."
    default_error_type = "persistence_error"


class AuthenticationException(HabitTrackerException):
    """Удалённый сервис отклонил регистрацию/вход или отсутствует активная сессия."""

    default_message = "Ошибка аутентификации."
    default_error_type = "authentication_failed"


class DecryptionException(HabitTrackerException):
    """Неверный пароль или повреждённые зашифрованные данные."""

    default_message = "Неверный пароль: не удалось расшифровать данные."
    default_error_type = "wrong_password"


class RemoteIOException(HabitTrackerException):
    """Сетевая ошибка или ошибка удалённого сервиса."""

    default_message = "Удалённый сервис недоступен."
    default_error_type = "remote_io_error"


class RemoteNotConfiguredException(HabitTrackerException):
    """Облачная синхронизация не настроена (нет URL или ключа)."""

    default_message = "Синхронизация не настроена. Задайте SUPABASE_URL и SUPABASE_ANON_KEY."
    default_error_type = "remote_not_configured"


class SyncInProgressException(HabitTrackerException):
    """Попытка запустить синхронизацию, пока выполняется другая."""

    default_message = "Синхронизация уже выполняется."
    default_error_type = "sync_in_progress"
