"""Модуль вспомогательных утилит для работы с датами/таймзонами."""

from datetime import date, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.tracker.core.exceptions import ValidationException
from src.tracker.core.logging import tracker_log as log

# Формат дня в отметках и в снимках синхронизации
DAY_FORMAT = "%Y-%m-%d"


def get_today_date(timezone_name: str | None = None) -> date:
    """
    Вычисляет текущую дату ("сегодня").

    Без часового пояса используется локальное время машины. Если часовой пояс некорректен,
    также используется локальное время.

    Args:
        timezone_name (str | None): IANA имя часового пояса, например "Europe/Moscow".

    Returns:
        date: Объект даты, соответствующий "сегодня".
    """
    if not timezone_name:
        return date.today()

    try:
        # Пытаемся создать объект информации о часовом поясе (IANA time zone)
        tz = ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError):
        # Опечатка в настройках не должна ронять подсчёт очков
        log.warning(f"Некорректный часовой пояс '{timezone_name}'. Используется локальное время.")
        return date.today()

    return datetime.now(tz).date()


def parse_day(value: date | str) -> date:
    """
    Приводит день к объекту `date`.

    Args:
        value (date | str): Дата или строка в формате YYYY-MM-DD.

    Returns:
        date: Календарный день.

    Raises:
        ValidationException: Если строка не является датой в формате YYYY-MM-DD.
    """
    # datetime является подклассом date, поэтому проверяем его первым
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    try:
        return datetime.strptime(value, DAY_FORMAT).date()
    except (TypeError, ValueError) as exc:
        raise ValidationException(
            message=f"Некорректная дата '{value}'. Ожидается формат YYYY-MM-DD.",
            error_type="invalid_date",
        ) from exc


def format_day(value: date) -> str:
    """Форматирует день как YYYY-MM-DD."""
    return value.strftime(DAY_FORMAT)
