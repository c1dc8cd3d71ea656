"""Настройка Loguru: вывод в stderr и, при необходимости, в файл с ротацией."""

import os
import sys
from typing import TYPE_CHECKING

from loguru import logger as global_loguru_logger
from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from loguru import Logger


class LogConfig(BaseModel):
    """Конфигурация логирования."""

    level: str = Field(default="INFO", description="Уровень логирования")
    format: str = Field(
        default=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[service_name]}</cyan> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
        ),
        description="Формат лог сообщения",
    )
    rotation: str = Field(default="10 MB", description="Ротация лог-файлов по размеру")
    retention: str = Field(default="7 days", description="Время хранения лог-файлов")
    enable_file_logging: bool = Field(default=True, description="Включить логирование в файл")
    log_file_path: str = Field(
        default="logs/{service_name}_{time:YYYY-MM-DD}.log",
        description="Путь к файлу логов",
    )


def _resolve_log_dir(log_file_path: str) -> str:
    """Возвращает директорию файла логов, отбрасывая часть имени с {time}."""
    return os.path.dirname(log_file_path.split("{time")[0])


def setup_logger(
    service_name: str,
    log_config: LogConfig | None = None,
    log_level_override: str | None = None,
) -> "Logger":
    """
    Настраивает Loguru и возвращает логгер с привязанным `service_name`.

    Предыдущие обработчики удаляются, поэтому повторный вызов (например, в тестах) не дублирует вывод.

    Args:
        service_name: Имя, которое выводится в каждой строке лога.
        log_config: Конфигурация. Если None, используются значения по умолчанию.
        log_level_override: Уровень логирования вместо уровня из конфигурации.

    Returns:
        Сконфигурированный экземпляр логгера Loguru.
    """
    current_config = log_config.model_copy() if log_config is not None else LogConfig()
    current_config.level = (log_level_override or current_config.level).upper()

    global_loguru_logger.remove()
    service_logger = global_loguru_logger.bind(service_name=service_name)

    service_logger.add(sys.stderr, level=current_config.level, format=current_config.format, colorize=True)

    if current_config.enable_file_logging:
        log_file_path = current_config.log_file_path.replace("{service_name}", service_name.lower())
        log_dir = _resolve_log_dir(log_file_path)

        try:
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
        except OSError as exc:
            # Без директории пишем только в stderr
            service_logger.warning(f"Не удалось создать директорию для логов '{log_dir}': {exc}. Файл логов отключён.")
        else:
            service_logger.add(
                log_file_path,
                level=current_config.level,
                format=current_config.format,
                rotation=current_config.rotation,
                retention=current_config.retention,
                encoding="utf-8",
            )

    service_logger.debug(f"Loguru сконфигурирован. Уровень: {current_config.level}")
    return service_logger


__all__ = ["setup_logger", "LogConfig"]
