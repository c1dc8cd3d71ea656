"""Хранилище привычек и отметок: жизненный цикл привычек и подсчёт очков."""

import json
from collections import defaultdict
from datetime import date
from typing import Any, Callable, Iterable, Mapping

from pydantic import TypeAdapter, ValidationError

from src.tracker.core.config import settings
from src.tracker.core.exceptions import PersistenceException, ValidationException
from src.tracker.core.logging import tracker_log as log
from src.tracker.repositories import KeyValueRepository
from src.tracker.schemas import (
    DayDetails,
    Habit,
    HabitLog,
    HabitLogAction,
    HabitSchemaCreate,
    HabitSchemaUpdate,
    HabitStatus,
    HabitType,
    ScoreLevel,
    SyncPayload,
)
from src.tracker.utils.date_utils import format_day, get_today_date, parse_day

# Ключи локального хранилища. Версия в имени позволяет менять формат данных
STORAGE_HABITS = "ht_habits_v3"
STORAGE_LOGS = "ht_logs_v2"

# Набор привычек для первого запуска (и для восстановления при повреждённом хранилище)
DEFAULT_HABITS: tuple[Habit, ...] = (
    Habit(id="h1", name="Exercise", type=HabitType.GOOD, points=20, emoji="🏃"),
    Habit(id="h2", name="Read", type=HabitType.GOOD, points=15, emoji="📚"),
    Habit(id="h3", name="Meditate", type=HabitType.GOOD, points=10, emoji="🧘"),
    Habit(id="h4", name="Drink Water", type=HabitType.GOOD, points=5, emoji="💧"),
    Habit(id="h5", name="Sleep 8h", type=HabitType.GOOD, points=15, emoji="😴"),
    Habit(id="h6", name="Smoking", type=HabitType.BAD, points=25, emoji="🚬"),
    Habit(id="h7", name="Junk Food", type=HabitType.BAD, points=15, emoji="🍔"),
    Habit(id="h8", name="Social Media Binge", type=HabitType.BAD, points=10, emoji="📱"),
    Habit(id="h9", name="Skip Workout", type=HabitType.BAD, points=10, emoji="🛋️"),
    Habit(id="h10", name="Late Night Screen", type=HabitType.BAD, points=10, emoji="🌙"),
)

# Какое действие допустимо для какого типа привычки
ACTION_FOR_TYPE: dict[HabitType, HabitLogAction] = {
    HabitType.GOOD: HabitLogAction.DONE,
    HabitType.BAD: HabitLogAction.INDULGED,
}

_HABITS_ADAPTER = TypeAdapter(list[Habit])
_LOGS_ADAPTER = TypeAdapter(list[HabitLog])

DayInput = date | str


def migrate_habits(records: Iterable[Habit | Mapping[str, Any]]) -> list[Habit]:
    """
    Приводит привычки из старых форматов к текущему.

    Привычки, сохранённые до появления статуса, считаются активными.

    Raises:
        pydantic.ValidationError: Если запись не является корректной привычкой.
    """
    migrated: list[Habit] = []
    for record in records:
        if isinstance(record, Habit):
            migrated.append(record.model_copy())
            continue
        data = dict(record)
        if data.get("status") is None:
            data["status"] = HabitStatus.ACTIVE
        migrated.append(Habit.model_validate(data))
    return migrated


def get_score_level(score: int) -> ScoreLevel:
    """
    Классифицирует очки дня. Проверки выполняются по порядку, срабатывает первая подходящая.

    Args:
        score (int): Очки дня.

    Returns:
        ScoreLevel: Категория очков.
    """
    if score >= 40:
        return ScoreLevel.EXCELLENT
    if score >= 20:
        return ScoreLevel.GREAT
    if score >= 10:
        return ScoreLevel.GOOD
    if score > 0:
        return ScoreLevel.OK
    if score == 0:
        return ScoreLevel.NEUTRAL
    if score > -10:
        return ScoreLevel.SLIGHTLY_BAD
    if score > -20:
        return ScoreLevel.BAD
    return ScoreLevel.VERY_BAD


class HabitStore:
    """
    Единственный владелец списка привычек и списка отметок.

    Все операции синхронные и выполняются над состоянием в памяти; после каждого изменения
    изменённая коллекция целиком сохраняется в key/value хранилище.

    Очки дня считаются по всем привычкам независимо от статуса, поэтому архивирование
    и мягкое удаление никогда не меняют историю.

    Attributes:
        repository: Локальное key/value хранилище.
    """

    def __init__(
        self,
        repository: KeyValueRepository,
        *,
        today_provider: Callable[[], date] | None = None,
    ):
        """
        Инициализирует хранилище и загружает сохранённое состояние.

        Args:
            repository (KeyValueRepository): Локальное key/value хранилище.
            today_provider (Callable[[], date] | None): Источник текущей даты.
                                                        По умолчанию "сегодня" в часовом поясе из настроек.
        """
        self.repository = repository
        self._today_provider = today_provider or (lambda: get_today_date(settings.TIMEZONE))
        self._habits: list[Habit] = self._load_habits()
        self._logs: list[HabitLog] = self._load_logs()

    # --- Загрузка и сохранение ---

    def _load_habits(self) -> list[Habit]:
        """Загружает привычки. При любой ошибке возвращает набор по умолчанию."""
        try:
            raw = self.repository.get(STORAGE_HABITS)
            if raw is None:
                log.info("Сохранённых привычек нет, используется набор по умолчанию.")
                return [habit.model_copy() for habit in DEFAULT_HABITS]
            return migrate_habits(json.loads(raw))
        except (PersistenceException, ValueError, TypeError) as exc:
            # json.JSONDecodeError и pydantic.ValidationError являются подклассами ValueError
            log.warning(f"Не удалось загрузить привычки ({exc}). Используется набор по умолчанию.")
            return [habit.model_copy() for habit in DEFAULT_HABITS]

    def _load_logs(self) -> list[HabitLog]:
        """Загружает отметки. При любой ошибке возвращает пустой список."""
        try:
            raw = self.repository.get(STORAGE_LOGS)
            if raw is None:
                return []
            return _LOGS_ADAPTER.validate_json(raw)
        except (PersistenceException, ValueError) as exc:
            log.warning(f"Не удалось загрузить отметки ({exc}). Используется пустой список.")
            return []

    def _save_habits(self) -> None:
        self._save(STORAGE_HABITS, _HABITS_ADAPTER.dump_json(self._habits, by_alias=True).decode())

    def _save_logs(self) -> None:
        self._save(STORAGE_LOGS, _LOGS_ADAPTER.dump_json(self._logs, by_alias=True).decode())

    def _save(self, key: str, value: str) -> None:
        """
        Сохраняет коллекцию. Состояние в памяти уже изменено и остаётся корректным:
        при следующем успешном сохранении оно будет записано целиком.

        Raises:
            PersistenceException: Если хранилище недоступно.
        """
        try:
            self.repository.set(key, value)
        except PersistenceException as exc:
            log.error(f"Ошибка сохранения '{key}': {exc.message}")
            raise

    # --- Чтение ---

    @property
    def today(self) -> date:
        return self._today_provider()

    @property
    def habits(self) -> list[Habit]:
        """Все привычки (активные, архивные и удалённые): нужны для подсчёта очков истории."""
        return list(self._habits)

    @property
    def logs(self) -> list[HabitLog]:
        return list(self._logs)

    @property
    def active_habits(self) -> list[Habit]:
        return self._habits_with_status(HabitStatus.ACTIVE)

    @property
    def archived_habits(self) -> list[Habit]:
        return self._habits_with_status(HabitStatus.ARCHIVED)

    @property
    def deleted_habits(self) -> list[Habit]:
        return self._habits_with_status(HabitStatus.DELETED)

    def _habits_with_status(self, status: HabitStatus) -> list[Habit]:
        return [habit for habit in self._habits if habit.status == status]

    def get_habit(self, habit_id: str) -> Habit | None:
        return next((habit for habit in self._habits if habit.id == habit_id), None)

    def find_habit_by_name(self, name: str) -> Habit | None:
        """
        Ищет привычку с таким же названием (без учёта регистра) в любом статусе.

        UI использует это, чтобы предложить восстановить архивную привычку вместо создания дубликата.
        """
        needle = name.strip().lower()
        if not needle:
            return None
        return next((habit for habit in self._habits if habit.name.lower() == needle), None)

    def get_logs_for_date(self, day: DayInput) -> list[HabitLog]:
        target = parse_day(day)
        return [entry for entry in self._logs if entry.date == target]

    def _find_log(self, habit_id: str, day: date, action: HabitLogAction) -> HabitLog | None:
        return next(
            (
                entry
                for entry in self._logs
                if entry.date == day and entry.habit_id == habit_id and entry.action == action
            ),
            None,
        )

    def is_good_habit_done(self, habit_id: str, day: DayInput) -> bool:
        return self._find_log(habit_id, parse_day(day), HabitLogAction.DONE) is not None

    def is_bad_habit_indulged(self, habit_id: str, day: DayInput) -> bool:
        return self._find_log(habit_id, parse_day(day), HabitLogAction.INDULGED) is not None

    # --- Привычки ---

    def add_habit(self, name: str, type: HabitType | str, points: int, emoji: str = "") -> Habit:
        """
        Создаёт новую активную привычку.

        Уникальность названия здесь не проверяется (см. `find_habit_by_name`).

        Args:
            name (str): Название (пробелы по краям отбрасываются).
            type (HabitType | str): Тип привычки.
            points (int): Стоимость в очках (положительное число).
            emoji (str): Иконка.

        Returns:
            Habit: Созданная привычка.

        Raises:
            ValidationException: Если название пустое, тип неизвестен или очки не положительные.
        """
        try:
            habit_in = HabitSchemaCreate(name=name, type=type, points=points, emoji=emoji)
        except ValidationError as exc:
            log.warning(f"Отклонено создание привычки '{name}': {exc.error_count()} ошибок валидации")
            raise ValidationException(
                message="Некорректные данные привычки: название не может быть пустым, очки должны быть больше 0.",
                error_type="invalid_habit",
            ) from exc

        habit = Habit(**habit_in.model_dump())
        self._habits.append(habit)
        self._save_habits()

        log.info(f"Привычка '{habit.name}' (ID: {habit.id}, {habit.type}, {habit.points} очков) создана.")
        return habit

    def update_habit(self, habit_id: str, **updates: Any) -> Habit | None:
        """
        Обновляет поля привычки.

        Универсальный примитив: сценарии жизненного цикла используют методы
        archive/delete/restore, а не смену статуса через этот метод.

        Args:
            habit_id (str): ID привычки.
            **updates: Новые значения полей (name, type, points, emoji, status).

        Returns:
            Habit | None: Обновлённая привычка или None, если привычка не найдена.

        Raises:
            ValidationException: Если новые значения некорректны.
        """
        habit = self.get_habit(habit_id)
        if habit is None:
            log.warning(f"Обновление несуществующей привычки ID: {habit_id} пропущено.")
            return None

        try:
            changes = HabitSchemaUpdate(**updates).model_dump(exclude_unset=True, exclude_none=True)
        except ValidationError as exc:
            raise ValidationException(message="Некорректные данные для обновления привычки.") from exc

        updated = habit.model_copy(update=changes)
        self._replace_habit(updated)
        self._save_habits()

        log.info(f"Привычка ID: {habit_id} обновлена: {sorted(changes)}")
        return updated

    def _replace_habit(self, updated: Habit) -> None:
        self._habits = [updated if habit.id == updated.id else habit for habit in self._habits]

    def _transition(self, habit_id: str, target: HabitStatus) -> Habit | None:
        """
        Переводит привычку в новый статус, если переход разрешён.

        Операции жизненного цикла тотальны: неизвестный ID или недопустимый переход
        не приводят к ошибке, состояние просто не меняется.
        """
        habit = self.get_habit(habit_id)
        if habit is None:
            log.warning(f"Привычка ID: {habit_id} не найдена, переход в '{target}' пропущен.")
            return None

        if not habit.status.can_transition_to(target):
            log.warning(f"Недопустимый переход привычки ID: {habit_id}: {habit.status} -> {target}.")
            return None

        updated = habit.model_copy(update={"status": target})
        self._replace_habit(updated)
        self._save_habits()

        log.info(f"Привычка ID: {habit_id}: {habit.status} -> {target}.")
        return updated

    def archive_habit(self, habit_id: str) -> Habit | None:
        """Архивирует активную привычку: скрыта везде, очки истории сохраняются."""
        return self._transition(habit_id, HabitStatus.ARCHIVED)

    def delete_habit(self, habit_id: str) -> Habit | None:
        """Мягко удаляет активную привычку: отметки остаются и видны в прошедших днях."""
        return self._transition(habit_id, HabitStatus.DELETED)

    def restore_habit(self, habit_id: str) -> Habit | None:
        """Возвращает архивную или удалённую привычку в активные."""
        return self._transition(habit_id, HabitStatus.ACTIVE)

    def unarchive_habit(self, habit_id: str) -> Habit | None:
        """Синоним `restore_habit`: восстанавливает привычку как из архива, так и из удалённых."""
        return self.restore_habit(habit_id)

    def permanently_delete_habit(self, habit_id: str) -> bool:
        """
        Окончательно удаляет привычку вместе со всеми её отметками.

        Args:
            habit_id (str): ID привычки.

        Returns:
            bool: True, если что-либо было удалено.
        """
        habits_left = [habit for habit in self._habits if habit.id != habit_id]
        logs_left = [entry for entry in self._logs if entry.habit_id != habit_id]

        removed_habits = len(self._habits) - len(habits_left)
        removed_logs = len(self._logs) - len(logs_left)

        if not removed_habits and not removed_logs:
            log.warning(f"Привычка ID: {habit_id} не найдена, окончательное удаление пропущено.")
            return False

        self._habits = habits_left
        self._logs = logs_left
        self._save_habits()
        self._save_logs()

        log.info(f"Привычка ID: {habit_id} удалена окончательно вместе с {removed_logs} отметками.")
        return True

    # --- Отметки ---

    def _toggle(self, habit_id: str, day: DayInput, action: HabitLogAction) -> HabitLog | None:
        """
        Создаёт отметку (habit_id, day, action) или удаляет её, если она уже есть.

        Returns:
            HabitLog | None: Созданная отметка или None, если отметка была удалена.

        Raises:
            ValidationException: Если привычка не найдена или её тип не соответствует действию.
        """
        target_day = parse_day(day)
        habit = self.get_habit(habit_id)

        if habit is None:
            raise ValidationException(message=f"Привычка с ID {habit_id} не найдена.", error_type="habit_not_found")

        if ACTION_FOR_TYPE[habit.type] != action:
            raise ValidationException(
                message=f"Действие '{action}' недопустимо для привычки типа '{habit.type}'.",
                error_type="habit_type_mismatch",
            )

        existing = self._find_log(habit_id, target_day, action)

        if existing is not None:
            self._logs = [entry for entry in self._logs if entry.id != existing.id]
            self._save_logs()
            log.debug(f"Отметка '{action}' привычки ID: {habit_id} за {format_day(target_day)} снята.")
            return None

        entry = HabitLog(date=target_day, habit_id=habit_id, action=action)
        self._logs.append(entry)
        self._save_logs()
        log.debug(f"Отметка '{action}' привычки ID: {habit_id} за {format_day(target_day)} поставлена.")
        return entry

    def toggle_good_habit(self, habit_id: str, day: DayInput) -> HabitLog | None:
        """Отмечает выполнение полезной привычки за день или снимает отметку."""
        return self._toggle(habit_id, day, HabitLogAction.DONE)

    def toggle_bad_habit(self, habit_id: str, day: DayInput) -> HabitLog | None:
        """Отмечает срыв по вредной привычке за день или снимает отметку."""
        return self._toggle(habit_id, day, HabitLogAction.INDULGED)

    # --- Очки ---

    def _logs_by_date(self) -> dict[date, list[HabitLog]]:
        grouped: dict[date, list[HabitLog]] = defaultdict(list)
        for entry in self._logs:
            grouped[entry.date].append(entry)
        return grouped

    def _score_day(self, day: date, day_logs: list[HabitLog], today: date) -> int:
        # День без отметок всегда 0: никаких "фантомных" бонусов за воздержание
        if not day_logs:
            return 0

        done = {entry.habit_id for entry in day_logs if entry.action == HabitLogAction.DONE}
        indulged = {entry.habit_id for entry in day_logs if entry.action == HabitLogAction.INDULGED}
        # Бонус за воздержание начисляется только когда день полностью прошёл
        is_past = day < today

        score = 0
        for habit in self._habits:
            if habit.type == HabitType.GOOD:
                if habit.id in done:
                    score += habit.points
            elif habit.id in indulged:
                score -= habit.points
            elif is_past:
                score += habit.avoidance_bonus
        return score

    def calculate_day_score(self, day: DayInput) -> int:
        """
        Считает очки дня по всем привычкам независимо от статуса.

        Полезная привычка: +points, если выполнена. Вредная: -points, если допущена,
        иначе +floor(points * 0.4), но только для дней строго раньше сегодняшнего.
        Результат не ограничивается и может быть отрицательным.

        Args:
            day (date | str): День.

        Returns:
            int: Очки дня; 0, если за день нет ни одной отметки.
        """
        target_day = parse_day(day)
        return self._score_day(target_day, self.get_logs_for_date(target_day), self.today)

    def get_total_score(self) -> int:
        """Сумма очков по всем дням, за которые есть хотя бы одна отметка."""
        today = self.today
        return sum(self._score_day(day, day_logs, today) for day, day_logs in self._logs_by_date().items())

    def get_score_level(self, score: int) -> ScoreLevel:
        return get_score_level(score)

    def get_day_details(self, day: DayInput) -> DayDetails:
        """
        Возвращает детали дня для отображения.

        Архивные привычки в счётчиках не участвуют (они скрыты везде), удалённые участвуют.
        Очки дня при этом считаются по всем привычкам.

        Args:
            day (date | str): День.

        Returns:
            DayDetails: Счётчики и очки дня.
        """
        target_day = parse_day(day)
        day_logs = self.get_logs_for_date(target_day)
        today = self.today

        done = {entry.habit_id for entry in day_logs if entry.action == HabitLogAction.DONE}
        indulged = {entry.habit_id for entry in day_logs if entry.action == HabitLogAction.INDULGED}
        visible = [habit for habit in self._habits if habit.status != HabitStatus.ARCHIVED]
        good_habits = [habit for habit in visible if habit.type == HabitType.GOOD]
        bad_habits = [habit for habit in visible if habit.type == HabitType.BAD]

        bad_avoided = 0
        if target_day < today:
            bad_avoided = sum(1 for habit in bad_habits if habit.id not in indulged)

        return DayDetails(
            good_done=sum(1 for habit in good_habits if habit.id in done),
            bad_indulged=sum(1 for habit in bad_habits if habit.id in indulged),
            bad_avoided=bad_avoided,
            score=self._score_day(target_day, day_logs, today),
        )

    # --- Обмен данными ---

    def export_data(self) -> SyncPayload:
        """Возвращает полный снимок состояния для облачной синхронизации."""
        return SyncPayload(habits=list(self._habits), logs=list(self._logs))

    def import_data(
        self,
        habits: Iterable[Habit | Mapping[str, Any]],
        logs: Iterable[HabitLog | Mapping[str, Any]],
    ) -> None:
        """
        Полностью заменяет локальное состояние снимком (без слияния).

        Привычки старого формата без статуса становятся активными.

        Args:
            habits: Привычки снимка.
            logs: Отметки снимка.

        Raises:
            ValidationException: Если снимок некорректен. Состояние при этом не меняется.
            PersistenceException: Если новое состояние не удалось сохранить.
        """
        try:
            new_habits = migrate_habits(habits)
            new_logs = _LOGS_ADAPTER.validate_python(
                [entry.model_dump() if isinstance(entry, HabitLog) else entry for entry in logs]
            )
        except (ValueError, TypeError) as exc:
            log.warning(f"Импорт отклонён, снимок некорректен: {exc}")
            raise ValidationException(message="Некорректный снимок данных.", error_type="invalid_snapshot") from exc

        self._habits = new_habits
        self._logs = new_logs
        self._save_habits()
        self._save_logs()

        log.info(f"Импортировано привычек: {len(new_habits)}, отметок: {len(new_logs)}.")
