"""Сервис статистики: серии, лучшие дни, сводки по годам и месяцам."""

from datetime import date, timedelta

from src.tracker.schemas import DayScore, HabitLogAction, HabitStat, HabitType, MonthStat, PeriodStats

from .habit_store import HabitStore

# Предел поиска назад при подсчёте текущей серии
MAX_STREAK_DAYS = 366


class StatsService:
    """
    Производные показатели поверх HabitStore.

    Все показатели строятся на `calculate_day_score` и учитывают только дни с отметками,
    поэтому наследуют его свойства: архивирование не меняет историю, пустые дни дают 0.
    """

    def __init__(self, store: HabitStore):
        self.store = store

    def _logged_dates(self, year: int | None = None) -> list[date]:
        dates = {entry.date for entry in self.store.logs}
        if year is not None:
            dates = {day for day in dates if day.year == year}
        return sorted(dates)

    def current_streak(self) -> int:
        """Количество дней подряд с хотя бы одной отметкой, считая назад от сегодняшнего."""
        logged = set(self._logged_dates())
        day = self.store.today
        streak = 0
        while streak < MAX_STREAK_DAYS and day in logged:
            streak += 1
            day -= timedelta(days=1)
        return streak

    def best_day(self) -> DayScore | None:
        """День с максимальными очками среди дней с отметками (самый ранний при равенстве)."""
        best: DayScore | None = None
        for day in self._logged_dates():
            score = self.store.calculate_day_score(day)
            if best is None or score > best.score:
                best = DayScore(date=day, score=score, has_data=True)
        return best

    def habit_stats(self) -> list[HabitStat]:
        """
        Сколько раз каждая привычка выполнена (good) или допущена (bad).

        Returns:
            list[HabitStat]: Статистика по всем привычкам, по убыванию количества.
        """
        stats = []
        for habit in self.store.habits:
            action = HabitLogAction.DONE if habit.type == HabitType.GOOD else HabitLogAction.INDULGED
            count = sum(1 for entry in self.store.logs if entry.habit_id == habit.id and entry.action == action)
            stats.append(HabitStat(habit=habit, count=count))
        return sorted(stats, key=lambda stat: stat.count, reverse=True)

    def totals(self) -> dict[HabitLogAction, int]:
        """Общее количество отметок каждого вида."""
        totals = {action: 0 for action in HabitLogAction}
        for entry in self.store.logs:
            totals[entry.action] += 1
        return totals

    def recent_scores(self, days: int = 14) -> list[DayScore]:
        """
        Очки за последние `days` дней, заканчивая сегодняшним.

        Сегодняшний день всегда помечен как имеющий данные (он ещё идёт).
        """
        today = self.store.today
        logged = set(self._logged_dates())
        series = []
        for offset in range(days - 1, -1, -1):
            day = today - timedelta(days=offset)
            has_data = day in logged or day == today
            series.append(
                DayScore(date=day, score=self.store.calculate_day_score(day) if has_data else 0, has_data=has_data)
            )
        return series

    def period_stats(self, year: int | None = None) -> PeriodStats:
        """
        Сводка по дням с отметками.

        Args:
            year (int | None): Год. Если None, считается за всё время.

        Returns:
            PeriodStats: Активные, положительные и отрицательные дни, сумма, лучший и худший день.
        """
        dates = self._logged_dates(year)
        scores = [self.store.calculate_day_score(day) for day in dates]
        return PeriodStats(
            active_days=len(dates),
            positive_days=sum(1 for score in scores if score > 0),
            negative_days=sum(1 for score in scores if score < 0),
            total_score=sum(scores),
            best_score=max([0, *scores]),
            worst_score=min([0, *scores]),
            first_date=dates[0] if dates else None,
        )

    def month_breakdown(self, year: int) -> list[MonthStat]:
        """Очки по месяцам года (только месяцы с отметками)."""
        months: dict[int, MonthStat] = {}
        for day in self._logged_dates(year):
            stat = months.setdefault(day.month, MonthStat(month=day.month, score=0, active_days=0))
            stat.score += self.store.calculate_day_score(day)
            stat.active_days += 1
        return [months[month] for month in sorted(months)]

    def active_years(self) -> list[int]:
        """Годы с отметками и текущий год, от последнего к первому."""
        years = {day.year for day in self._logged_dates()}
        years.add(self.store.today.year)
        return sorted(years, reverse=True)
