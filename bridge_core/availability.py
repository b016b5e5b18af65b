"""Движок общей доступности: недельные интервалы, календари и пересечение свободного времени.

Время хранится как целое число минут от локальной полуночи (без даты и без
часового пояса). Расписания партнеров сравниваются как есть, в том локальном
времени, в котором их ввели.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .config import get_min_duration_minutes
from .errors import InvalidDay, InvalidParameter, InvalidRange

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 1440
DAYS_IN_WEEK = 7
DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


class ScheduleType(str, Enum):
    """Тип занятости в расписании."""
    CLASS = "class"
    WORK = "work"
    OTHER = "other"


class CoverageNote(str, Enum):
    """Насколько заполнены расписания, по которым считалась доступность."""
    BOTH_EMPTY = "both-empty"
    ONE_EMPTY = "one-empty"
    NORMAL = "normal"


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def parse_time_of_day(value: Any, field: str = "time") -> int:
    """
    Преобразует строку "HH:MM[:SS]" в минуты от полуночи.

    Берутся только первые два компонента, секунды игнорируются.
    "24:00" допускается и означает конец суток (1440).

    Args:
        value: Строка времени из хранилища
        field: Имя поля для сообщения об ошибке

    Returns:
        Количество минут от полуночи

    Raises:
        InvalidRange: Если строка не в формате HH:MM[:SS]
    """
    if not isinstance(value, str):
        raise InvalidRange(f"{field} должен быть строкой HH:MM[:SS], получено: {value!r}", field)

    parts = value.strip().split(":")
    if len(parts) not in (2, 3) or not all(part.isascii() and part.isdigit() for part in parts):
        raise InvalidRange(f"{field} должен быть в формате HH:MM[:SS], получено: {value!r}", field)

    hour, minute = int(parts[0]), int(parts[1])
    if minute > 59 or hour > 24 or (hour == 24 and minute != 0):
        raise InvalidRange(f"{field} вне допустимого диапазона: {value!r}", field)
    return hour * 60 + minute


def format_time_of_day(minutes: int) -> str:
    """Минуты от полуночи -> "HH:MM" (1440 -> "24:00")."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


@dataclass(frozen=True)
class Interval:
    """
    Повторяющийся каждую неделю интервал занятости.

    Неизменяем после создания. Интервалы через полночь не поддерживаются:
    такую занятость нужно разбить на два интервала (до 24:00 и после 00:00).
    """
    day: int
    start: int
    end: int
    label: str = ""
    kind: ScheduleType = ScheduleType.OTHER

    def __post_init__(self):
        if not _is_int(self.day) or not 0 <= self.day < DAYS_IN_WEEK:
            raise InvalidDay(f"day_of_week должен быть от 0 до 6, получено: {self.day!r}", "day_of_week")
        if not _is_int(self.start) or not _is_int(self.end):
            raise InvalidRange("Границы интервала должны быть целыми числами минут", "start_time")
        if self.start < 0 or self.start > MINUTES_PER_DAY:
            raise InvalidRange(f"start_time вне диапазона [0, 1440]: {self.start}", "start_time")
        if self.end < 0 or self.end > MINUTES_PER_DAY:
            raise InvalidRange(f"end_time вне диапазона [0, 1440]: {self.end}", "end_time")
        if self.start >= self.end:
            raise InvalidRange(
                f"start_time должен быть раньше end_time: {format_time_of_day(self.start)}"
                f" >= {format_time_of_day(self.end)}",
                "end_time",
            )
        if self.label is None:
            object.__setattr__(self, "label", "")
        if self.kind is None:
            object.__setattr__(self, "kind", ScheduleType.OTHER)
        elif not isinstance(self.kind, ScheduleType):
            try:
                object.__setattr__(self, "kind", ScheduleType(self.kind))
            except ValueError:
                raise InvalidParameter(f"Неизвестный тип занятости: {self.kind!r}", "type")

    def overlaps(self, other: "Interval") -> bool:
        return overlaps(self, other)

    def duration_minutes(self) -> int:
        return self.end - self.start

    def to_dict(self) -> dict:
        return {
            "day": self.day,
            "start": self.start,
            "end": self.end,
            "start_time": format_time_of_day(self.start),
            "end_time": format_time_of_day(self.end),
            "label": self.label,
            "kind": self.kind.value,
        }


def overlaps(a: Interval, b: Interval) -> bool:
    """
    Пересекаются ли два интервала.

    Касание концами (a.end == b.start) пересечением не считается.
    """
    return a.day == b.day and a.start < b.end and b.start < a.end


def interval_from_row(row: Dict[str, Any]) -> Interval:
    """
    Строит Interval из строки таблицы schedules.

    Ожидаемая форма: {day_of_week, start_time, end_time, title, type}.
    Неоднозначные значения отклоняются, а не приводятся.

    Raises:
        InvalidDay: Если day_of_week не целое 0-6
        InvalidRange: Если время не распознано или start >= end
        InvalidParameter: Если type указан, но неизвестен
    """
    if not isinstance(row, dict):
        raise InvalidRange(f"Строка расписания должна быть объектом, получено: {row!r}", "row")

    day = row.get("day_of_week")
    if not _is_int(day):
        raise InvalidDay(f"day_of_week должен быть целым числом 0-6, получено: {day!r}", "day_of_week")

    start = parse_time_of_day(row.get("start_time"), "start_time")
    end = parse_time_of_day(row.get("end_time"), "end_time")

    raw_kind = row.get("type")
    if raw_kind is None:
        kind = ScheduleType.OTHER
    else:
        try:
            kind = ScheduleType(raw_kind)
        except ValueError:
            raise InvalidParameter(f"type должен быть class, work или other, получено: {raw_kind!r}", "type")

    return Interval(day=day, start=start, end=end, label=row.get("title") or "", kind=kind)


@dataclass(frozen=True)
class FreeWindow:
    """Максимальный свободный промежуток в пределах одного дня."""
    day: int
    start: int
    end: int

    def duration_minutes(self) -> int:
        return self.end - self.start

    def contains(self, other: "FreeWindow") -> bool:
        return self.day == other.day and self.start <= other.start and other.end <= self.end

    def to_dict(self) -> dict:
        return {
            "day": self.day,
            "day_name": DAY_NAMES[self.day],
            "start": self.start,
            "end": self.end,
            "start_time": format_time_of_day(self.start),
            "end_time": format_time_of_day(self.end),
            "duration_minutes": self.duration_minutes(),
        }


class WeeklyCalendar:
    """
    Недельное расписание одного человека.

    Интервалы каждого дня хранятся отсортированными по (start, end) с сохранением
    порядка вставки при равенстве. Для расчета свободного времени пересекающиеся
    и смежные интервалы сливаются независимо от kind/label; исходные записи
    сохраняются для отображения.
    """

    def __init__(self):
        self._days: Dict[int, List[Interval]] = {day: [] for day in range(DAYS_IN_WEEK)}

    @classmethod
    def from_intervals(cls, intervals: List[Interval]) -> "WeeklyCalendar":
        calendar = cls()
        for interval in intervals:
            calendar.insert(interval)
        return calendar

    @classmethod
    def from_rows(cls, rows: List[Dict[str, Any]]) -> "WeeklyCalendar":
        return cls.from_intervals([interval_from_row(row) for row in rows])

    def insert(self, interval: Interval) -> None:
        """Добавляет интервал (используется только при построении календаря)."""
        if not isinstance(interval, Interval):
            raise TypeError(f"Ожидался Interval, получено: {type(interval).__name__}")
        day_list = self._days[interval.day]
        day_list.append(interval)
        day_list.sort(key=lambda i: (i.start, i.end))

    def __len__(self) -> int:
        return sum(len(items) for items in self._days.values())

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    def intervals_on_day(self, day: int) -> List[Interval]:
        _check_day(day)
        return list(self._days[day])

    def busy_spans_on_day(self, day: int) -> List[Tuple[int, int]]:
        """Слитые непересекающиеся промежутки занятости за день."""
        _check_day(day)
        spans: List[Tuple[int, int]] = []
        current_start: Optional[int] = None
        current_end = 0
        for interval in self._days[day]:
            if current_start is None:
                current_start, current_end = interval.start, interval.end
            elif interval.start <= current_end:
                current_end = max(current_end, interval.end)
            else:
                spans.append((current_start, current_end))
                current_start, current_end = interval.start, interval.end
        if current_start is not None:
            spans.append((current_start, current_end))
        return spans

    def free_windows_on_day(self, day: int) -> Iterator[FreeWindow]:
        """Свободные окна дня: дополнение занятости до [0, 1440). Пересчитывается при каждом вызове."""
        pointer = 0
        for start, end in self.busy_spans_on_day(day):
            if pointer < start:
                yield FreeWindow(day=day, start=pointer, end=start)
            pointer = end
        if pointer < MINUTES_PER_DAY:
            yield FreeWindow(day=day, start=pointer, end=MINUTES_PER_DAY)

    def is_free(self, day: int, start: int, end: int) -> bool:
        """Свободен ли человек весь промежуток [start, end) в указанный день."""
        probe = Interval(day=day, start=start, end=end)
        return not any(overlaps(probe, interval) for interval in self._days[day])

    def conflicts(self) -> List[Tuple[Interval, Interval]]:
        """
        Пары пересекающихся интервалов разного типа в один день.

        Одновременные занятия разного типа - ошибка ввода данных пользователем,
        а не ошибка расчета: они сохраняются как есть и только помечаются.
        """
        found: List[Tuple[Interval, Interval]] = []
        for day in range(DAYS_IN_WEEK):
            items = self._days[day]
            for i, first in enumerate(items):
                for second in items[i + 1:]:
                    if second.start >= first.end:
                        break
                    if first.kind != second.kind:
                        found.append((first, second))
        return found


def _check_day(day: int) -> None:
    if not _is_int(day) or not 0 <= day < DAYS_IN_WEEK:
        raise InvalidDay(f"day_of_week должен быть от 0 до 6, получено: {day!r}", "day_of_week")


@dataclass(frozen=True)
class AvailabilityResult:
    """Результат расчета общей доступности двух людей."""
    mutual_free_windows: List[FreeWindow]
    busy_union: Dict[int, List[Interval]]
    coverage_note: CoverageNote

    def best_windows(self, limit: Optional[int] = 3) -> List[FreeWindow]:
        """Самые длинные общие окна; при равной длительности раньше идет более ранний день и время."""
        ranked = sorted(self.mutual_free_windows, key=lambda w: (-w.duration_minutes(), w.day, w.start))
        return ranked if limit is None else ranked[:limit]

    def to_dict(self) -> dict:
        return {
            "mutualFreeWindows": [window.to_dict() for window in self.mutual_free_windows],
            "busyUnion": {
                str(day): [interval.to_dict() for interval in intervals]
                for day, intervals in self.busy_union.items()
            },
            "coverageNote": self.coverage_note.value,
        }


def intersect_windows(first: List[FreeWindow], second: List[FreeWindow]) -> List[FreeWindow]:
    """
    Пересечение двух отсортированных списков окон одного дня (два указателя).

    Сдвигается то окно, которое заканчивается раньше.
    """
    result: List[FreeWindow] = []
    i = j = 0
    while i < len(first) and j < len(second):
        a, b = first[i], second[j]
        start = max(a.start, b.start)
        end = min(a.end, b.end)
        if start < end:
            result.append(FreeWindow(day=a.day, start=start, end=end))
        if a.end <= b.end:
            i += 1
        else:
            j += 1
    return result


def _validate_min_duration(min_duration_minutes: Any) -> int:
    if not _is_int(min_duration_minutes):
        raise InvalidParameter(
            f"min_duration должен быть целым числом минут, получено: {min_duration_minutes!r}",
            "min_duration",
        )
    if min_duration_minutes < 0:
        raise InvalidParameter(
            f"min_duration не может быть отрицательным: {min_duration_minutes}",
            "min_duration",
        )
    return min_duration_minutes


def resolve(
    calendar_a: WeeklyCalendar,
    calendar_b: WeeklyCalendar,
    min_duration_minutes: int = 30,
) -> AvailabilityResult:
    """
    Считает общие свободные окна двух недельных календарей.

    Каждый день обрабатывается отдельно: промежуток с ночи воскресенья на утро
    понедельника не склеивается. Окна короче min_duration_minutes отбрасываются.
    Функция чистая: одинаковые входы всегда дают одинаковый результат.

    Args:
        calendar_a: Календарь первого человека
        calendar_b: Календарь второго человека
        min_duration_minutes: Минимальная длительность окна в минутах

    Returns:
        AvailabilityResult с окнами, отсортированными по дню и началу

    Raises:
        InvalidParameter: Если min_duration_minutes отрицателен или не целое число
    """
    min_duration = _validate_min_duration(min_duration_minutes)

    mutual: List[FreeWindow] = []
    busy_union: Dict[int, List[Interval]] = {}
    for day in range(DAYS_IN_WEEK):
        free_a = list(calendar_a.free_windows_on_day(day))
        free_b = list(calendar_b.free_windows_on_day(day))
        mutual.extend(
            window for window in intersect_windows(free_a, free_b)
            if window.duration_minutes() >= min_duration
        )
        busy_union[day] = sorted(
            calendar_a.intervals_on_day(day) + calendar_b.intervals_on_day(day),
            key=lambda i: (i.start, i.end),
        )

    if calendar_a.is_empty and calendar_b.is_empty:
        note = CoverageNote.BOTH_EMPTY
    elif calendar_a.is_empty or calendar_b.is_empty:
        note = CoverageNote.ONE_EMPTY
    else:
        note = CoverageNote.NORMAL

    return AvailabilityResult(mutual_free_windows=mutual, busy_union=busy_union, coverage_note=note)


def compute_mutual_availability(
    raw_intervals_a: List[Dict[str, Any]],
    raw_intervals_b: List[Dict[str, Any]],
    min_duration_minutes: Optional[int] = None,
) -> AvailabilityResult:
    """
    Точка входа для HTTP-слоя: строки расписаний двух людей -> AvailabilityResult.

    Если min_duration_minutes не указан, берется значение из конфигурации.
    Ошибки валидации строк пробрасываются вызывающему коду.
    """
    if min_duration_minutes is None:
        min_duration_minutes = get_min_duration_minutes()
    _validate_min_duration(min_duration_minutes)

    calendar_a = WeeklyCalendar.from_rows(raw_intervals_a or [])
    calendar_b = WeeklyCalendar.from_rows(raw_intervals_b or [])

    for label, calendar in (("A", calendar_a), ("B", calendar_b)):
        conflicts = calendar.conflicts()
        if conflicts:
            logger.warning(
                f"Календарь {label}: {len(conflicts)} пересечений занятий разного типа "
                f"(например, {conflicts[0][0].label!r} и {conflicts[0][1].label!r})"
            )

    result = resolve(calendar_a, calendar_b, min_duration_minutes)
    logger.debug(
        f"Общая доступность: {len(result.mutual_free_windows)} окон, coverage={result.coverage_note.value}"
    )
    return result
