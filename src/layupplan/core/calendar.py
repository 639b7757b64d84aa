"""Work-week calendar helpers.

Weekdays follow ``date.weekday()``: Monday=0 ... Sunday=6.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, Iterator

MONDAY = 0
DEFAULT_WORK_WEEKDAYS: tuple[int, ...] = (0, 1, 2, 3)  # Mon-Thu


def is_work_day(d: date, work_weekdays: Iterable[int] = DEFAULT_WORK_WEEKDAYS) -> bool:
    return d.weekday() in set(work_weekdays)


def first_work_day_on_or_after(d: date, work_weekdays: Iterable[int] = DEFAULT_WORK_WEEKDAYS) -> date:
    days = set(work_weekdays)
    if not days:
        raise ValueError("work week is empty")
    current = d
    while current.weekday() not in days:
        current += timedelta(days=1)
    return current


def next_work_day(d: date, work_weekdays: Iterable[int] = DEFAULT_WORK_WEEKDAYS) -> date:
    """First work day strictly after ``d``."""
    return first_work_day_on_or_after(d + timedelta(days=1), work_weekdays)


def week_start(d: date) -> date:
    return d - timedelta(days=d.weekday())


def iso_week_key(d: date) -> tuple[int, int]:
    iso = d.isocalendar()
    return (iso[0], iso[1])


def iter_work_days(
    start: date,
    count: int,
    work_weekdays: Iterable[int] = DEFAULT_WORK_WEEKDAYS,
) -> Iterator[date]:
    """Yield ``count`` work days beginning at the first work day on/after ``start``."""
    days = tuple(work_weekdays)
    if count <= 0:
        return
    current = first_work_day_on_or_after(start, days)
    for _ in range(count):
        yield current
        current = next_work_day(current, days)
