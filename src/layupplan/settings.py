from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from layupplan.core.calendar import DEFAULT_WORK_WEEKDAYS, MONDAY


@dataclass(frozen=True)
class Settings:
    db_path: Path
    log_level: str = "INFO"


def default_db_path() -> Path:
    # Fixed, repo-local database location (keeps paths stable across machines).
    return Path("db") / "layupplan.db"


@dataclass(frozen=True)
class SchedulerSettings:
    """Tunables for one allocation run.

    max_attempts: work days examined per order before giving up (32 = 8 weeks Mon-Thu).
    weekly_slack: how far a week may run above the average weekly load.
    fg_daily_limit: cap of fiberglass stocks per day; None disables it.
    """

    work_weekdays: tuple[int, ...] = DEFAULT_WORK_WEEKDAYS
    max_attempts: int = 32
    weekly_slack: float = 2.0
    lop_weekday: int = MONDAY
    fg_daily_limit: int | None = 5
    default_employee_hours: float = 10.0

    def __post_init__(self) -> None:
        if not self.work_weekdays:
            raise ValueError("work_weekdays is empty")
        if any(int(d) < 0 or int(d) > 6 for d in self.work_weekdays):
            raise ValueError(f"invalid work_weekdays: {self.work_weekdays!r}")
        if self.lop_weekday not in self.work_weekdays:
            raise ValueError("lop_weekday must be one of work_weekdays")
        if int(self.max_attempts) <= 0:
            raise ValueError(f"invalid max_attempts: {self.max_attempts!r}")
        if float(self.weekly_slack) < 0:
            raise ValueError(f"invalid weekly_slack: {self.weekly_slack!r}")
        if self.fg_daily_limit is not None and int(self.fg_daily_limit) < 0:
            raise ValueError(f"invalid fg_daily_limit: {self.fg_daily_limit!r}")
        if float(self.default_employee_hours) <= 0:
            raise ValueError(f"invalid default_employee_hours: {self.default_employee_hours!r}")
