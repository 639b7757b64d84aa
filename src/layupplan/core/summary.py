from __future__ import annotations

from datetime import date
from typing import Sequence

from layupplan.core.calendar import iso_week_key, week_start
from layupplan.core.models import MoldResource, ScheduleResult


def unscheduled_warning(result: ScheduleResult) -> str | None:
    n = len(result.unscheduled)
    if n == 0:
        return None
    noun = "order" if n == 1 else "orders"
    return f"{n} {noun} could not be auto-scheduled"


def summarize_schedule(result: ScheduleResult, molds: Sequence[MoldResource] = ()) -> dict:
    """Aggregate a schedule into daily/weekly loads for display.

    Returns:
        {
            "daily": {iso_date: count},
            "mold_daily": {mold_id: {iso_date: {"used": int, "capacity": int}}},
            "weekly": {iso_monday: count},
            "scheduled": int,
            "unscheduled": int,
            "status": str,
            "warning": str | None,
        }
    """
    capacity = {m.mold_id: int(m.multiplier) for m in molds}

    daily: dict[str, int] = {}
    weekly: dict[tuple[int, int], int] = {}
    week_label: dict[tuple[int, int], date] = {}
    mold_daily: dict[str, dict[str, dict[str, int]]] = {}

    for a in result.assignments:
        d = a.scheduled_date
        key = d.isoformat()
        daily[key] = daily.get(key, 0) + 1

        wk = iso_week_key(d)
        weekly[wk] = weekly.get(wk, 0) + 1
        week_label[wk] = week_start(d)

        slot = mold_daily.setdefault(a.mold_id, {}).setdefault(
            key, {"used": 0, "capacity": capacity.get(a.mold_id, 0)}
        )
        slot["used"] += 1

    return {
        "daily": dict(sorted(daily.items())),
        "mold_daily": {m: dict(sorted(v.items())) for m, v in sorted(mold_daily.items())},
        "weekly": {week_label[wk].isoformat(): n for wk, n in sorted(weekly.items())},
        "scheduled": len(result.assignments),
        "unscheduled": len(result.unscheduled),
        "status": result.status,
        "warning": unscheduled_warning(result),
    }
