from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Sequence

from layupplan.core.calendar import first_work_day_on_or_after, is_work_day, iso_week_key, next_work_day
from layupplan.core.features import get_lop_value, needs_lop_adjustment
from layupplan.core.models import (
    Assignment,
    EmployeeLoad,
    EmployeeResource,
    MoldResource,
    Order,
    PriorityOrder,
    ScheduleResult,
)
from layupplan.core.priority import PriorityRanker, PriorityRules
from layupplan.settings import SchedulerSettings

logger = logging.getLogger(__name__)

_WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def is_fiberglass(stock_model_id: str | None) -> bool:
    s = str(stock_model_id or "").strip().lower()
    return s.startswith("fg_") or "fiberglass" in s


def lop_day_allowed(order: Order, day: date, settings: SchedulerSettings) -> bool:
    """Length-of-pull rule: adjusted stocks are only laid up on the LOP weekday (Monday)."""
    if not needs_lop_adjustment(order.features):
        return True
    return day.weekday() == settings.lop_weekday


@dataclass
class AllocationLedger:
    """Ephemeral usage counters for one allocation run."""

    mold_usage: dict[date, Counter] = field(default_factory=dict)
    date_totals: Counter = field(default_factory=Counter)
    employee_usage: dict[date, Counter] = field(default_factory=dict)
    week_counts: dict[tuple[int, int], int] = field(default_factory=dict)
    fg_counts: Counter = field(default_factory=Counter)

    def touch_week(self, day: date) -> tuple[int, int]:
        key = iso_week_key(day)
        self.week_counts.setdefault(key, 0)
        return key

    def mold_used(self, day: date, mold_id: str) -> int:
        return self.mold_usage.get(day, Counter())[mold_id]

    def employee_total(self, day: date) -> int:
        return sum(self.employee_usage.get(day, Counter()).values())

    def week_over_average(self, day: date, slack: float) -> bool:
        key = iso_week_key(day)
        if not self.week_counts:
            return False
        average = sum(self.week_counts.values()) / len(self.week_counts)
        return self.week_counts.get(key, 0) > average + slack

    def commit(self, *, day: date, mold_id: str, employee_id: str, fiberglass: bool) -> None:
        self.mold_usage.setdefault(day, Counter())[mold_id] += 1
        self.date_totals[day] += 1
        self.employee_usage.setdefault(day, Counter())[employee_id] += 1
        key = iso_week_key(day)
        self.week_counts[key] = self.week_counts.get(key, 0) + 1
        if fiberglass:
            self.fg_counts[day] += 1

    @classmethod
    def from_assignments(
        cls,
        assignments: Iterable[Assignment],
        *,
        fiberglass_orders: set[str] | None = None,
    ) -> "AllocationLedger":
        ledger = cls()
        fg = fiberglass_orders or set()
        for a in assignments:
            employee_id = a.employee_assignments[0].employee_id if a.employee_assignments else ""
            ledger.commit(
                day=a.scheduled_date,
                mold_id=a.mold_id,
                employee_id=employee_id,
                fiberglass=a.order_id in fg,
            )
        return ledger


class ScheduleAllocator:
    """Greedy, horizon-bounded placement of prioritized orders onto molds and work days.

    Orders are taken in the given order. For each one the allocator walks forward
    over work days starting at its entry date and commits the first date where a
    mold slot, employee capacity, the length-of-pull weekday rule and the weekly
    fairness bound all hold. Orders that find no date within ``max_attempts`` work
    days are reported in ``ScheduleResult.unscheduled``; they are not an error.
    """

    def __init__(
        self,
        molds: Sequence[MoldResource],
        employees: Sequence[EmployeeResource],
        settings: SchedulerSettings | None = None,
    ):
        self.settings = settings or SchedulerSettings()
        # Disabled molds never take part; sorted by id for deterministic behavior
        self.molds = sorted((m for m in molds if m.enabled and int(m.multiplier or 0) > 0), key=lambda m: m.mold_id)
        self.employees = sorted(employees, key=lambda e: e.employee_id)
        self.employee_capacity: dict[str, float] = {
            e.employee_id: e.daily_capacity(self.settings.default_employee_hours) for e in self.employees
        }
        self.total_employee_capacity = sum(self.employee_capacity.values())

    def allocate(
        self,
        orders: Iterable[PriorityOrder | Order],
        *,
        reference_date: date | None = None,
        not_before: date | None = None,
    ) -> ScheduleResult:
        items = [o.order if isinstance(o, PriorityOrder) else o for o in orders]
        result = ScheduleResult()

        if not items:
            logger.info("No orders to schedule")
            return result
        if not self.molds:
            logger.info("No enabled molds; %d orders left unscheduled", len(items))
            return result
        if not self.employees or self.total_employee_capacity <= 0:
            logger.info("No employee capacity; %d orders left unscheduled", len(items))
            return result

        ledger = AllocationLedger()
        seen: set[str] = set()
        fallback_start = reference_date or date.today()

        for order in items:
            if order.order_id in seen:
                logger.warning("Duplicate order id %s ignored", order.order_id)
                result.unscheduled.append(
                    {"order_id": order.order_id, "error": "Duplicate order id", "attempts": 0}
                )
                continue
            seen.add(order.order_id)

            assignment, report = self._place(order, ledger, fallback_start=fallback_start, not_before=not_before)
            if assignment is not None:
                result.assignments.append(assignment)
            else:
                logger.warning(
                    "Could not schedule order %s within %d work days (%s)",
                    order.order_id,
                    report.get("attempts", 0),
                    report.get("error"),
                )
                result.unscheduled.append(report)

        logger.info(
            "Allocation finished: %d scheduled, %d unscheduled, %d molds, %d employees",
            len(result.assignments),
            len(result.unscheduled),
            len(self.molds),
            len(self.employees),
        )
        return result

    def _start_date(self, order: Order, *, fallback_start: date, not_before: date | None) -> date:
        start = order.order_date or fallback_start
        if not_before is not None and start < not_before:
            start = not_before
        return first_work_day_on_or_after(start, self.settings.work_weekdays)

    def _place(
        self,
        order: Order,
        ledger: AllocationLedger,
        *,
        fallback_start: date,
        not_before: date | None,
    ) -> tuple[Assignment | None, dict]:
        settings = self.settings
        compatible = [m for m in self.molds if m.accepts(order.stock_model_id)]
        lop_restricted = needs_lop_adjustment(order.features)
        fiberglass = is_fiberglass(order.stock_model_id)
        first_candidate = self._start_date(order, fallback_start=fallback_start, not_before=not_before)

        report = {
            "order_id": order.order_id,
            "error": None,
            "attempts": 0,
            "first_candidate": first_candidate.isoformat(),
            "lop_restricted": lop_restricted,
            "length_of_pull": get_lop_value(order.features),
            "stock_model_id": order.stock_model_id,
        }

        if not compatible:
            report["error"] = f"No compatible mold for stock model {order.stock_model_id!r}"
            return None, report

        rejections: Counter = Counter()
        candidate = first_candidate
        for attempt in range(1, settings.max_attempts + 1):
            report["attempts"] = attempt
            ledger.touch_week(candidate)

            reason = self._reject_reason(
                order,
                candidate,
                ledger,
                compatible=compatible,
                fiberglass=fiberglass,
            )
            if reason is None:
                mold = self._find_mold_slot(candidate, ledger, compatible)
                employee_id = self._pick_employee(candidate, ledger)
                ledger.commit(day=candidate, mold_id=mold.mold_id, employee_id=employee_id, fiberglass=fiberglass)
                logger.debug(
                    "Assigned %s to mold %s on %s (%d/%d used)",
                    order.order_id,
                    mold.mold_id,
                    candidate.isoformat(),
                    ledger.mold_used(candidate, mold.mold_id),
                    mold.multiplier,
                )
                return (
                    Assignment(
                        order_id=order.order_id,
                        scheduled_date=candidate,
                        mold_id=mold.mold_id,
                        employee_assignments=(EmployeeLoad(employee_id=employee_id, workload=1),),
                    ),
                    report,
                )

            rejections[reason] += 1
            candidate = next_work_day(candidate, settings.work_weekdays)

        report["error"] = f"No feasible date within {settings.max_attempts} work days"
        report["rejections"] = dict(rejections)
        return None, report

    def _reject_reason(
        self,
        order: Order,
        day: date,
        ledger: AllocationLedger,
        *,
        compatible: Sequence[MoldResource],
        fiberglass: bool,
    ) -> str | None:
        settings = self.settings
        if not lop_day_allowed(order, day, settings):
            return "lop_weekday"
        if self._find_mold_slot(day, ledger, compatible) is None:
            return "mold_capacity"
        if ledger.employee_total(day) + 1 > self.total_employee_capacity:
            return "employee_capacity"
        if fiberglass and settings.fg_daily_limit is not None and ledger.fg_counts[day] >= settings.fg_daily_limit:
            return "fiberglass_limit"
        if ledger.week_over_average(day, settings.weekly_slack):
            return "weekly_fairness"
        return None

    @staticmethod
    def _find_mold_slot(
        day: date,
        ledger: AllocationLedger,
        molds: Sequence[MoldResource],
    ) -> MoldResource | None:
        for m in molds:
            if ledger.mold_used(day, m.mold_id) < m.multiplier:
                return m
        return None

    def _pick_employee(self, day: date, ledger: AllocationLedger) -> str:
        used = ledger.employee_usage.get(day, Counter())
        # Most remaining capacity first, ties by employee id
        return min(
            self.employees,
            key=lambda e: (-(self.employee_capacity[e.employee_id] - used[e.employee_id]), e.employee_id),
        ).employee_id


class Scheduler:
    """Entry point: rank orders, then allocate them. No state survives a run."""

    def __init__(
        self,
        settings: SchedulerSettings | None = None,
        rules: PriorityRules | None = None,
    ):
        self.settings = settings or SchedulerSettings()
        self.rules = rules or PriorityRules()

    def rank(self, orders: Iterable[Order], *, as_of: date | None = None) -> list[PriorityOrder]:
        return PriorityRanker(self.rules, as_of=as_of).rank(orders)

    def run(
        self,
        orders: Iterable[Order],
        molds: Sequence[MoldResource],
        employees: Sequence[EmployeeResource],
        *,
        as_of: date | None = None,
        not_before: date | None = None,
    ) -> ScheduleResult:
        ranked = self.rank(orders, as_of=as_of)
        allocator = ScheduleAllocator(molds, employees, self.settings)
        return allocator.allocate(ranked, reference_date=as_of, not_before=not_before)


class OverrideRejected(ValueError):
    def __init__(self, order_id: str, violations: list[str]):
        self.order_id = order_id
        self.violations = list(violations)
        super().__init__(f"Cannot move order {order_id}: " + "; ".join(self.violations))


def validate_override(
    order: Order,
    target_date: date,
    mold_id: str,
    *,
    assignments: Sequence[Assignment],
    molds: Sequence[MoldResource],
    employees: Sequence[EmployeeResource],
    orders: Sequence[Order] = (),
    settings: SchedulerSettings | None = None,
) -> list[str]:
    """Check a manual move of ``order`` to (``target_date``, ``mold_id``).

    The order's current slot (if any) is released first. Returns a list of
    violations; empty means the move is allowed.
    """
    settings = settings or SchedulerSettings()
    violations: list[str] = []

    if not is_work_day(target_date, settings.work_weekdays):
        violations.append(f"{target_date.isoformat()} is a {_WEEKDAY_NAMES[target_date.weekday()]}, outside the work week")

    if not lop_day_allowed(order, target_date, settings):
        violations.append(
            f"Length of pull {get_lop_value(order.features)!r} requires {_WEEKDAY_NAMES[settings.lop_weekday]}"
        )

    mold = next((m for m in molds if m.mold_id == mold_id), None)
    others = [a for a in assignments if a.order_id != order.order_id]
    fg_orders = {o.order_id for o in orders if is_fiberglass(o.stock_model_id)}
    ledger = AllocationLedger.from_assignments(others, fiberglass_orders=fg_orders)

    if mold is None:
        violations.append(f"Unknown mold {mold_id!r}")
    elif not mold.enabled:
        violations.append(f"Mold {mold_id} is disabled")
    else:
        if not mold.accepts(order.stock_model_id):
            violations.append(f"Mold {mold_id} does not accept stock model {order.stock_model_id!r}")
        if ledger.mold_used(target_date, mold_id) >= mold.multiplier:
            violations.append(f"Mold {mold_id} is full on {target_date.isoformat()} ({mold.multiplier}/day)")

    capacity = sum(e.daily_capacity(settings.default_employee_hours) for e in employees)
    if ledger.employee_total(target_date) + 1 > capacity:
        violations.append(f"Employee capacity exhausted on {target_date.isoformat()}")

    if (
        is_fiberglass(order.stock_model_id)
        and settings.fg_daily_limit is not None
        and ledger.fg_counts[target_date] >= settings.fg_daily_limit
    ):
        violations.append(f"Fiberglass limit ({settings.fg_daily_limit}/day) reached on {target_date.isoformat()}")

    return violations


def apply_override(
    order: Order,
    target_date: date,
    mold_id: str,
    *,
    assignments: Sequence[Assignment],
    molds: Sequence[MoldResource],
    employees: Sequence[EmployeeResource],
    orders: Sequence[Order] = (),
    settings: SchedulerSettings | None = None,
) -> list[Assignment]:
    """Return a new assignment list with ``order`` moved, or raise OverrideRejected."""
    settings = settings or SchedulerSettings()
    violations = validate_override(
        order,
        target_date,
        mold_id,
        assignments=assignments,
        molds=molds,
        employees=employees,
        orders=orders,
        settings=settings,
    )
    if violations:
        raise OverrideRejected(order.order_id, violations)

    others = [a for a in assignments if a.order_id != order.order_id]
    allocator = ScheduleAllocator(molds, employees, settings)
    employee_id = allocator._pick_employee(target_date, AllocationLedger.from_assignments(others))

    moved = Assignment(
        order_id=order.order_id,
        scheduled_date=target_date,
        mold_id=mold_id,
        employee_assignments=(EmployeeLoad(employee_id=employee_id, workload=1),),
    )
    logger.info("Manual override: %s -> %s on %s", order.order_id, mold_id, target_date.isoformat())
    return others + [moved]
