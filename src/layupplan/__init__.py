"""Layup mold scheduling engine.

Ranks pending orders by priority and allocates them to molds and work days.
"""

from layupplan.core.models import (
    Assignment,
    EmployeeLoad,
    EmployeeResource,
    MoldResource,
    Order,
    OrderType,
    PriorityOrder,
    ScheduleResult,
    UrgencyLevel,
)
from layupplan.core.priority import PriorityRanker, PriorityRules
from layupplan.core.scheduler import (
    OverrideRejected,
    ScheduleAllocator,
    Scheduler,
    apply_override,
    validate_override,
)
from layupplan.settings import SchedulerSettings

__all__ = [
    "Assignment",
    "EmployeeLoad",
    "EmployeeResource",
    "MoldResource",
    "Order",
    "OrderType",
    "PriorityOrder",
    "ScheduleResult",
    "UrgencyLevel",
    "PriorityRanker",
    "PriorityRules",
    "OverrideRejected",
    "ScheduleAllocator",
    "Scheduler",
    "SchedulerSettings",
    "apply_override",
    "validate_override",
]
