from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Mapping


class OrderType(str, Enum):
    MESA_UNIVERSAL = "mesa_universal"
    PRODUCTION_ORDER = "production_order"
    PO_ORDER = "po_order"
    REGULAR_ORDER = "regular_order"


class UrgencyLevel(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class Order:
    order_id: str
    order_date: date | None = None
    due_date: date | None = None
    customer: str | None = None
    product: str | None = None
    stock_model_id: str | None = None
    features: Mapping[str, Any] = field(default_factory=dict)
    source: str = "direct"  # "direct" | "po"
    po_id: str | None = None
    current_department: str | None = None


@dataclass(frozen=True)
class MoldResource:
    mold_id: str
    model_name: str
    multiplier: int
    instance_number: int = 1
    enabled: bool = True
    # Empty = mold accepts any stock model
    stock_models: tuple[str, ...] = ()

    def accepts(self, stock_model_id: str | None) -> bool:
        if not self.stock_models:
            return True
        return stock_model_id is not None and stock_model_id in self.stock_models


@dataclass(frozen=True)
class EmployeeResource:
    employee_id: str
    rate: float  # units per working hour
    hours: float | None = None  # hours per working day
    name: str | None = None

    def daily_capacity(self, default_hours: float = 10.0) -> float:
        hours = self.hours if self.hours else default_hours
        return float(self.rate or 0.0) * float(hours)


@dataclass(frozen=True)
class EmployeeLoad:
    employee_id: str
    workload: int = 1


@dataclass(frozen=True)
class Assignment:
    order_id: str
    scheduled_date: date
    mold_id: str
    employee_assignments: tuple[EmployeeLoad, ...] = ()

    def to_row(self) -> dict:
        return {
            "order_id": self.order_id,
            "scheduled_date": self.scheduled_date.isoformat(),
            "mold_id": self.mold_id,
            "employees": ",".join(e.employee_id for e in self.employee_assignments),
            "workload": sum(e.workload for e in self.employee_assignments),
        }


@dataclass(frozen=True)
class PriorityOrder:
    order: Order
    priority_score: float
    priority_reason: str
    order_type: OrderType
    urgency_level: UrgencyLevel

    @property
    def order_id(self) -> str:
        return self.order.order_id


@dataclass
class ScheduleResult:
    assignments: list[Assignment] = field(default_factory=list)
    unscheduled: list[dict] = field(default_factory=list)

    @property
    def status(self) -> str:
        return "COMPLETE" if not self.unscheduled else "INCOMPLETE"

    def assignment_for(self, order_id: str) -> Assignment | None:
        for a in self.assignments:
            if a.order_id == order_id:
                return a
        return None
