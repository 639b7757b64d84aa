from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Iterable, Mapping

from layupplan.core.models import Order, OrderType, PriorityOrder, UrgencyLevel

_MESA_UNIVERSAL_RE = re.compile(r"mesa[\s_\-]*universal", re.IGNORECASE)
PRODUCTION_DEPARTMENT = "production"
PO_ID_PREFIX = "PO-"

_TYPE_LABELS = {
    OrderType.MESA_UNIVERSAL: "Mesa Universal (highest priority)",
    OrderType.PRODUCTION_ORDER: "Production order",
    OrderType.PO_ORDER: "Purchase order",
    OrderType.REGULAR_ORDER: "Regular order",
}


def _default_base_scores() -> dict[OrderType, float]:
    return {
        OrderType.MESA_UNIVERSAL: 10.0,
        OrderType.PRODUCTION_ORDER: 20.0,
        OrderType.PO_ORDER: 30.0,
        OrderType.REGULAR_ORDER: 50.0,
    }


def _default_urgency_bonus() -> dict[UrgencyLevel, float]:
    return {
        UrgencyLevel.CRITICAL: -10.0,
        UrgencyLevel.HIGH: -5.0,
        UrgencyLevel.MEDIUM: 0.0,
        UrgencyLevel.LOW: 5.0,
    }


@dataclass(frozen=True)
class PriorityRules:
    base_scores: Mapping[OrderType, float] = field(default_factory=_default_base_scores)
    urgency_bonus: Mapping[UrgencyLevel, float] = field(default_factory=_default_urgency_bonus)
    due_date_weight: float = 0.1

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "PriorityRules":
        """Build rules from a partial JSON-style mapping.

        Example: {"base_scores": {"po_order": 25}, "urgency_bonus": {"low": 10}, "due_date_weight": 0.2}
        Unknown keys are ignored; missing ones keep their defaults.
        """
        rules = cls()
        if not raw:
            return rules

        base = dict(rules.base_scores)
        for key, value in dict(raw.get("base_scores") or {}).items():
            try:
                base[OrderType(str(key))] = float(value)
            except ValueError:
                continue

        bonus = dict(rules.urgency_bonus)
        for key, value in dict(raw.get("urgency_bonus") or {}).items():
            try:
                bonus[UrgencyLevel(str(key))] = float(value)
            except ValueError:
                continue

        weight = raw.get("due_date_weight")
        return cls(
            base_scores=base,
            urgency_bonus=bonus,
            due_date_weight=float(weight) if weight is not None else rules.due_date_weight,
        )


class PriorityRanker:
    """Scores orders and sorts them from most to least urgent.

    The score is a cost: lower values schedule first.
    """

    def __init__(self, rules: PriorityRules | None = None, *, as_of: date | None = None):
        self._rules = rules or PriorityRules()
        self.as_of = as_of

    @property
    def rules(self) -> PriorityRules:
        return self._rules

    def update_rules(self, **changes: Any) -> None:
        self._rules = replace(self._rules, **changes)

    def _today(self) -> date:
        return self.as_of or date.today()

    def days_until_due(self, order: Order) -> int | None:
        if order.due_date is None:
            return None
        return (order.due_date - self._today()).days

    def classify_type(self, order: Order) -> OrderType:
        if order.stock_model_id and _MESA_UNIVERSAL_RE.search(str(order.stock_model_id)):
            return OrderType.MESA_UNIVERSAL

        department = str(order.current_department or "").strip().lower()
        if department == PRODUCTION_DEPARTMENT:
            return OrderType.PRODUCTION_ORDER

        if (
            order.po_id
            or str(order.source or "").strip().lower() == "po"
            or str(order.order_id or "").upper().startswith(PO_ID_PREFIX)
        ):
            return OrderType.PO_ORDER

        return OrderType.REGULAR_ORDER

    def classify_urgency(self, order: Order) -> UrgencyLevel:
        days = self.days_until_due(order)
        if days is None:
            return UrgencyLevel.LOW
        if days <= 2:  # includes overdue
            return UrgencyLevel.CRITICAL
        if days <= 5:
            return UrgencyLevel.HIGH
        if days <= 10:
            return UrgencyLevel.MEDIUM
        return UrgencyLevel.LOW

    def score(self, order: Order) -> float:
        order_type = self.classify_type(order)
        urgency = self.classify_urgency(order)
        return self._score(order, order_type, urgency)

    def _score(self, order: Order, order_type: OrderType, urgency: UrgencyLevel) -> float:
        days = self.days_until_due(order)
        due_adjustment = days * self._rules.due_date_weight if days is not None else 0.0
        return float(self._rules.base_scores[order_type]) + float(self._rules.urgency_bonus[urgency]) + due_adjustment

    def assign_priority(self, order: Order) -> PriorityOrder:
        order_type = self.classify_type(order)
        urgency = self.classify_urgency(order)
        return PriorityOrder(
            order=order,
            priority_score=self._score(order, order_type, urgency),
            priority_reason=f"{_TYPE_LABELS[order_type]} - {urgency.value} urgency",
            order_type=order_type,
            urgency_level=urgency,
        )

    def rank(self, orders: Iterable[Order]) -> list[PriorityOrder]:
        ranked = [self.assign_priority(o) for o in orders]
        # Missing dates sort after present ones
        ranked.sort(
            key=lambda p: (
                p.priority_score,
                p.order.due_date is None,
                p.order.due_date or date.max,
                p.order.order_date is None,
                p.order.order_date or date.max,
                str(p.order.order_id or ""),
            )
        )
        return ranked


def filter_by_type(ranked: Iterable[PriorityOrder], order_type: OrderType) -> list[PriorityOrder]:
    return [p for p in ranked if p.order_type == order_type]


def group_by_urgency(ranked: Iterable[PriorityOrder]) -> dict[UrgencyLevel, list[PriorityOrder]]:
    groups: dict[UrgencyLevel, list[PriorityOrder]] = {}
    for p in ranked:
        groups.setdefault(p.urgency_level, []).append(p)
    return groups
