from __future__ import annotations

import logging
from datetime import date
from typing import Iterable

from layupplan.core.calendar import DEFAULT_WORK_WEEKDAYS, iter_work_days, week_start
from layupplan.core.models import Order

logger = logging.getLogger(__name__)

MESA_UNIVERSAL_MODEL = "mesa_universal"


def generate_mesa_universal_orders(
    start: date,
    weeks: int = 4,
    per_day: int = 8,
    work_weekdays: Iterable[int] = DEFAULT_WORK_WEEKDAYS,
) -> list[Order]:
    """Standing Mesa Universal production: ``per_day`` orders on every work day.

    Generation starts at the Monday of ``start``'s week and covers ``weeks`` weeks.
    Each order is due on the day it is entered.
    """
    days = tuple(sorted(set(work_weekdays)))
    orders: list[Order] = []
    for work_date in iter_work_days(week_start(start), max(0, int(weeks)) * len(days), days):
        for i in range(1, int(per_day) + 1):
            orders.append(
                Order(
                    order_id=f"MESA-{work_date.isoformat()}-{i:02d}",
                    order_date=work_date,
                    due_date=work_date,
                    customer="Mesa Universal Production",
                    product="Mesa Universal",
                    stock_model_id=MESA_UNIVERSAL_MODEL,
                )
            )
    logger.info("Generated %d Mesa Universal orders for %d weeks", len(orders), weeks)
    return orders
