from __future__ import annotations

import argparse
import logging
from datetime import date
from pathlib import Path

from layupplan.core.scheduler import Scheduler
from layupplan.core.summary import summarize_schedule
from layupplan.data.config_repository import ConfigRepository
from layupplan.data.db import Db
from layupplan.data.excel_io import (
    export_schedule_excel,
    read_employees_excel,
    read_molds_excel,
    read_orders_excel,
)
from layupplan.logging_conf import configure_logging
from layupplan.settings import Settings, default_db_path

logger = logging.getLogger(__name__)


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid date (expected YYYY-MM-DD): {value!r}") from exc


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Layup mold scheduler")
    parser.add_argument("--orders", type=Path, required=True, help="Orders workbook (.xlsx)")
    parser.add_argument("--molds", type=Path, required=True, help="Molds workbook (.xlsx)")
    parser.add_argument("--employees", type=Path, required=True, help="Employees workbook (.xlsx)")
    parser.add_argument("--out", type=Path, default=Path("layup_schedule.xlsx"))
    parser.add_argument("--db", type=Path, default=None, help="Config database (default: db/layupplan.db)")
    parser.add_argument("--as-of", type=_iso_date, default=None, help="Reference date for urgency (default: today)")
    parser.add_argument("--not-before", type=_iso_date, default=None, help="Never schedule before this date")
    parser.add_argument("--log-level", type=str, default="INFO")
    parser.add_argument("--log-file", type=Path, default=None, help="Also append log records to this file")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    settings = Settings(db_path=args.db or default_db_path(), log_level=args.log_level)
    configure_logging(settings.log_level, log_file=args.log_file)

    db = Db(settings.db_path)
    db.ensure_schema()
    config = ConfigRepository(db)

    orders = read_orders_excel(args.orders.read_bytes())
    molds = read_molds_excel(args.molds.read_bytes())
    employees = read_employees_excel(args.employees.read_bytes())
    logger.info("Loaded %d orders, %d molds, %d employees", len(orders), len(molds), len(employees))

    scheduler = Scheduler(config.get_scheduler_settings(), config.get_priority_rules())
    result = scheduler.run(orders, molds, employees, as_of=args.as_of, not_before=args.not_before)

    args.out.write_bytes(export_schedule_excel(result, orders=orders, molds=molds))

    summary = summarize_schedule(result, molds)
    logger.info("Wrote %s (%d assignments, status %s)", args.out, summary["scheduled"], summary["status"])
    if summary["warning"]:
        logger.warning(summary["warning"])
    return 0


if __name__ in {"__main__", "__mp_main__"}:
    raise SystemExit(main())
