from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace

from layupplan.core.priority import PriorityRules
from layupplan.data.db import Db
from layupplan.settings import SchedulerSettings

logger = logging.getLogger(__name__)


@dataclass
class AuditEntry:
    id: int
    timestamp: str
    category: str
    message: str
    details: str | None = None


def _parse_weekdays(raw: str) -> tuple[int, ...]:
    s = str(raw).strip()
    if s.startswith("["):
        values = json.loads(s)
    else:
        values = [p for p in s.replace(";", ",").split(",") if p.strip()]
    return tuple(sorted({int(v) for v in values}))


def _parse_optional_int(raw: str) -> int | None:
    s = str(raw).strip().lower()
    if s in {"", "none", "null", "off"}:
        return None
    return int(float(s))


class ConfigRepository:
    """Key/value configuration stored in the ``app_config`` table."""

    def __init__(self, db: Db):
        self.db = db

    def log_audit(self, category: str, message: str, details: str | None = None) -> None:
        """Record a configuration event in the audit log."""
        try:
            with self.db.connect() as con:
                con.execute(
                    "INSERT INTO audit_log (category, message, details) VALUES (?, ?, ?)",
                    (category, message, details),
                )
        except Exception:
            # Audit failures must not block a config change
            logger.exception("Failed to write audit log")

    def get_recent_audit_entries(self, limit: int = 100) -> list[AuditEntry]:
        with self.db.connect() as con:
            rows = con.execute("SELECT * FROM audit_log ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [
            AuditEntry(
                id=row["id"],
                timestamp=row["timestamp"],
                category=row["category"],
                message=row["message"],
                details=row["details"],
            )
            for row in rows
        ]

    def get_config(self, *, key: str, default: str | None = None) -> str | None:
        key = str(key).strip()
        if not key:
            raise ValueError("empty config key")
        with self.db.connect() as con:
            row = con.execute("SELECT config_value FROM app_config WHERE config_key = ?", (key,)).fetchone()
        if row is None:
            return default
        return str(row[0])

    def set_config(self, *, key: str, value: str) -> None:
        key = str(key).strip()
        if not key:
            raise ValueError("empty config key")

        old_value = self.get_config(key=key, default="(none)")
        with self.db.connect() as con:
            con.execute(
                """
                INSERT INTO app_config(config_key, config_value, updated_at)
                VALUES(?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(config_key) DO UPDATE SET
                    config_value = excluded.config_value,
                    updated_at = excluded.updated_at
                """,
                (key, str(value)),
            )
        self.log_audit("CONFIG", f"Updated '{key}'", f"From '{old_value}' to '{value}'")

    def get_scheduler_settings(self) -> SchedulerSettings:
        """Build SchedulerSettings from stored config; missing keys keep defaults.

        Raises ValueError when a stored value cannot be parsed or is out of range.
        """
        defaults = SchedulerSettings()
        kwargs: dict = {}

        raw = self.get_config(key="scheduler_work_weekdays")
        if raw is not None:
            kwargs["work_weekdays"] = _parse_weekdays(raw)

        raw = self.get_config(key="scheduler_max_attempts")
        if raw is not None:
            kwargs["max_attempts"] = int(float(raw))

        raw = self.get_config(key="scheduler_weekly_slack")
        if raw is not None:
            kwargs["weekly_slack"] = float(raw)

        raw = self.get_config(key="scheduler_lop_weekday")
        if raw is not None:
            kwargs["lop_weekday"] = int(raw)

        raw = self.get_config(key="scheduler_fg_daily_limit")
        if raw is not None:
            kwargs["fg_daily_limit"] = _parse_optional_int(raw)

        raw = self.get_config(key="scheduler_default_employee_hours")
        if raw is not None:
            kwargs["default_employee_hours"] = float(raw)

        if not kwargs:
            return defaults
        return replace(defaults, **kwargs)

    def get_priority_rules(self) -> PriorityRules:
        raw = self.get_config(key="priority_rules")
        if not raw:
            return PriorityRules()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError(f"invalid priority_rules JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError("priority_rules must be a JSON object")
        return PriorityRules.from_mapping(data)
