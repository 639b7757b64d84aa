from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_QUIET_LOGGERS = ("openpyxl", "et_xmlfile", "pandas")


def _resolve_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    numeric_level = getattr(logging, str(level).strip().upper(), None)
    if not isinstance(numeric_level, int):
        print(f"Invalid log level: {level}, defaulting to INFO", file=sys.stderr)
        return logging.INFO
    return numeric_level


def configure_logging(level: str | int = "INFO", *, log_file: Path | None = None) -> None:
    """Configure the root logger for a scheduling run.

    Records go to stdout and, when ``log_file`` is given, are appended to that
    file as well (parent directories are created).
    """
    numeric_level = _resolve_level(level)

    # e.g. "2025-01-06 07:30:00 [WARNING] layupplan.core.scheduler: Could not schedule order A17 ..."
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Repeated CLI runs in one process must not stack handlers
    for old in list(root_logger.handlers):
        root_logger.removeHandler(old)
        if getattr(old, "_layupplan_owned", False):
            old.close()

    for handler in handlers:
        handler.setFormatter(formatter)
        handler._layupplan_owned = True
        root_logger.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
