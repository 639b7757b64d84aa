from __future__ import annotations

import io
import json
import logging
import re
import unicodedata
from datetime import date, datetime
from typing import Iterable

import pandas as pd

from layupplan.core.models import EmployeeResource, MoldResource, Order, ScheduleResult
from layupplan.core.summary import summarize_schedule

logger = logging.getLogger(__name__)


def read_excel_bytes(content: bytes) -> pd.DataFrame:
    """Read .xlsx bytes into a DataFrame (first sheet) with normalized column names."""
    bio = io.BytesIO(content)
    df = pd.read_excel(bio)
    return normalize_columns(df)


def normalize_col_name(name: str) -> str:
    """Normalize Excel column names to an ASCII-ish snake_case token.

    "Order ID" -> "order_id", "Length of Pull" -> "length_of_pull", "dueDate" -> "duedate".
    """

    s = str(name or "").strip().lower()
    s = unicodedata.normalize("NFKD", s)
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    s = s.replace("\u00a0", " ")
    s = re.sub(r"[\s\t]+", " ", s)
    # keep alnum + spaces, turn the rest into spaces
    s = re.sub(r"[^a-z0-9 ]+", " ", s)
    s = re.sub(r"\s+", "_", s).strip("_")
    return s


def normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df.columns = [normalize_col_name(c) for c in df.columns]
    return df


def is_blank(value) -> bool:
    if value is None:
        return True
    try:
        if pd.isna(value):
            return True
    except (TypeError, ValueError):
        pass
    return isinstance(value, str) and not value.strip()


def to_int01(value) -> int:
    """Coerce common Excel numeric/bool-ish values to 0/1."""
    if is_blank(value):
        return 0
    s = str(value).strip().lower()
    if s in {"1", "true", "yes", "y", "x", "on"}:
        return 1
    if s in {"0", "false", "no", "n", "off"}:
        return 0
    try:
        return 1 if int(float(s)) != 0 else 0
    except ValueError:
        return 0


def coerce_date(value) -> date | None:
    """Coerce common Excel/Pandas date representations to a date. Blank -> None."""
    if is_blank(value):
        return None

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    # pandas Timestamp
    if hasattr(value, "to_pydatetime"):
        return value.to_pydatetime().date()

    s = str(value).strip()
    try:
        return datetime.fromisoformat(s).date()
    except ValueError:
        pass

    for fmt in ("%m/%d/%Y", "%m-%d-%Y", "%Y/%m/%d"):
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue

    raise ValueError(f"invalid date: {value!r}")


def coerce_float(value) -> float | None:
    """Coerce common Excel/Pandas numeric representations to float.

    Returns None when value is empty/NaN or not numeric.
    """
    if is_blank(value):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    s = str(value).strip().replace(",", "")
    try:
        return float(s)
    except ValueError:
        return None


def coerce_str(value) -> str | None:
    if is_blank(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _pick(row: dict, *names: str):
    for name in names:
        if name in row and not is_blank(row[name]):
            return row[name]
    return None


def _row_date(row: dict, idx: int, field: str, *names: str) -> date | None:
    raw = _pick(row, *names)
    try:
        return coerce_date(raw)
    except ValueError:
        logger.warning("Row %d: unreadable %s %r ignored", idx, field, raw)
        return None


def _parse_features(raw) -> dict:
    if is_blank(raw):
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    try:
        data = json.loads(str(raw))
    except json.JSONDecodeError:
        logger.warning("Ignoring unparseable features cell: %r", raw)
        return {}
    return data if isinstance(data, dict) else {}


def orders_from_dataframe(df: pd.DataFrame) -> list[Order]:
    df = normalize_columns(df)
    orders: list[Order] = []
    for idx, row in enumerate(df.to_dict(orient="records"), start=2):
        order_id = coerce_str(_pick(row, "order_id", "orderid", "order"))
        if not order_id:
            logger.warning("Row %d skipped: missing order id", idx)
            continue

        features = _parse_features(_pick(row, "features"))
        lop = _pick(row, "length_of_pull", "lengthofpull", "lop")
        if lop is not None:
            features.setdefault("length_of_pull", coerce_str(lop))

        source = str(coerce_str(_pick(row, "source")) or "direct").lower()
        orders.append(
            Order(
                order_id=order_id,
                order_date=_row_date(row, idx, "order date", "order_date", "orderdate", "entry_date"),
                due_date=_row_date(row, idx, "due date", "due_date", "duedate"),
                customer=coerce_str(_pick(row, "customer")),
                product=coerce_str(_pick(row, "product")),
                stock_model_id=coerce_str(_pick(row, "stock_model_id", "stockmodelid", "stock_model", "model_id")),
                features=features,
                source=source,
                po_id=coerce_str(_pick(row, "po_id", "poid")),
                current_department=coerce_str(_pick(row, "current_department", "currentdepartment", "department")),
            )
        )
    return orders


def molds_from_dataframe(df: pd.DataFrame) -> list[MoldResource]:
    df = normalize_columns(df)
    molds: list[MoldResource] = []
    for idx, row in enumerate(df.to_dict(orient="records"), start=2):
        mold_id = coerce_str(_pick(row, "mold_id", "moldid", "mold"))
        if not mold_id:
            logger.warning("Row %d skipped: missing mold id", idx)
            continue
        multiplier = coerce_float(_pick(row, "multiplier"))
        enabled_raw = _pick(row, "enabled")
        stock_models_raw = coerce_str(_pick(row, "stock_models", "stockmodels")) or ""
        molds.append(
            MoldResource(
                mold_id=mold_id,
                model_name=coerce_str(_pick(row, "model_name", "modelname")) or mold_id,
                multiplier=int(multiplier or 0),
                instance_number=int(coerce_float(_pick(row, "instance_number", "instancenumber")) or 1),
                enabled=True if enabled_raw is None else bool(to_int01(enabled_raw)),
                stock_models=tuple(s.strip() for s in stock_models_raw.split(",") if s.strip()),
            )
        )
    return molds


def employees_from_dataframe(df: pd.DataFrame) -> list[EmployeeResource]:
    df = normalize_columns(df)
    employees: list[EmployeeResource] = []
    for idx, row in enumerate(df.to_dict(orient="records"), start=2):
        employee_id = coerce_str(_pick(row, "employee_id", "employeeid", "employee"))
        if not employee_id:
            logger.warning("Row %d skipped: missing employee id", idx)
            continue
        employees.append(
            EmployeeResource(
                employee_id=employee_id,
                rate=coerce_float(_pick(row, "rate")) or 0.0,
                hours=coerce_float(_pick(row, "hours", "hours_per_day")),
                name=coerce_str(_pick(row, "name")),
            )
        )
    return employees


def read_orders_excel(content: bytes) -> list[Order]:
    return orders_from_dataframe(read_excel_bytes(content))


def read_molds_excel(content: bytes) -> list[MoldResource]:
    return molds_from_dataframe(read_excel_bytes(content))


def read_employees_excel(content: bytes) -> list[EmployeeResource]:
    return employees_from_dataframe(read_excel_bytes(content))


def export_schedule_excel(
    result: ScheduleResult,
    *,
    orders: Iterable[Order] = (),
    molds: Iterable[MoldResource] = (),
) -> bytes:
    """Write a schedule to an .xlsx workbook (Assignments, Unscheduled, Daily sheets)."""
    by_id = {o.order_id: o for o in orders}

    assignment_rows = []
    for a in result.assignments:
        row = a.to_row()
        o = by_id.get(a.order_id)
        row["customer"] = o.customer if o else None
        row["product"] = o.product if o else None
        row["due_date"] = o.due_date.isoformat() if o and o.due_date else None
        assignment_rows.append(row)

    unscheduled_rows = [
        {k: v for k, v in r.items() if k != "rejections"} for r in result.unscheduled
    ]

    summary = summarize_schedule(result, list(molds))
    daily_rows = [{"date": d, "orders": n} for d, n in summary["daily"].items()]

    bio = io.BytesIO()
    with pd.ExcelWriter(bio, engine="openpyxl") as writer:
        pd.DataFrame(
            assignment_rows,
            columns=["order_id", "scheduled_date", "mold_id", "employees", "workload", "customer", "product", "due_date"],
        ).to_excel(writer, sheet_name="Assignments", index=False)
        pd.DataFrame(
            unscheduled_rows,
            columns=["order_id", "error", "attempts", "first_candidate", "lop_restricted", "length_of_pull", "stock_model_id"],
        ).to_excel(writer, sheet_name="Unscheduled", index=False)
        pd.DataFrame(daily_rows, columns=["date", "orders"]).to_excel(writer, sheet_name="Daily", index=False)
    bio.seek(0)
    return bio.read()
