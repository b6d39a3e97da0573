from __future__ import annotations

import csv
import datetime
import json
import logging
import uuid
import zipfile
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from areas import normalize_area
from config import DATA_DIR
from errors import ValidationError
from models import Employee, Setup
from timeutils import format_time_range, normalize_day_name

logger = logging.getLogger(__name__)

EXPORT_DIR = DATA_DIR / "exports"
ROSTER_NAMESPACE = uuid.UUID("8f1c7a52-3a7e-4c58-9f55-1f0b9b1e5d21")

# Header spellings seen in spreadsheet exports, matched case-insensitively.
_COLUMN_ALIASES: Dict[str, Tuple[str, ...]] = {
    "id": ("id", "employee id", "employeeid", "emp id"),
    "name": ("name", "employee", "employee name", "full name"),
    "day": ("day", "weekday", "date"),
    "start": ("start", "shift start", "shiftstart", "in", "start time"),
    "end": ("end", "shift end", "shiftend", "out", "end time"),
    "time_block": ("timeblock", "time block", "shift", "hours"),
    "area": ("area", "department", "section", "dept"),
}


def _timestamp() -> str:
    return datetime.datetime.now().strftime("%Y%m%d_%H%M%S")


def _column(row: Dict[str, Any], field: str) -> Optional[str]:
    lowered = {str(key).strip().lower(): value for key, value in row.items() if key is not None}
    for alias in _COLUMN_ALIASES[field]:
        value = lowered.get(alias)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def _clock_label(value: Optional[str]) -> Optional[str]:
    """Turn spreadsheet time cells (including day fractions like 0.375) into "HH:MM"."""
    if value is None:
        return None
    try:
        fraction = float(value)
    except ValueError:
        return value
    if 0 <= fraction < 1:
        minutes = round(fraction * 24 * 60)
        return f"{minutes // 60:02d}:{minutes % 60:02d}"
    return value


def roster_rows_to_employees(rows: Iterable[Dict[str, Any]]) -> Tuple[List[Employee], List[str]]:
    """Build roster entries from loose spreadsheet rows.

    Rows without a name are skipped; rows without an id get one derived from
    the name, so the same person keeps one id across days.
    """
    employees: List[Employee] = []
    skipped: List[str] = []
    for index, row in enumerate(rows, start=1):
        name = _column(row, "name")
        if not name:
            skipped.append(f"Row {index}: missing employee name")
            continue
        employee_id = _column(row, "id") or f"emp-{uuid.uuid5(ROSTER_NAMESPACE, name.lower()).hex[:12]}"
        time_block = _column(row, "time_block")
        start = _clock_label(_column(row, "start"))
        end = _clock_label(_column(row, "end"))
        if not time_block and start and end:
            time_block = format_time_range(start, end)
        raw_day = _column(row, "day")
        day = normalize_day_name(raw_day) if raw_day else None
        if raw_day and day is None:
            skipped.append(f"Row {index}: unrecognized day {raw_day!r} for {name}")
            continue
        employees.append(
            Employee(
                id=employee_id,
                name=name,
                area=normalize_area(_column(row, "area")),
                day=day,
                time_block=time_block,
            )
        )
    for message in skipped:
        logger.warning("Roster import skipped %s", message)
    return employees, skipped


def _cell_text(value: Any) -> Any:
    """Workbook cells arrive typed; turn clock and calendar values into labels."""
    if isinstance(value, datetime.datetime):
        if value.time() == datetime.time.min:
            return value.strftime("%A")
        return value.strftime("%H:%M")
    if isinstance(value, datetime.time):
        return value.strftime("%H:%M")
    if isinstance(value, datetime.date):
        return value.strftime("%A")
    return value


def _read_workbook(file_path: Path) -> List[Dict[str, Any]]:
    try:
        workbook = load_workbook(file_path, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError) as exc:
        raise ValidationError(f"Could not open workbook {file_path.name}: {exc}") from exc
    try:
        sheet = workbook.active
        rows = sheet.iter_rows(values_only=True)
        header: Optional[List[str]] = None
        records: List[Dict[str, Any]] = []
        for values in rows:
            if all(value is None or str(value).strip() == "" for value in values):
                continue
            if header is None:
                header = [str(value).strip() if value is not None else "" for value in values]
                continue
            records.append(
                {name: _cell_text(value) for name, value in zip(header, values) if name}
            )
        return records
    finally:
        workbook.close()


def _read_rows(file_path: Path) -> List[Dict[str, Any]]:
    suffix = file_path.suffix.lower()
    if suffix == ".xls":
        raise ValidationError("Legacy .xls workbooks are not supported; save the roster as .xlsx or CSV.")
    if suffix in (".xlsx", ".xlsm"):
        return _read_workbook(file_path)
    try:
        if suffix == ".csv":
            with file_path.open("r", encoding="utf-8-sig", newline="") as handle:
                return list(csv.DictReader(handle))
        data = json.loads(file_path.read_text(encoding="utf-8"))
    except (UnicodeDecodeError, csv.Error, json.JSONDecodeError) as exc:
        raise ValidationError(f"Could not read roster file {file_path.name}: {exc}") from exc
    if isinstance(data, dict):
        data = data.get("employees") or data.get("uploadedSchedules") or []
    if not isinstance(data, list):
        raise ValidationError("Roster file must contain a list of employees.")
    return [row for row in data if isinstance(row, dict)]


def import_roster(setup: Setup, file_path: Path, *, replace: bool = True) -> Tuple[int, List[str]]:
    """Load a roster export into ``setup.uploaded_schedules``; returns (imported, skipped)."""
    employees, skipped = roster_rows_to_employees(_read_rows(Path(file_path)))
    if replace:
        setup.uploaded_schedules = employees
    else:
        seen = {(employee.id, employee.normalized_day) for employee in setup.uploaded_schedules}
        for employee in employees:
            key = (employee.id, employee.normalized_day)
            if key not in seen:
                setup.uploaded_schedules.append(employee)
                seen.add(key)
    return len(employees), skipped


def export_roster(setup: Setup, directory: Path = EXPORT_DIR) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    filename = directory / f"roster_{setup.id or 'draft'}_{_timestamp()}.csv"
    roster = setup.uploaded_schedules or setup.employees
    with filename.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.DictWriter(handle, fieldnames=["id", "name", "day", "timeBlock", "area"])
        writer.writeheader()
        for employee in roster:
            writer.writerow(
                {
                    "id": employee.id,
                    "name": employee.name,
                    "day": employee.day or "",
                    "timeBlock": employee.time_block or "",
                    "area": employee.area or "",
                }
            )
    return filename


def export_setup(setup: Setup, directory: Path = EXPORT_DIR) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    filename = directory / f"setup_{setup.id or 'draft'}_{_timestamp()}.json"
    filename.write_text(json.dumps(setup.to_dict(), indent=2), encoding="utf-8")
    return filename


def import_setup(file_path: Path) -> Setup:
    data = json.loads(Path(file_path).read_text(encoding="utf-8"))
    return Setup.from_dict(data)
