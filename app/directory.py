"""Employee directory views derived from a setup.

Three loosely typed sources feed the directory: the uploaded roster, the
legacy ``employees`` list and the assignments embedded in positions. The
helpers here merge them per day without ever mutating the setup.
"""

from __future__ import annotations

import datetime
import logging
from typing import Dict, Iterable, List, Optional

from areas import filter_by_area
from models import UNKNOWN_EMPLOYEE, DaySchedule, Employee, Setup
from timeutils import minutes_of_day, normalize_day_name, parse_time_range, today_day_name

logger = logging.getLogger(__name__)

SCHEDULED_MARKER = "Scheduled"

__all__ = [
    "SCHEDULED_MARKER",
    "assigned_employees",
    "day_employees",
    "employee_area",
    "extract_employees_from_positions",
    "filter_by_area",
    "is_employee_on_current_shift",
    "scheduled_employees",
    "unassigned_employees",
]


def _sort_by_name(employees: Iterable[Employee]) -> List[Employee]:
    return sorted(employees, key=lambda employee: (employee.name.lower(), employee.id))


def _on_day(employee: Employee, active_day: Optional[str]) -> bool:
    if active_day is None:
        return True
    return employee.works_on(active_day)


def extract_employees_from_positions(
    week_schedule: Dict[str, DaySchedule],
    day: Optional[str] = None,
) -> List[Employee]:
    """One record per bound employee id, using the first block it appears in."""
    found: Dict[str, Employee] = {}
    canonical = normalize_day_name(day) if day else None
    for name, schedule in week_schedule.items():
        if canonical and name != canonical:
            continue
        for block in schedule.time_blocks:
            for position in block.positions:
                if not position.employee_id or not position.employee_name:
                    continue
                if position.employee_id in found:
                    continue
                found[position.employee_id] = Employee(
                    id=position.employee_id,
                    name=position.employee_name,
                    area=position.section,
                    day=name,
                    time_block=block.label,
                )
    return list(found.values())


def scheduled_employees(setup: Setup, active_day: Optional[str]) -> List[Employee]:
    """Everyone the directory knows about for the day, first source wins per id.

    Roster rows are narrowed to the day before ids are de-duplicated, so one
    person listed once per day shows up on each of those days.
    """
    canonical = normalize_day_name(active_day) if active_day else None
    base = setup.uploaded_schedules if setup.uploaded_schedules else setup.employees
    merged: Dict[str, Employee] = {}
    for employee in base:
        if _on_day(employee, canonical) and employee.id not in merged:
            merged[employee.id] = employee
    for employee in extract_employees_from_positions(setup.week_schedule, canonical):
        if employee.id not in merged:
            merged[employee.id] = employee
    return list(merged.values())


def _bound_ids(week_schedule: Dict[str, DaySchedule], active_day: Optional[str]) -> set:
    canonical = normalize_day_name(active_day) if active_day else None
    schedule = week_schedule.get(canonical) if canonical else None
    if schedule is None:
        return set()
    return {
        position.employee_id
        for block in schedule.time_blocks
        for position in block.positions
        if position.employee_id
    }


def unassigned_employees(
    scheduled: Iterable[Employee],
    active_day: Optional[str],
    week_schedule: Dict[str, DaySchedule],
) -> List[Employee]:
    canonical = normalize_day_name(active_day) if active_day else None
    bound = _bound_ids(week_schedule, canonical)
    return _sort_by_name(
        employee for employee in scheduled if _on_day(employee, canonical) and employee.id not in bound
    )


def employee_area(employee_id: str, directory: Iterable[Employee]) -> Optional[str]:
    for employee in directory:
        if employee.id == employee_id and employee.area:
            return employee.area
    return None


def assigned_employees(
    setup: Setup,
    active_day: Optional[str],
    scheduled: Optional[Iterable[Employee]] = None,
) -> List[Employee]:
    """Aggregate every bound employee of the day with positions and time blocks."""
    directory = list(scheduled) if scheduled is not None else scheduled_employees(setup, active_day)
    canonical = normalize_day_name(active_day) if active_day else None
    records: Dict[str, Employee] = {}
    for day, block, position in setup.iter_positions(canonical):
        if not position.employee_id:
            continue
        name = position.display_name or position.name
        record = records.get(position.employee_id)
        if record is None:
            record = Employee(
                id=position.employee_id,
                name=name,
                area=employee_area(position.employee_id, directory),
                day=day,
            )
            records[position.employee_id] = record
        elif record.name == UNKNOWN_EMPLOYEE and name != UNKNOWN_EMPLOYEE:
            record.name = name
        record.positions.append(position.name)
        if block.label not in record.time_blocks:
            record.time_blocks.append(block.label)
    return list(records.values())


def day_employees(
    setup: Setup,
    active_day: Optional[str],
    scheduled: Optional[Iterable[Employee]] = None,
) -> List[Employee]:
    """Assigned records followed by scheduled employees tagged as not yet placed."""
    directory = list(scheduled) if scheduled is not None else scheduled_employees(setup, active_day)
    canonical = normalize_day_name(active_day) if active_day else None
    records: Dict[str, Employee] = {
        record.id: record for record in assigned_employees(setup, canonical, directory)
    }
    for employee in directory:
        if not _on_day(employee, canonical) or employee.id in records:
            continue
        records[employee.id] = Employee(
            id=employee.id,
            name=employee.name,
            area=employee.area,
            day=employee.day,
            time_blocks=[employee.time_block] if employee.time_block else [],
            positions=[SCHEDULED_MARKER],
        )
    return list(records.values())


def is_employee_on_current_shift(employee: Employee, now: Optional[datetime.datetime] = None) -> bool:
    """True when the employee works today and a shift range contains the current minute."""
    current = now or datetime.datetime.now()
    if employee.day and employee.normalized_day != today_day_name(current):
        return False
    minute = minutes_of_day(current)
    for label in employee.time_ranges():
        parsed = parse_time_range(label)
        if parsed is None:
            logger.debug("Skipping unparseable shift %r for %s", label, employee.id)
            continue
        start, end = parsed
        if start <= minute <= end:
            return True
    return False
