from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from directory import employee_area
from models import UNKNOWN_EMPLOYEE, Employee, Position, Setup, TimeBlock
from timeutils import format_day_name, intervals_overlap, normalize_day_name


def validate_week(setup: Setup) -> Dict[str, Any]:
    """Return conflict findings for every day of the setup."""
    days: Dict[str, Dict[str, Any]] = {}
    issues: List[Dict[str, Any]] = []
    warnings: List[Dict[str, Any]] = []
    for day in setup.days():
        report = validate_day(setup, day)
        days[day] = report
        issues.extend(report["issues"])
        warnings.extend(report["warnings"])
    return {
        "setup_id": setup.id,
        "days": days,
        "checks": _build_checklist(setup.position_count(), issues, warnings),
        "issues": issues,
        "warnings": warnings,
    }


def validate_day(setup: Setup, day: str) -> Dict[str, Any]:
    canonical = normalize_day_name(day)
    schedule = setup.day(canonical) if canonical else None
    if schedule is None:
        return {
            "day": canonical or day,
            "checks": [
                {"label": "Day scheduled?", "status": "fail", "details": f"No time blocks for {day}."}
            ],
            "issues": [
                {
                    "type": "missing_day",
                    "severity": "error",
                    "day": canonical or day,
                    "message": f"No time blocks exist for {day}.",
                }
            ],
            "warnings": [],
        }

    roster = list(setup.uploaded_schedules) + list(setup.employees)
    bound: List[Tuple[TimeBlock, Position]] = [
        (block, position) for block in schedule.time_blocks for position in block.positions
    ]
    issues: List[Dict[str, Any]] = []
    warnings: List[Dict[str, Any]] = []
    issues.extend(_double_booking_issues(canonical, bound))
    issues.extend(_area_issues(canonical, bound, roster))
    warnings.extend(_outside_shift_warnings(canonical, bound, roster))
    warnings.extend(_unknown_employee_warnings(canonical, bound, roster))
    warnings.extend(_placeholder_warnings(canonical, bound))
    warnings.extend(_open_position_warnings(canonical, bound))
    return {
        "day": canonical,
        "checks": _build_checklist(len(bound), issues, warnings),
        "issues": issues,
        "warnings": warnings,
    }


def _label(day: str, block: TimeBlock) -> str:
    return f"{format_day_name(day)} {block.label}"


def _find(roster: List[Employee], employee_id: str) -> Optional[Employee]:
    for employee in roster:
        if employee.id == employee_id:
            return employee
    return None


def _double_booking_issues(day: str, bound: List[Tuple[TimeBlock, Position]]) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    assigned = [(block, position) for block, position in bound if position.employee_id]
    reported = set()
    for index, (block_a, position_a) in enumerate(assigned):
        for block_b, position_b in assigned[index + 1:]:
            if position_a.employee_id != position_b.employee_id:
                continue
            if not intervals_overlap(block_a.start_minutes, block_a.end_minutes, block_b.start_minutes, block_b.end_minutes):
                continue
            key = (position_a.employee_id, position_a.id, position_b.id)
            if key in reported:
                continue
            reported.add(key)
            name = position_a.display_name
            issues.append(
                {
                    "type": "double_booked",
                    "severity": "error",
                    "day": day,
                    "employee_id": position_a.employee_id,
                    "positions": [position_a.id, position_b.id],
                    "message": f"{name} holds {position_a.name} ({_label(day, block_a)}) and "
                    f"{position_b.name} ({_label(day, block_b)}) at the same time.",
                }
            )
    return issues


def _area_issues(day: str, bound: List[Tuple[TimeBlock, Position]], roster: List[Employee]) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    for block, position in bound:
        required = position.required_area
        if not position.employee_id or not required:
            continue
        area = employee_area(position.employee_id, roster)
        if area is None or area == required:
            continue
        issues.append(
            {
                "type": "area_mismatch",
                "severity": "error",
                "day": day,
                "position_id": position.id,
                "employee_id": position.employee_id,
                "message": f"{position.display_name} ({area}) is on {position.name}, a {required} position, "
                f"at {_label(day, block)}.",
            }
        )
    return issues


def _outside_shift_warnings(day: str, bound: List[Tuple[TimeBlock, Position]], roster: List[Employee]) -> List[Dict[str, Any]]:
    warnings: List[Dict[str, Any]] = []
    for block, position in bound:
        if not position.employee_id:
            continue
        employee = _find([entry for entry in roster if entry.works_on(day)], position.employee_id)
        window = employee.window() if employee else None
        if window is None:
            continue
        emp_start, emp_end = window
        if emp_start <= block.end_minutes and emp_end > block.start_minutes:
            continue
        warnings.append(
            {
                "type": "outside_shift",
                "severity": "warning",
                "day": day,
                "position_id": position.id,
                "employee_id": position.employee_id,
                "message": f"{employee.name} works {employee.time_block} but holds {position.name} at {block.label}.",
            }
        )
    return warnings


def _unknown_employee_warnings(day: str, bound: List[Tuple[TimeBlock, Position]], roster: List[Employee]) -> List[Dict[str, Any]]:
    if not roster:
        return []
    warnings: List[Dict[str, Any]] = []
    known = {employee.id for employee in roster}
    for block, position in bound:
        if position.employee_id and position.employee_id not in known:
            warnings.append(
                {
                    "type": "unknown_employee",
                    "severity": "warning",
                    "day": day,
                    "position_id": position.id,
                    "employee_id": position.employee_id,
                    "message": f"{position.display_name} on {position.name} ({_label(day, block)}) is not on the roster.",
                }
            )
    return warnings


def _placeholder_warnings(day: str, bound: List[Tuple[TimeBlock, Position]]) -> List[Dict[str, Any]]:
    warnings: List[Dict[str, Any]] = []
    for block, position in bound:
        if not position.employee_id:
            continue
        if position.employee_name and position.employee_name != UNKNOWN_EMPLOYEE:
            continue
        warnings.append(
            {
                "type": "placeholder_name",
                "severity": "warning",
                "day": day,
                "position_id": position.id,
                "employee_id": position.employee_id,
                "message": f"{position.name} at {_label(day, block)} has no employee name on record.",
            }
        )
    return warnings


def _open_position_warnings(day: str, bound: List[Tuple[TimeBlock, Position]]) -> List[Dict[str, Any]]:
    return [
        {
            "type": "assignment",
            "severity": "warning",
            "day": day,
            "position_id": position.id,
            "message": f"Open position: {position.name} at {_label(day, block)}.",
        }
        for block, position in bound
        if not position.is_assigned
    ]


def _build_checklist(
    total_positions: int,
    issues: List[Dict[str, Any]],
    warnings: List[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    checks: List[Dict[str, Any]] = []

    def summarize(items: List[Dict[str, Any]], *, limit: int = 5) -> str:
        parts = [str(entry.get("message") or "").strip() for entry in items[:limit]]
        parts = [part for part in parts if part]
        if len(items) > limit:
            parts.append(f"+{len(items) - limit} more")
        return "; ".join(parts)

    def add_check(label: str, items: List[Dict[str, Any]], *, details: str = "") -> None:
        ok = not items
        checks.append(
            {
                "label": label,
                "status": "ok" if ok else "fail",
                "details": "" if ok else (details or summarize(items)),
            }
        )

    def of_type(source: List[Dict[str, Any]], type_name: str) -> List[Dict[str, Any]]:
        return [entry for entry in source if entry.get("type") == type_name]

    checks.append(
        {
            "label": "Positions defined?",
            "status": "ok" if total_positions else "fail",
            "details": "" if total_positions else "No positions found.",
        }
    )
    add_check("No double bookings?", of_type(issues, "double_booked"))
    add_check("Areas respected?", of_type(issues, "area_mismatch"))
    add_check("Assignments inside shifts?", of_type(warnings, "outside_shift"))
    add_check("Everyone on the roster?", of_type(warnings, "unknown_employee"))
    add_check("Names recorded?", of_type(warnings, "placeholder_name"))
    add_check("All positions filled?", of_type(warnings, "assignment"))
    return checks
