from __future__ import annotations

import copy
import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from areas import normalize_area, required_area, section_for_category
from errors import ValidationError
from timeutils import (
    format_time_range,
    normalize_day_name,
    parse_time_range,
    parse_time_to_minutes,
    sort_days,
)


UNKNOWN_EMPLOYEE = "Unknown Employee"
BREAK_STATUSES = {"active", "completed"}
DEFAULT_BREAK_MINUTES = 30


def parse_timestamp(value: Any) -> Optional[datetime.datetime]:
    """Parse stored ISO timestamps into naive local datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime.datetime):
        stamp = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            stamp = datetime.datetime.fromisoformat(text)
        except ValueError:
            return None
    if stamp.tzinfo is not None:
        stamp = stamp.astimezone().replace(tzinfo=None)
    return stamp


def format_timestamp(value: Optional[datetime.datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class Break:
    start_time: datetime.datetime
    duration: int = DEFAULT_BREAK_MINUTES
    status: str = "active"
    end_time: Optional[datetime.datetime] = None
    break_date: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @property
    def due_at(self) -> datetime.datetime:
        return self.start_time + datetime.timedelta(minutes=self.duration)

    def complete(self, when: datetime.datetime) -> None:
        self.status = "completed"
        self.end_time = when

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["Break"]:
        """Return None for entries that never started (status "none" or no start time)."""
        if not isinstance(data, dict):
            return None
        status = (data.get("status") or "").strip().lower()
        start = parse_timestamp(data.get("startTime"))
        if status not in BREAK_STATUSES or start is None:
            return None
        try:
            duration = int(data.get("duration") or DEFAULT_BREAK_MINUTES)
        except (TypeError, ValueError):
            duration = DEFAULT_BREAK_MINUTES
        return cls(
            start_time=start,
            duration=duration,
            status=status,
            end_time=parse_timestamp(data.get("endTime")),
            break_date=_clean(data.get("breakDate")) or start.date().isoformat(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startTime": format_timestamp(self.start_time),
            "endTime": format_timestamp(self.end_time),
            "duration": self.duration,
            "status": self.status,
            "breakDate": self.break_date or self.start_time.date().isoformat(),
        }


_EMPLOYEE_KEYS = {
    "id",
    "name",
    "area",
    "day",
    "timeBlock",
    "timeBlocks",
    "positions",
    "breaks",
    "hadBreak",
    "breakDate",
}


@dataclass
class Employee:
    id: str
    name: str
    area: Optional[str] = None
    day: Optional[str] = None
    time_block: Optional[str] = None
    time_blocks: List[str] = field(default_factory=list)
    positions: List[str] = field(default_factory=list)
    breaks: List[Break] = field(default_factory=list)
    had_break: bool = False
    break_date: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def normalized_day(self) -> Optional[str]:
        return normalize_day_name(self.day) if self.day else None

    def works_on(self, day: str) -> bool:
        """True when the record has no day or its day normalizes to the given one."""
        if not self.day:
            return True
        return self.normalized_day == normalize_day_name(day)

    def time_ranges(self) -> List[str]:
        ranges: List[str] = []
        for label in [self.time_block, *self.time_blocks]:
            if label and label not in ranges:
                ranges.append(label)
        return ranges

    def window(self) -> Optional[Tuple[int, int]]:
        """Shift window in minutes, from time_block first, else the first parseable range."""
        for label in self.time_ranges():
            parsed = parse_time_range(label)
            if parsed is not None:
                return parsed
        return None

    def copy(self) -> "Employee":
        return copy.deepcopy(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], *, legacy: bool = False) -> "Employee":
        if not isinstance(data, dict):
            raise ValidationError("Employee entry must be an object.")
        employee_id = _clean(data.get("id"))
        name = _clean(data.get("name"))
        if not employee_id or not name:
            raise ValidationError("Employee entries require both id and name.")
        time_block = _clean(data.get("timeBlock"))
        extra = {key: value for key, value in data.items() if key not in _EMPLOYEE_KEYS}
        if legacy and not time_block:
            start = _clean(data.get("shiftStart"))
            end = _clean(data.get("shiftEnd"))
            if start and end:
                time_block = format_time_range(start, end)
        breaks = [entry for entry in (Break.from_dict(raw) for raw in data.get("breaks") or []) if entry]
        return cls(
            id=employee_id,
            name=name,
            area=normalize_area(data.get("area")),
            day=_clean(data.get("day")),
            time_block=time_block,
            time_blocks=[str(label) for label in data.get("timeBlocks") or [] if label],
            positions=[str(label) for label in data.get("positions") or [] if label],
            breaks=breaks,
            had_break=bool(data.get("hadBreak", False)),
            break_date=_clean(data.get("breakDate")),
            extra=extra,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = dict(self.extra)
        payload.update(
            {
                "id": self.id,
                "name": self.name,
                "timeBlock": self.time_block,
                "area": self.area,
                "day": self.day,
                "breaks": [entry.to_dict() for entry in self.breaks],
                "hadBreak": self.had_break,
            }
        )
        if self.time_blocks:
            payload["timeBlocks"] = list(self.time_blocks)
        if self.positions:
            payload["positions"] = list(self.positions)
        if self.break_date:
            payload["breakDate"] = self.break_date
        return payload


_POSITION_KEYS = {"id", "name", "category", "section", "employeeId", "employeeName"}


class Position:
    """One staffing slot in a time block.

    employee_id and employee_name are read-only; bind()/unbind() write them together.
    """

    def __init__(
        self,
        id: str,
        name: str,
        category: Optional[str] = None,
        section: Optional[str] = None,
        employee_id: Optional[str] = None,
        employee_name: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        position_id = _clean(id)
        position_name = _clean(name)
        if not position_id or not position_name:
            raise ValidationError("Positions require both id and name.")
        self.id = position_id
        self.name = position_name
        self.category = _clean(category)
        self.section = normalize_area(section) or section_for_category(self.category)
        self.extra: Dict[str, Any] = dict(extra or {})
        self._employee_id: Optional[str] = None
        self._employee_name: Optional[str] = None
        if _clean(employee_id):
            self._employee_id = _clean(employee_id)
            self._employee_name = _clean(employee_name)

    @property
    def employee_id(self) -> Optional[str]:
        return self._employee_id

    @property
    def employee_name(self) -> Optional[str]:
        return self._employee_name

    @property
    def is_assigned(self) -> bool:
        return self._employee_id is not None

    @property
    def display_name(self) -> Optional[str]:
        """Cached employee name, or the position name when the cache is a placeholder."""
        if not self.is_assigned:
            return None
        if not self._employee_name or self._employee_name == UNKNOWN_EMPLOYEE:
            return self.name
        return self._employee_name

    @property
    def required_area(self) -> Optional[str]:
        return required_area(self.category, self.section)

    def _resolve_name(self, employee_name: Optional[str]) -> str:
        name = _clean(employee_name)
        if not name or name == UNKNOWN_EMPLOYEE:
            return self.name
        return name

    def bind(self, employee_id: str, employee_name: Optional[str] = None) -> None:
        employee_id = _clean(employee_id)
        if not employee_id:
            raise ValidationError("An employee id is required to fill a position.")
        self._employee_id = employee_id
        self._employee_name = self._resolve_name(employee_name)

    def unbind(self) -> None:
        self._employee_id = None
        self._employee_name = None

    def rename_employee(self, employee_name: str) -> None:
        if not self.is_assigned:
            return
        self._employee_name = self._resolve_name(employee_name)

    def restore_binding(self, employee_id: Optional[str], employee_name: Optional[str]) -> None:
        """Put back a previously captured (id, name) pair verbatim."""
        self._employee_id = employee_id
        self._employee_name = employee_name if employee_id else None

    def binding(self) -> Tuple[Optional[str], Optional[str]]:
        return self._employee_id, self._employee_name

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Position":
        if not isinstance(data, dict):
            raise ValidationError("Position entry must be an object.")
        return cls(
            id=data.get("id"),
            name=data.get("name"),
            category=data.get("category"),
            section=data.get("section"),
            employee_id=data.get("employeeId"),
            employee_name=data.get("employeeName"),
            extra={key: value for key, value in data.items() if key not in _POSITION_KEYS},
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = dict(self.extra)
        payload.update(
            {
                "id": self.id,
                "name": self.name,
                "category": self.category,
                "section": self.section,
            }
        )
        if self._employee_id:
            payload["employeeId"] = self._employee_id
            payload["employeeName"] = self._employee_name
        return payload

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Position):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return (
            f"Position(id={self.id!r}, name={self.name!r}, category={self.category!r}, "
            f"employee_id={self._employee_id!r}, employee_name={self._employee_name!r})"
        )


@dataclass
class TimeBlock:
    id: str
    start: str
    end: str
    positions: List[Position] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def start_minutes(self) -> int:
        return parse_time_to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return parse_time_to_minutes(self.end)

    @property
    def label(self) -> str:
        return format_time_range(self.start, self.end)

    def find_position(self, position_id: str) -> Optional[Position]:
        for position in self.positions:
            if position.id == position_id:
                return position
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimeBlock":
        if not isinstance(data, dict):
            raise ValidationError("Time block entry must be an object.")
        block_id = _clean(data.get("id"))
        if not block_id:
            raise ValidationError("Time blocks require an id.")
        return cls(
            id=block_id,
            start=str(data.get("start") or ""),
            end=str(data.get("end") or ""),
            positions=[Position.from_dict(raw) for raw in data.get("positions") or []],
            extra={key: value for key, value in data.items() if key not in {"id", "start", "end", "positions"}},
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = dict(self.extra)
        payload.update(
            {
                "id": self.id,
                "start": self.start,
                "end": self.end,
                "positions": [position.to_dict() for position in self.positions],
            }
        )
        return payload


@dataclass
class DaySchedule:
    day: str
    time_blocks: List[TimeBlock] = field(default_factory=list)

    def find_block(self, block_id: str) -> Optional[TimeBlock]:
        for block in self.time_blocks:
            if block.id == block_id:
                return block
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"day": self.day, "timeBlocks": [block.to_dict() for block in self.time_blocks]}


_SETUP_KEYS = {"id", "_id", "name", "startDate", "endDate", "weekSchedule", "employees", "uploadedSchedules"}


@dataclass
class Setup:
    id: Optional[str]
    name: str = ""
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    week_schedule: Dict[str, DaySchedule] = field(default_factory=dict)
    employees: List[Employee] = field(default_factory=list)
    uploaded_schedules: List[Employee] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    def day(self, day: str, *, create: bool = False) -> Optional[DaySchedule]:
        canonical = normalize_day_name(day)
        if canonical is None:
            return None
        schedule = self.week_schedule.get(canonical)
        if schedule is None and create:
            schedule = DaySchedule(day=canonical)
            self.week_schedule[canonical] = schedule
        return schedule

    def days(self) -> List[str]:
        return sort_days(self.week_schedule.keys())

    def iter_positions(self, day: Optional[str] = None) -> Iterator[Tuple[str, TimeBlock, Position]]:
        if day is None:
            days = self.days()
        else:
            canonical = normalize_day_name(day)
            days = [canonical] if canonical in self.week_schedule else []
        for name in days:
            for block in self.week_schedule[name].time_blocks:
                for position in block.positions:
                    yield name, block, position

    def position_count(self) -> int:
        return sum(1 for _ in self.iter_positions())

    def copy(self) -> "Setup":
        return copy.deepcopy(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Setup":
        if not isinstance(data, dict):
            raise ValidationError("Setup document must be an object.")
        week_schedule: Dict[str, DaySchedule] = {}
        raw_week = data.get("weekSchedule") or {}
        if not isinstance(raw_week, dict):
            raise ValidationError("weekSchedule must be an object keyed by day.")
        for key, raw_day in raw_week.items():
            canonical = normalize_day_name(key)
            if canonical is None:
                continue
            schedule = week_schedule.setdefault(canonical, DaySchedule(day=canonical))
            blocks = (raw_day or {}).get("timeBlocks") if isinstance(raw_day, dict) else None
            schedule.time_blocks.extend(TimeBlock.from_dict(raw) for raw in blocks or [])
        setup_id = _clean(data.get("id")) or _clean(data.get("_id"))
        return cls(
            id=setup_id,
            name=str(data.get("name") or ""),
            start_date=_clean(data.get("startDate")),
            end_date=_clean(data.get("endDate")),
            week_schedule=week_schedule,
            employees=[Employee.from_dict(raw, legacy=True) for raw in data.get("employees") or []],
            uploaded_schedules=[Employee.from_dict(raw) for raw in data.get("uploadedSchedules") or []],
            extra={key: value for key, value in data.items() if key not in _SETUP_KEYS},
        )

    def to_payload(self) -> Dict[str, Any]:
        """Body for a replace request against the store."""
        return {
            "name": self.name,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "weekSchedule": {day: self.week_schedule[day].to_dict() for day in self.days()},
            "uploadedSchedules": [employee.to_dict() for employee in self.uploaded_schedules],
            "employees": [employee.to_dict() for employee in self.employees],
        }

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = dict(self.extra)
        payload.update(self.to_payload())
        payload["id"] = self.id
        return payload
