from __future__ import annotations

import datetime
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from areas import AREAS, normalize_area
from directory import (
    assigned_employees,
    day_employees,
    employee_area,
    extract_employees_from_positions,
    scheduled_employees,
    unassigned_employees,
)
from errors import ValidationError
from models import DaySchedule, Employee, Position, Setup, TimeBlock
from timeutils import (
    format_time_range,
    intervals_overlap,
    minutes_of_day,
    normalize_day_name,
    parse_time_to_minutes,
    today_day_name,
    try_parse_time,
)

logger = logging.getLogger(__name__)


@dataclass
class Mutation:
    """Outcome of one engine write.

    ``revert`` restores only the fields this write touched, so later writes to
    other positions survive a rollback.
    """

    action: str
    applied: bool
    value: Any = None
    message: str = ""
    undo: List[Callable[[], None]] = field(default_factory=list, repr=False)

    def revert(self) -> None:
        while self.undo:
            self.undo.pop()()


def _discard(items: List[Any], item: Any) -> None:
    for index, candidate in enumerate(items):
        if candidate is item:
            del items[index]
            return


def _noop(action: str, message: str) -> Mutation:
    logger.info("%s skipped: %s", action, message)
    return Mutation(action=action, applied=False, message=message)


class AssignmentEngine:
    """Availability queries and position/roster writes for one setup.

    Every write except :meth:`delete_employee_everywhere` is scoped to the
    active day.
    """

    def __init__(
        self,
        setup: Setup,
        active_day: Optional[str] = None,
        *,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self.setup = setup
        self.active_day = normalize_day_name(active_day) or today_day_name()
        self._new_id = id_factory or (lambda: uuid.uuid4().hex)

    # ------------------------------------------------------------------ views

    def set_active_day(self, day: str) -> str:
        canonical = normalize_day_name(day)
        if canonical is None:
            raise ValidationError(f"Unrecognized day {day!r}.")
        self.active_day = canonical
        return canonical

    def day_schedule(self, day: Optional[str] = None) -> Optional[DaySchedule]:
        return self.setup.day(day or self.active_day)

    def time_blocks(self, day: Optional[str] = None) -> List[TimeBlock]:
        schedule = self.day_schedule(day)
        return list(schedule.time_blocks) if schedule else []

    def find_block(self, block_id: str, day: Optional[str] = None) -> Optional[TimeBlock]:
        schedule = self.day_schedule(day)
        return schedule.find_block(block_id) if schedule else None

    def find_position(self, position_id: str, day: Optional[str] = None) -> Optional[Tuple[TimeBlock, Position]]:
        for block in self.time_blocks(day):
            position = block.find_position(position_id)
            if position is not None:
                return block, position
        return None

    def directory(self) -> List[Employee]:
        return scheduled_employees(self.setup, self.active_day)

    def unassigned(self) -> List[Employee]:
        return unassigned_employees(self.directory(), self.active_day, self.setup.week_schedule)

    def assigned(self) -> List[Employee]:
        return assigned_employees(self.setup, self.active_day, self.directory())

    def day_employees(self) -> List[Employee]:
        return day_employees(self.setup, self.active_day, self.directory())

    def hours(self, day: Optional[str] = None) -> List[int]:
        """Distinct start hours of the day's blocks, ascending."""
        return sorted({block.start_minutes // 60 for block in self.time_blocks(day)})

    def blocks_for_hour(self, hour: int, day: Optional[str] = None) -> List[TimeBlock]:
        return [block for block in self.time_blocks(day) if block.start_minutes // 60 == hour]

    def current_blocks(self, now: Optional[datetime.datetime] = None) -> List[TimeBlock]:
        minute = minutes_of_day(now)
        return [
            block
            for block in self.time_blocks()
            if block.start_minutes <= minute <= block.end_minutes
        ]

    def position_counts(self, day: Optional[str] = None) -> Dict[str, Dict[str, int]]:
        counts = {area: {"total": 0, "filled": 0} for area in AREAS}
        for block in self.time_blocks(day):
            for position in block.positions:
                bucket = counts.setdefault(position.section, {"total": 0, "filled": 0})
                bucket["total"] += 1
                if position.is_assigned:
                    bucket["filled"] += 1
        return counts

    # ----------------------------------------------------------- availability

    def _known_employees(self) -> List[Employee]:
        known = list(self.setup.uploaded_schedules) + list(self.setup.employees)
        known.extend(extract_employees_from_positions(self.setup.week_schedule))
        return known

    def _bound_in_window(self, start: int, end: int, editing_position_id: Optional[str]) -> set:
        busy = set()
        for block in self.time_blocks():
            if not intervals_overlap(block.start_minutes, block.end_minutes, start, end):
                continue
            for position in block.positions:
                if position.employee_id and position.id != editing_position_id:
                    busy.add(position.employee_id)
        return busy

    def available_employees(
        self,
        position: Optional[Position],
        block_start: Any,
        block_end: Any,
        editing_position_id: Optional[str] = None,
        name_filter: Optional[str] = None,
    ) -> List[Employee]:
        """Employees who can fill ``position`` during ``[block_start, block_end)``."""
        start = parse_time_to_minutes(block_start)
        end = parse_time_to_minutes(block_end)
        busy = self._bound_in_window(start, end, editing_position_id)
        area = position.required_area if position is not None else None
        known = self._known_employees() if area else []
        needle = (name_filter or "").strip().lower()

        candidates: List[Employee] = []
        for employee in self.directory():
            window = employee.window()
            if window is None:
                logger.debug("Employee %s has no usable shift window", employee.id)
                continue
            emp_start, emp_end = window
            if not (emp_start <= end and emp_end > start):
                continue
            if employee.id in busy:
                continue
            if area:
                employee_area_value = employee.area or employee_area(employee.id, known)
                if employee_area_value != area:
                    continue
            if needle and needle not in employee.name.lower():
                continue
            candidates.append(employee)
        return sorted(candidates, key=lambda employee: (employee.name.lower(), employee.id))

    def available_for_position(
        self,
        position_id: str,
        name_filter: Optional[str] = None,
    ) -> List[Employee]:
        found = self.find_position(position_id)
        if found is None:
            logger.info("No position %s on %s", position_id, self.active_day)
            return []
        block, position = found
        return self.available_employees(
            position,
            block.start,
            block.end,
            editing_position_id=position.id,
            name_filter=name_filter,
        )

    # ----------------------------------------------------------------- writes

    def _lookup_name(self, employee_id: str) -> Optional[str]:
        for employee in self._known_employees():
            if employee.id == employee_id:
                return employee.name
        return None

    def assign(self, position_id: str, employee_id: str, employee_name: Optional[str] = None) -> Mutation:
        if not employee_id or not str(employee_id).strip():
            raise ValidationError("An employee id is required to fill a position.")
        found = self.find_position(position_id)
        if found is None:
            return _noop("assign", f"position {position_id} not found on {self.active_day}")
        _, position = found
        previous = position.binding()
        position.bind(employee_id, employee_name or self._lookup_name(employee_id))
        return Mutation(
            action="assign",
            applied=True,
            value=position,
            message=f"{position.employee_name} assigned to {position.name}",
            undo=[lambda: position.restore_binding(*previous)],
        )

    def remove(self, position_id: str) -> Mutation:
        found = self.find_position(position_id)
        if found is None:
            return _noop("remove", f"position {position_id} not found on {self.active_day}")
        _, position = found
        previous = position.binding()
        if previous[0] is None:
            return Mutation(action="remove", applied=False, value=position, message=f"{position.name} is already open")
        position.unbind()
        return Mutation(
            action="remove",
            applied=True,
            value=position,
            message=f"{previous[1] or previous[0]} removed from {position.name}",
            undo=[lambda: position.restore_binding(*previous)],
        )

    def bulk_assign(
        self,
        time_block_id: str,
        area: Optional[str] = None,
        position_type: Optional[str] = None,
    ) -> Mutation:
        """Fill the open positions of one block in a single write.

        Positions are narrowed by section (``area``) and by position name
        (``position_type``). Each one takes the alphabetically first employee
        still available for it, so a person is never placed twice in the block.
        """
        wanted_area = None
        if area and area.strip().lower() != "all":
            wanted_area = normalize_area(area)
            if wanted_area is None:
                raise ValidationError(f"Unknown area {area!r}.")
        block = self.find_block(time_block_id)
        if block is None:
            return _noop("bulk_assign", f"time block {time_block_id} not found on {self.active_day}")
        wanted_type = (position_type or "").strip().lower()
        open_positions = [
            position
            for position in block.positions
            if not position.is_assigned
            and (wanted_area is None or position.section == wanted_area)
            and (not wanted_type or position.name.strip().lower() == wanted_type)
        ]
        undo: List[Callable[[], None]] = []
        placed: List[Tuple[str, str]] = []
        for position in open_positions:
            candidates = self.available_employees(position, block.start, block.end, editing_position_id=position.id)
            if wanted_area is not None:
                candidates = [employee for employee in candidates if employee.area == wanted_area]
            if not candidates:
                continue
            employee = candidates[0]
            previous = position.binding()
            position.bind(employee.id, employee.name)
            undo.append(lambda position=position, previous=previous: position.restore_binding(*previous))
            placed.append((position.id, employee.id))
        if not placed:
            return _noop("bulk_assign", f"no open positions or available employees in {block.label}")
        return Mutation(
            action="bulk_assign",
            applied=True,
            value=placed,
            message=f"Assigned {len(placed)} employee(s) in {block.label}",
            undo=undo,
        )

    def _roster_entries(self, employee_id: str) -> List[Employee]:
        return [
            employee
            for employee in list(self.setup.uploaded_schedules) + list(self.setup.employees)
            if employee.id == employee_id
        ]

    def replace(self, employee_id: str, new_name: str) -> Mutation:
        """Rename an employee on the active day's positions and in the roster."""
        name = (new_name or "").strip()
        if not name:
            raise ValidationError("A new name is required.")
        undo: List[Callable[[], None]] = []
        renamed = 0
        for block in self.time_blocks():
            for position in block.positions:
                if position.employee_id != employee_id:
                    continue
                previous = position.binding()
                position.rename_employee(name)
                undo.append(lambda position=position, previous=previous: position.restore_binding(*previous))
                renamed += 1
        entries = self._roster_entries(employee_id)
        for employee in entries:
            old_name = employee.name
            employee.name = name

            def _restore_name(employee: Employee = employee, old_name: str = old_name) -> None:
                employee.name = old_name

            undo.append(_restore_name)
        if not undo:
            return _noop("replace", f"employee {employee_id} not found on {self.active_day}")
        return Mutation(action="replace", applied=True, value=renamed, message=f"Renamed to {name}", undo=undo)

    def delete_employee_everywhere(self, employee_id: str) -> Mutation:
        """Clear the employee from every day's positions and drop their roster entries."""
        undo: List[Callable[[], None]] = []
        cleared = 0
        for _, _, position in self.setup.iter_positions():
            if position.employee_id != employee_id:
                continue
            previous = position.binding()
            position.unbind()
            undo.append(lambda position=position, previous=previous: position.restore_binding(*previous))
            cleared += 1
        for roster in (self.setup.uploaded_schedules, self.setup.employees):
            removed = [(index, employee) for index, employee in enumerate(roster) if employee.id == employee_id]
            if not removed:
                continue
            roster[:] = [employee for employee in roster if employee.id != employee_id]

            def _restore_roster(roster: List[Employee] = roster, removed=removed) -> None:
                for index, employee in removed:
                    roster.insert(min(index, len(roster)), employee)

            undo.append(_restore_roster)
        if not undo:
            return _noop("delete_employee", f"employee {employee_id} not found")
        return Mutation(
            action="delete_employee",
            applied=True,
            value=cleared,
            message=f"Employee {employee_id} removed from {cleared} position(s)",
            undo=undo,
        )

    def add_employee(self, name: str, area: Optional[str], start: Any, end: Any) -> Mutation:
        label = (name or "").strip()
        if not label:
            raise ValidationError("Employee name is required.")
        if try_parse_time(start) is None or try_parse_time(end) is None:
            raise ValidationError("Employee start and end times are required.")
        normalized_area = normalize_area(area)
        if area and normalized_area is None:
            raise ValidationError(f"Unknown area {area!r}.")
        employee = Employee(
            id=self._new_id(),
            name=label,
            area=normalized_area,
            day=self.active_day,
            time_block=format_time_range(start, end),
        )
        # Keep the directory on the same source it already reads from.
        if self.setup.uploaded_schedules or not self.setup.employees:
            roster = self.setup.uploaded_schedules
        else:
            roster = self.setup.employees
        roster.append(employee)

        return Mutation(
            action="add_employee",
            applied=True,
            value=employee,
            message=f"Added {label}",
            undo=[lambda: _discard(roster, employee)],
        )

    def add_position(
        self,
        time_block_id: str,
        name: str,
        category: Optional[str],
        section: Optional[str] = None,
        start: Any = None,
        end: Any = None,
    ) -> Mutation:
        if not time_block_id or not (name or "").strip() or not (category or "").strip():
            raise ValidationError("Time block, position name and category are required.")
        day = self.active_day
        block = self.find_block(time_block_id)
        if block is None and (try_parse_time(start) is None or try_parse_time(end) is None):
            raise ValidationError(f"Time block {time_block_id} does not exist; start and end are required to create it.")
        undo: List[Callable[[], None]] = []
        schedule = self.setup.day(day)
        if schedule is None:
            schedule = self.setup.day(day, create=True)
            undo.append(lambda: self.setup.week_schedule.pop(day, None))
        if block is None:
            block = TimeBlock(id=time_block_id, start=str(start), end=str(end))
            schedule.time_blocks.append(block)
            undo.append(lambda: _discard(schedule.time_blocks, block))
        position = Position(id=self._new_id(), name=name, category=category, section=section)
        block.positions.append(position)
        undo.append(lambda: _discard(block.positions, position))
        return Mutation(
            action="add_position",
            applied=True,
            value=position,
            message=f"Added {position.name} to {block.label}",
            undo=undo,
        )
