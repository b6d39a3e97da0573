from __future__ import annotations

import copy
import datetime
import logging
import math
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional

from errors import BreakConflictError, ValidationError
from models import DEFAULT_BREAK_MINUTES, Break, Employee

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime.datetime]
TimerFactory = Callable[[float, Callable[[], None]], Any]


def parse_duration(value: Any, default: int = DEFAULT_BREAK_MINUTES) -> int:
    """Break length in whole minutes; accepts ints and numeric strings such as "30"."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValidationError("Break duration must be a number of minutes.")
    try:
        minutes = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid break duration {value!r}.") from None
    if minutes <= 0:
        raise ValidationError("Break duration must be positive.")
    return minutes


class BreakTracker:
    """Per-employee break history with at most one active break each.

    The tracker never touches the setup; the editor merges its history into the
    roster when saving.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        timer_factory: TimerFactory = threading.Timer,
        *,
        default_duration: int = DEFAULT_BREAK_MINUTES,
    ) -> None:
        self._clock = clock or datetime.datetime.now
        self._timer_factory = timer_factory
        self.default_duration = default_duration
        self._breaks: Dict[str, List[Break]] = {}
        self._names: Dict[str, str] = {}
        self._had_break: Dict[str, Optional[str]] = {}
        self._timers: Dict[str, Any] = {}
        self._lock = threading.RLock()

    def _today(self) -> str:
        return self._clock().date().isoformat()

    def load(self, employees: Iterable[Employee]) -> None:
        """Seed history from persisted roster entries, replacing anything tracked."""
        with self._lock:
            self.cancel_all()
            self._breaks.clear()
            self._had_break.clear()
            for employee in employees:
                self._names[employee.id] = employee.name
                if employee.breaks:
                    self._breaks.setdefault(employee.id, []).extend(copy.deepcopy(employee.breaks))
                if employee.had_break:
                    self._had_break[employee.id] = employee.break_date
            for employee_id, entries in self._breaks.items():
                for entry in entries:
                    if entry.is_active:
                        self._arm(employee_id, entry)

    def _active(self, employee_id: str) -> Optional[Break]:
        for entry in self._breaks.get(employee_id, []):
            if entry.is_active:
                return entry
        return None

    def _arm(self, employee_id: str, entry: Break) -> None:
        remaining = (entry.due_at - self._clock()).total_seconds()
        timer = self._timer_factory(max(0.0, remaining), lambda: self._expire(employee_id, entry))
        if hasattr(timer, "daemon"):
            timer.daemon = True
        previous = self._timers.pop(employee_id, None)
        if previous is not None:
            previous.cancel()
        self._timers[employee_id] = timer
        timer.start()

    def _disarm(self, employee_id: str) -> None:
        timer = self._timers.pop(employee_id, None)
        if timer is not None:
            timer.cancel()

    def _expire(self, employee_id: str, entry: Break) -> None:
        with self._lock:
            # A manual end (or a newer break) wins over a late timer.
            if self._active(employee_id) is not entry:
                return
            entry.complete(self._clock())
            self._timers.pop(employee_id, None)
            logger.info("Break for %s completed automatically", employee_id)

    def start_break(self, employee_id: str, employee_name: Optional[str] = None, duration: Any = None) -> Break:
        if not employee_id:
            raise ValidationError("An employee id is required to start a break.")
        minutes = parse_duration(duration, self.default_duration)
        with self._lock:
            if self._active(employee_id) is not None:
                raise BreakConflictError(employee_id)
            now = self._clock()
            entry = Break(start_time=now, duration=minutes, status="active", break_date=now.date().isoformat())
            self._breaks.setdefault(employee_id, []).append(entry)
            if employee_name:
                self._names[employee_id] = employee_name
            self._arm(employee_id, entry)
            return entry

    def end_break(self, employee_id: str) -> Optional[Break]:
        """Complete the active break; returns None when there is nothing to end."""
        with self._lock:
            entry = self._active(employee_id)
            if entry is None:
                return None
            entry.complete(self._clock())
            self._disarm(employee_id)
            return entry

    def get_break_status(self, employee_id: str) -> str:
        with self._lock:
            return "active" if self._active(employee_id) is not None else "none"

    def has_had_break(self, employee_id: str) -> bool:
        today = self._today()
        with self._lock:
            if any(entry.break_date == today for entry in self._breaks.get(employee_id, [])):
                return True
            if employee_id in self._had_break:
                flagged = self._had_break[employee_id]
                return flagged is None or flagged[:10] == today
        return False

    def get_remaining_minutes(self, employee_id: str) -> int:
        with self._lock:
            entry = self._active(employee_id)
            if entry is None:
                return 0
            elapsed = (self._clock() - entry.start_time).total_seconds() / 60
            return max(0, entry.duration - math.floor(elapsed))

    def check_expired(self) -> List[str]:
        """Complete every active break that is past due; returns the employee ids."""
        now = self._clock()
        finished: List[str] = []
        with self._lock:
            for employee_id, entries in self._breaks.items():
                for entry in entries:
                    if entry.is_active and entry.due_at <= now:
                        entry.complete(now)
                        finished.append(employee_id)
            for employee_id in finished:
                self._disarm(employee_id)
        return finished

    def active_breaks(self) -> Dict[str, Break]:
        with self._lock:
            return {
                employee_id: entry
                for employee_id in self._breaks
                for entry in [self._active(employee_id)]
                if entry is not None
            }

    def employee_name(self, employee_id: str) -> Optional[str]:
        return self._names.get(employee_id)

    def breaks_for(self, employee_id: str) -> List[Break]:
        with self._lock:
            return list(self._breaks.get(employee_id, []))

    def snapshot(self) -> Dict[str, List[Break]]:
        """Deep copy of the history, safe to serialize from another thread."""
        with self._lock:
            return {employee_id: copy.deepcopy(entries) for employee_id, entries in self._breaks.items() if entries}

    def discard(self, employee_id: str, entry: Break) -> None:
        """Forget a break that was started but could not be saved."""
        with self._lock:
            entries = self._breaks.get(employee_id, [])
            for index, candidate in enumerate(entries):
                if candidate is entry:
                    del entries[index]
                    break
            if entry.is_active:
                self._disarm(employee_id)

    def reopen(self, employee_id: str, entry: Break) -> None:
        """Undo a completion that could not be saved."""
        with self._lock:
            if self._active(employee_id) is not None:
                return
            entry.status = "active"
            entry.end_time = None
            self._arm(employee_id, entry)

    def cancel_all(self) -> None:
        with self._lock:
            for employee_id in list(self._timers):
                self._disarm(employee_id)
