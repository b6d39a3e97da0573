from __future__ import annotations

import logging
import threading
import weakref
from concurrent.futures import Future, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .engine import AssignmentEngine, Mutation
from audit import AuditLogger
from breaks import BreakTracker
from config import load_settings
from errors import AuthError, BreakConflictError, ScheduleError, ValidationError
from models import Employee, Setup, TimeBlock

logger = logging.getLogger(__name__)


@dataclass
class EditResult:
    ok: bool
    applied: bool
    message: str = ""
    value: Any = None
    persist: Optional[Future] = None


@dataclass
class _Edit:
    revision: int
    revert: Callable[[], None]
    result: Future


@dataclass
class _PendingSave:
    # Local revision the request payload was built from.
    revision: int
    edits: List[_Edit] = field(default_factory=list)


class ScheduleEditor:
    """Optimistic edits over one setup with background saves and per-edit rollback.

    Every edit is applied locally first and is visible immediately. The save
    runs in the background; when it fails, only the fields that edit touched
    are put back and the error is kept in ``errors``. When it succeeds, the
    server copy becomes the local setup unless a newer edit happened meanwhile.
    """

    def __init__(
        self,
        setup: Setup,
        client: Optional[Any] = None,
        *,
        active_day: Optional[str] = None,
        tracker: Optional[BreakTracker] = None,
        audit: Optional[AuditLogger] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self._lock = threading.RLock()
        self.engine = AssignmentEngine(setup, active_day, id_factory=id_factory)
        self.client = client
        self.tracker = tracker or BreakTracker(default_duration=load_settings()["default_break_minutes"])
        self.tracker.load(list(setup.uploaded_schedules) + list(setup.employees))
        self.audit = audit
        self.errors: List[Exception] = []
        self.dirty = False
        self._revision = 0
        self._pending: Dict[Future, _PendingSave] = {}
        self._seen: "weakref.WeakSet[Future]" = weakref.WeakSet()

    @classmethod
    def open(cls, client: Any, schedule_id: str, **kwargs) -> "ScheduleEditor":
        return cls(client.load(schedule_id), client, **kwargs)

    @property
    def setup(self) -> Setup:
        return self.engine.setup

    @property
    def active_day(self) -> str:
        return self.engine.active_day

    @property
    def revision(self) -> int:
        return self._revision

    def set_active_day(self, day: str) -> str:
        with self._lock:
            return self.engine.set_active_day(day)

    # ----------------------------------------------------------------- reads

    def time_blocks(self) -> List[TimeBlock]:
        with self._lock:
            return self.engine.time_blocks()

    def available_for_position(self, position_id: str, name_filter: Optional[str] = None) -> List[Employee]:
        with self._lock:
            return self.engine.available_for_position(position_id, name_filter)

    def unassigned(self) -> List[Employee]:
        with self._lock:
            return self.engine.unassigned()

    def assigned(self) -> List[Employee]:
        with self._lock:
            return self.engine.assigned()

    def day_employees(self) -> List[Employee]:
        with self._lock:
            return self.engine.day_employees()

    # ------------------------------------------------------------- persistence

    def _check_token(self) -> None:
        if self.client is None:
            return
        token_store = getattr(self.client, "token_store", None)
        if token_store is not None and not token_store.get():
            raise AuthError("No authentication token found")

    def _persist(self, revert: Callable[[], None]) -> Optional[Future]:
        if self.client is None:
            self.dirty = True
            return None
        edit = _Edit(revision=self._revision, revert=revert, result=Future())
        self._submit([edit])
        return edit.result

    def _submit(self, edits: List[_Edit]) -> None:
        try:
            saved = self.client.save(self.setup, self.tracker.snapshot())
        except ScheduleError as exc:
            self._fail(edits, exc)
            return
        pending = self._pending.get(saved)
        if pending is not None:
            # Joined an in-flight save whose payload predates these edits.
            pending.edits.extend(edits)
            return
        # A future that settled before we saw it never carried these edits.
        revision = -1 if saved in self._seen else self._revision
        pending = _PendingSave(revision=revision, edits=list(edits))
        self._pending[saved] = pending
        self._seen.add(saved)
        saved.add_done_callback(self._settle)

    def _fail(self, edits: List[_Edit], exc: BaseException) -> None:
        for edit in reversed(edits):
            edit.revert()
        self._record_error(exc)
        for edit in edits:
            edit.result.set_exception(exc)

    def _settle(self, saved: Future) -> None:
        with self._lock:
            pending = self._pending.pop(saved, None)
            if pending is None:
                return
            exc = saved.exception()
            if exc is not None:
                self._fail(pending.edits, exc)
                return
            server_copy = saved.result()
            carried = [edit for edit in pending.edits if edit.revision <= pending.revision]
            late = [edit for edit in pending.edits if edit.revision > pending.revision]
            if pending.revision == self._revision:
                self.engine.setup = server_copy
                self.dirty = False
            else:
                self.dirty = True
            for edit in carried:
                edit.result.set_result(server_copy)
            if late:
                logger.debug("Re-saving %d edit(s) that joined an older save", len(late))
                self._submit(late)

    def _record_error(self, exc: BaseException) -> None:
        logger.warning("Save of setup %s failed: %s", self.setup.id, exc)
        self.errors.append(exc)

    def _audit(self, action: str, message: str, value: Any = None) -> None:
        if self.audit is None:
            return
        details: Dict[str, Any] = {"message": message}
        if isinstance(value, (str, int)):
            details["value"] = value
        elif value is not None and getattr(value, "id", None):
            details["id"] = value.id
        self.audit.log(action, self.setup.id, day=self.active_day, details=details)

    def _apply(self, action: Callable[[], Mutation]) -> EditResult:
        with self._lock:
            try:
                self._check_token()
                mutation = action()
            except (AuthError, BreakConflictError, ValidationError) as exc:
                return EditResult(ok=False, applied=False, message=str(exc))
            if not mutation.applied:
                return EditResult(ok=True, applied=False, message=mutation.message, value=mutation.value)
            self._revision += 1
            self._audit(mutation.action, mutation.message, mutation.value)
            persist = self._persist(mutation.revert)
            return EditResult(ok=True, applied=True, message=mutation.message, value=mutation.value, persist=persist)

    def save(self) -> EditResult:
        """Push the current local state, e.g. after edits made without a client."""
        with self._lock:
            try:
                self._check_token()
            except AuthError as exc:
                return EditResult(ok=False, applied=False, message=str(exc))
            persist = self._persist(lambda: None)
            return EditResult(ok=True, applied=False, message="Saving", persist=persist)

    # ----------------------------------------------------------------- edits

    def assign(self, position_id: str, employee_id: str, employee_name: Optional[str] = None) -> EditResult:
        return self._apply(lambda: self.engine.assign(position_id, employee_id, employee_name))

    def remove(self, position_id: str) -> EditResult:
        return self._apply(lambda: self.engine.remove(position_id))

    def bulk_assign(
        self,
        time_block_id: str,
        area: Optional[str] = None,
        position_type: Optional[str] = None,
    ) -> EditResult:
        return self._apply(lambda: self.engine.bulk_assign(time_block_id, area, position_type))

    def replace_name(self, employee_id: str, new_name: str) -> EditResult:
        return self._apply(lambda: self.engine.replace(employee_id, new_name))

    def delete_employee(self, employee_id: str) -> EditResult:
        return self._apply(lambda: self.engine.delete_employee_everywhere(employee_id))

    def add_employee(self, name: str, area: Optional[str], start: Any, end: Any) -> EditResult:
        return self._apply(lambda: self.engine.add_employee(name, area, start, end))

    def add_position(
        self,
        time_block_id: str,
        name: str,
        category: Optional[str],
        section: Optional[str] = None,
        start: Any = None,
        end: Any = None,
    ) -> EditResult:
        return self._apply(lambda: self.engine.add_position(time_block_id, name, category, section, start, end))

    def _employee_name(self, employee_id: str) -> Optional[str]:
        for employee in self.engine.directory():
            if employee.id == employee_id:
                return employee.name
        return self.tracker.employee_name(employee_id)

    def start_break(self, employee_id: str, duration: Any = None) -> EditResult:
        def _start() -> Mutation:
            entry = self.tracker.start_break(employee_id, self._employee_name(employee_id), duration)
            return Mutation(
                action="start_break",
                applied=True,
                value=entry,
                message=f"Break started for {self._employee_name(employee_id) or employee_id}",
                undo=[lambda: self.tracker.discard(employee_id, entry)],
            )

        return self._apply(_start)

    def end_break(self, employee_id: str) -> EditResult:
        def _end() -> Mutation:
            entry = self.tracker.end_break(employee_id)
            if entry is None:
                logger.info("No active break found for %s", employee_id)
                return Mutation(action="end_break", applied=False, message=f"No active break for {employee_id}")
            return Mutation(
                action="end_break",
                applied=True,
                value=entry,
                message=f"Break ended for {self._employee_name(employee_id) or employee_id}",
                undo=[lambda: self.tracker.reopen(employee_id, entry)],
            )

        return self._apply(_end)

    def break_status(self, employee_id: str) -> Dict[str, Any]:
        return {
            "status": self.tracker.get_break_status(employee_id),
            "had_break": self.tracker.has_had_break(employee_id),
            "remaining_minutes": self.tracker.get_remaining_minutes(employee_id),
        }

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until every save issued so far has settled locally."""
        with self._lock:
            results = [edit.result for pending in self._pending.values() for edit in pending.edits]
        wait(results, timeout=timeout)

    def close(self) -> None:
        self.tracker.cancel_all()

    def __repr__(self) -> str:
        return f"ScheduleEditor(setup={self.setup.id!r}, day={self.active_day!r}, revision={self._revision})"
