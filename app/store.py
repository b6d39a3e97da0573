"""SQLAlchemy-backed document store for setups.

Each setup is kept whole as one JSON document, the same shape clients send
and receive, so a replace never has to reconcile individual rows.
"""

from __future__ import annotations

import datetime
import json
import secrets
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import DateTime, Integer, String, Text, create_engine, select
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from config import STORE_DATABASE_URL
from errors import BreakConflictError, ValidationError
from models import DEFAULT_BREAK_MINUTES, Break, Setup

BREAK_STATUS_CHOICES = {"active", "completed", "none"}


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Base(DeclarativeBase):
    """Metadata for the setup store tables."""

    pass


class ScheduleDocument(Base):
    __tablename__ = "schedule_documents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    payloadJSON: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class ApiToken(Base):
    __tablename__ = "api_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    label: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(60), nullable=False)
    action: Mapped[str] = mapped_column(String(60), nullable=False)
    target_type: Mapped[str] = mapped_column(String(32), nullable=False, default="Setup")
    target_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    payloadJSON: Mapped[str] = mapped_column(String(2000), nullable=False, default="{}")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


store_engine = create_engine(
    STORE_DATABASE_URL,
    echo=False,
    future=True,
)
SessionLocal = sessionmaker(bind=store_engine, expire_on_commit=False, future=True)


def init_database() -> None:
    Base.metadata.create_all(store_engine)


def record_audit_log(
    session,
    user_id: str,
    action: str,
    target_type: str = "Setup",
    target_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    log = AuditLog(
        user_id=user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        payloadJSON=json.dumps(payload or {})[:2000],
    )
    session.add(log)
    session.commit()
    return log


def list_audit_logs(session, target_id: Optional[str] = None) -> List[AuditLog]:
    stmt = select(AuditLog).order_by(AuditLog.id)
    if target_id is not None:
        stmt = stmt.where(AuditLog.target_id == target_id)
    return list(session.scalars(stmt))


def issue_token(session, label: str = "") -> str:
    token = secrets.token_urlsafe(32)
    session.add(ApiToken(token=token, label=label))
    session.commit()
    return token


def token_label(session, token: Optional[str]) -> Optional[str]:
    """Label of a known token (empty string when unlabeled), None when unknown."""
    if not token:
        return None
    record = session.scalar(select(ApiToken).where(ApiToken.token == token))
    if record is None:
        return None
    return record.label or ""


def _document(record: ScheduleDocument) -> Dict[str, Any]:
    payload = json.loads(record.payloadJSON or "{}")
    payload["id"] = record.id
    payload["createdAt"] = record.created_at.isoformat() if record.created_at else None
    payload["updatedAt"] = record.updated_at.isoformat() if record.updated_at else None
    return payload


def _normalized(document: Dict[str, Any]) -> Setup:
    setup = Setup.from_dict(document)
    # Timestamps belong to the record, not the stored body.
    setup.extra.pop("createdAt", None)
    setup.extra.pop("updatedAt", None)
    return setup


def _write(record: ScheduleDocument, setup: Setup) -> None:
    body = setup.to_dict()
    body.pop("id", None)
    record.name = setup.name
    record.payloadJSON = json.dumps(body)
    record.updated_at = _utcnow()


def get_schedule_document(session, schedule_id: str) -> Optional[Dict[str, Any]]:
    record = session.get(ScheduleDocument, schedule_id)
    if record is None:
        return None
    return _document(record)


def list_schedule_documents(session) -> List[Dict[str, Any]]:
    records = session.scalars(select(ScheduleDocument).order_by(ScheduleDocument.created_at))
    return [{"id": record.id, "name": record.name, "updatedAt": record.updated_at.isoformat()} for record in records]


def create_schedule_document(session, document: Dict[str, Any]) -> Dict[str, Any]:
    """Validate and insert a new setup; raises ValidationError for malformed bodies."""
    setup = _normalized(document)
    if not setup.name.strip():
        raise ValidationError("Setup name is required.")
    setup.id = setup.id or uuid.uuid4().hex
    if session.get(ScheduleDocument, setup.id) is not None:
        raise ValidationError(f"Setup {setup.id} already exists.")
    record = ScheduleDocument(id=setup.id)
    _write(record, setup)
    session.add(record)
    session.commit()
    return _document(record)


def replace_schedule_document(session, schedule_id: str, body: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Overwrite the fields present in ``body``; the id never changes."""
    record = session.get(ScheduleDocument, schedule_id)
    if record is None:
        return None
    merged = json.loads(record.payloadJSON or "{}")
    merged.update({key: value for key, value in body.items() if key not in {"id", "_id"}})
    merged["id"] = schedule_id
    setup = _normalized(merged)
    _write(record, setup)
    session.commit()
    return _document(record)


def update_break_status(
    session,
    schedule_id: str,
    employee_id: str,
    status: str,
    duration: Any = None,
    *,
    now: Optional[datetime.datetime] = None,
) -> Optional[Dict[str, Any]]:
    """Record a break transition on a roster entry and return that entry.

    Returns None when the setup or the employee is unknown.
    """
    if status not in BREAK_STATUS_CHOICES:
        raise ValidationError("Invalid status value")
    record = session.get(ScheduleDocument, schedule_id)
    if record is None:
        return None
    setup = _normalized(json.loads(record.payloadJSON or "{}"))
    employee = next((entry for entry in setup.uploaded_schedules if entry.id == employee_id), None)
    if employee is None:
        return None
    current = now or datetime.datetime.now()
    today = current.date().isoformat()
    active = next((entry for entry in employee.breaks if entry.is_active), None)
    if status == "active":
        if active is not None:
            raise BreakConflictError(employee_id)
        try:
            minutes = int(duration or DEFAULT_BREAK_MINUTES)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid break duration {duration!r}.") from None
        employee.breaks.append(Break(start_time=current, duration=minutes, status="active", break_date=today))
    elif status == "completed" and active is not None:
        active.complete(current)
    if status != "none":
        employee.had_break = True
        employee.break_date = today
    _write(record, setup)
    session.commit()
    return employee.to_dict()
