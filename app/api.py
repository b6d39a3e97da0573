"""FastAPI surface over the setup document store.

Clients read whole setup documents and replace them with PUT; the response
body is always the stored copy, which callers treat as their new baseline.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

# Ensure flat absolute imports (e.g., "import store") still resolve.
APP_DIR = Path(__file__).resolve().parent
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import store  # noqa: E402
from errors import BreakConflictError, ValidationError  # noqa: E402
from store import (  # noqa: E402
    create_schedule_document,
    get_schedule_document,
    list_schedule_documents,
    record_audit_log,
    replace_schedule_document,
    token_label,
    update_break_status,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    store.init_database()
    yield


app = FastAPI(title="Setup Sheet API", version="0.1", lifespan=lifespan)


def get_db():
    db = store.SessionLocal()
    try:
        yield db
    finally:
        db.close()


def require_actor(authorization: Optional[str] = Header(None), db=Depends(get_db)) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="No authentication token provided")
    label = token_label(db, token.strip())
    if label is None:
        raise HTTPException(status_code=401, detail="Invalid authentication token")
    return label or "api"


def _audit(db: Session, actor: str, action: str, target: Optional[str], payload: Optional[Dict[str, Any]] = None) -> None:
    record_audit_log(db, user_id=actor, action=action, target_type="Setup", target_id=target, payload=payload)


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/schedules")
def list_schedules(db=Depends(get_db), actor: str = Depends(require_actor)) -> JSONResponse:
    return JSONResponse(content=jsonable_encoder({"schedules": list_schedule_documents(db)}))


@app.get("/schedules/{schedule_id}")
def read_schedule(schedule_id: str, db=Depends(get_db), actor: str = Depends(require_actor)) -> JSONResponse:
    document = get_schedule_document(db, schedule_id)
    if document is None:
        raise HTTPException(status_code=404, detail="Setup not found")
    return JSONResponse(content=jsonable_encoder(document))


@app.post("/schedules")
def create_schedule(
    payload: Dict[str, Any],
    db=Depends(get_db),
    actor: str = Depends(require_actor),
) -> JSONResponse:
    try:
        document = create_schedule_document(db, payload)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    _audit(db, actor, "SETUP_CREATED", document["id"], {"name": document.get("name")})
    return JSONResponse(status_code=201, content=jsonable_encoder(document))


@app.put("/schedules/{schedule_id}")
def replace_schedule(
    schedule_id: str,
    payload: Dict[str, Any],
    db=Depends(get_db),
    actor: str = Depends(require_actor),
) -> JSONResponse:
    try:
        document = replace_schedule_document(db, schedule_id, payload)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if document is None:
        raise HTTPException(status_code=404, detail="Setup not found")
    _audit(db, actor, "SETUP_REPLACED", schedule_id, {"fields": sorted(payload.keys())})
    return JSONResponse(content=jsonable_encoder(document))


@app.post("/breaks/update-status")
def break_status(
    payload: Dict[str, Any],
    db=Depends(get_db),
    actor: str = Depends(require_actor),
) -> JSONResponse:
    setup_id = payload.get("setupId")
    employee_id = payload.get("employeeId")
    status = payload.get("status")
    if not setup_id or not employee_id or not status:
        raise HTTPException(status_code=400, detail="Missing required fields")
    try:
        employee = update_break_status(db, str(setup_id), str(employee_id), status, payload.get("duration"))
    except BreakConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if employee is None:
        raise HTTPException(status_code=404, detail="Setup or employee not found")
    _audit(db, actor, "BREAK_STATUS", str(setup_id), {"employeeId": employee_id, "status": status})
    logger.info("Break status %s recorded for %s", status, employee_id)
    return JSONResponse(content=jsonable_encoder({"message": "Break status updated successfully", "employee": employee}))
