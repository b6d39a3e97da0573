from __future__ import annotations

import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import store  # noqa: E402


@pytest.fixture()
def memory_store(monkeypatch):
    """In-memory SQLite store shared by the API handlers and the test body."""
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Session = sessionmaker(bind=engine, expire_on_commit=False, future=True)
    monkeypatch.setattr(store, "store_engine", engine)
    monkeypatch.setattr(store, "SessionLocal", Session)
    store.Base.metadata.create_all(engine)

    session = Session()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()
def api_client(memory_store):
    from fastapi.testclient import TestClient

    import api

    return TestClient(api.app)


@pytest.fixture()
def api_token(memory_store) -> str:
    return store.issue_token(memory_store, label="manager")


@pytest.fixture()
def setup_document():
    return {
        "name": "Week of June 2",
        "startDate": "2024-06-02",
        "endDate": "2024-06-08",
        "weekSchedule": {
            "monday": {
                "timeBlocks": [
                    {
                        "id": "b1",
                        "start": "09:00",
                        "end": "12:00",
                        "positions": [
                            {"id": "p1", "name": "Register 1", "category": "Front Counter"},
                            {"id": "p2", "name": "Grill", "category": "Kitchen"},
                        ],
                    }
                ]
            }
        },
        "uploadedSchedules": [
            {"id": "e1", "name": "Ann", "day": "monday", "timeBlock": "08:00 - 16:00", "area": "FOH"},
            {"id": "e3", "name": "Cara", "day": "monday", "timeBlock": "06:00 - 14:00", "area": "BOH"},
        ],
    }
