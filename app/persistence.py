from __future__ import annotations

import json
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import requests

from config import CACHE_DIR, TOKEN_FILE, load_settings
from errors import AuthError, PersistError, ValidationError
from models import Break, Setup

logger = logging.getLogger(__name__)


class TokenStore:
    """Bearer token kept in a small JSON file next to the app data."""

    def __init__(self, file_path: Path = TOKEN_FILE) -> None:
        self.file_path = file_path

    def get(self) -> Optional[str]:
        if not self.file_path.exists():
            return None
        try:
            data = json.loads(self.file_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Unreadable token file %s: %s", self.file_path, exc)
            return None
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            return None
        return str(token).strip() or None

    def set(self, token: str) -> None:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        self.file_path.write_text(json.dumps({"token": token}), encoding="utf-8")

    def clear(self) -> None:
        if self.file_path.exists():
            self.file_path.unlink()


class SnapshotCache:
    """Per-schedule JSON snapshots that expire after ``validity_minutes``."""

    def __init__(
        self,
        directory: Path = CACHE_DIR,
        validity_minutes: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.directory = directory
        if validity_minutes is None:
            validity_minutes = load_settings()["cache_validity_minutes"]
        self.validity_seconds = float(validity_minutes) * 60
        self._clock = clock

    def _path(self, schedule_id: str) -> Path:
        return self.directory / f"setup_cache_{schedule_id}.json"

    def get(self, schedule_id: str) -> Optional[Dict[str, Any]]:
        path = self._path(schedule_id)
        if not path.exists():
            return None
        try:
            entry = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        if not isinstance(entry, dict) or not isinstance(entry.get("data"), dict):
            return None
        if self._clock() - float(entry.get("timestamp") or 0) >= self.validity_seconds:
            return None
        return entry["data"]

    def put(self, schedule_id: str, document: Dict[str, Any]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        entry = {"timestamp": self._clock(), "data": document}
        self._path(schedule_id).write_text(json.dumps(entry), encoding="utf-8")

    def invalidate(self, schedule_id: str) -> None:
        path = self._path(schedule_id)
        if path.exists():
            path.unlink()


def merge_break_history(payload: Dict[str, Any], breaks: Optional[Dict[str, List[Break]]]) -> Dict[str, Any]:
    """Write tracked break history onto the roster entries of a save payload."""
    if not breaks:
        return payload
    for key in ("uploadedSchedules", "employees"):
        for entry in payload.get(key) or []:
            history = breaks.get(entry.get("id"))
            if not history:
                continue
            entry["breaks"] = [item.to_dict() for item in history]
            entry["hadBreak"] = True
            entry["breakDate"] = max(item.break_date or "" for item in history) or None
    return payload


@dataclass
class _InFlight:
    future: Future
    started: float


class ScheduleStoreClient:
    """HTTP adapter for the setup document store.

    Writes run on one worker thread, so two saves never overlap. A save asked
    for while another save of the same setup is still running and younger than
    the debounce window returns the running save's future.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token_store: Optional[TokenStore] = None,
        http: Optional[Any] = None,
        *,
        debounce_seconds: Optional[float] = None,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        cache: Optional[SnapshotCache] = None,
    ) -> None:
        settings = load_settings()
        self.base_url = (base_url or settings["api_base_url"]).rstrip("/")
        self.token_store = token_store or TokenStore()
        self._owns_http = http is None
        self.http = http if http is not None else requests.Session()
        self.debounce_seconds = (
            settings["save_debounce_seconds"] if debounce_seconds is None else float(debounce_seconds)
        )
        self.timeout = settings["request_timeout_seconds"] if timeout is None else timeout
        self.cache = cache
        self._clock = clock
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="setup-save")
        self._inflight: Dict[str, _InFlight] = {}
        self._lock = threading.Lock()

    def __enter__(self) -> "ScheduleStoreClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _url(self, *parts: str) -> str:
        return "/".join([self.base_url, *[str(part).strip("/") for part in parts]])

    def _require_token(self) -> str:
        token = self.token_store.get()
        if not token:
            raise AuthError("No authentication token found")
        return token

    def _send(self, method: str, url: str, token: str, **kwargs) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        try:
            response = self.http.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise PersistError(f"{method} {url} failed: {exc}") from exc
        status = response.status_code
        if status == 401:
            raise AuthError("The store rejected the authentication token")
        if status >= 400:
            raise PersistError(self._error_message(response), status_code=status)
        try:
            data = response.json()
        except ValueError as exc:
            raise PersistError(f"{method} {url} returned invalid JSON", status_code=status) from exc
        if not isinstance(data, dict):
            raise PersistError(f"{method} {url} returned an unexpected body", status_code=status)
        return data

    @staticmethod
    def _error_message(response: Any) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = body.get("detail") or body.get("message")
            if message:
                return str(message)
        return f"Store responded with HTTP {response.status_code}"

    def load(self, schedule_id: str, *, use_cache: bool = True) -> Setup:
        token = self._require_token()
        if use_cache and self.cache is not None:
            cached = self.cache.get(schedule_id)
            if cached is not None:
                logger.debug("Serving setup %s from cache", schedule_id)
                return Setup.from_dict(cached)
        document = self._send("GET", self._url("schedules", schedule_id), token)
        setup = Setup.from_dict(document)
        if self.cache is not None:
            self.cache.put(schedule_id, document)
        return setup

    def create(self, setup: Setup) -> Setup:
        token = self._require_token()
        body = setup.to_dict()
        document = self._send("POST", self._url("schedules"), token, json=body)
        return Setup.from_dict(document)

    def _put(self, schedule_id: str, payload: Dict[str, Any], token: str) -> Setup:
        document = self._send("PUT", self._url("schedules", schedule_id), token, json=payload)
        saved = Setup.from_dict(document)
        if self.cache is not None:
            self.cache.put(schedule_id, document)
        logger.info("Saved setup %s", schedule_id)
        return saved

    def save(self, setup: Setup, breaks: Optional[Dict[str, List[Break]]] = None) -> "Future[Setup]":
        """Queue a replace of the stored document; the future yields the server copy."""
        if not setup.id:
            raise ValidationError("Cannot save a setup without an id.")
        token = self._require_token()
        with self._lock:
            current = self._inflight.get(setup.id)
            now = self._clock()
            if current is not None and not current.future.done() and now - current.started < self.debounce_seconds:
                logger.debug("Joining in-flight save for %s", setup.id)
                return current.future
            payload = merge_break_history(setup.to_payload(), breaks)
            future = self._executor.submit(self._put, setup.id, payload, token)
            self._inflight[setup.id] = _InFlight(future=future, started=now)
            return future

    def close(self) -> None:
        self._executor.shutdown(wait=True)
        if self._owns_http:
            self.http.close()
