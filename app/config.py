from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional


DATA_DIR = Path(__file__).resolve().parent / "data"
DATA_DIR.mkdir(parents=True, exist_ok=True)
SETTINGS_FILE = DATA_DIR / "settings.json"
TOKEN_FILE = DATA_DIR / "token.json"
CACHE_DIR = DATA_DIR / "cache"
AUDIT_FILE = DATA_DIR / "audit.log"
STORE_DATABASE_URL = f"sqlite:///{(DATA_DIR / 'setups.db').as_posix()}"

DEFAULT_SETTINGS: Dict[str, Any] = {
    "api_base_url": "http://127.0.0.1:8000",
    "save_debounce_seconds": 0.5,
    "cache_validity_minutes": 30,
    "default_break_minutes": 30,
    "request_timeout_seconds": 10,
}

logger = logging.getLogger(__name__)


def _coerce(key: str, value: Any) -> Any:
    default = DEFAULT_SETTINGS[key]
    if isinstance(default, bool):
        return bool(value)
    if isinstance(default, (int, float)):
        try:
            number = type(default)(value)
        except (TypeError, ValueError):
            return default
        return number if number >= 0 else default
    return str(value) if value is not None else default


def load_settings(path: Optional[Path] = None) -> Dict[str, Any]:
    target = path or SETTINGS_FILE
    data: Dict[str, Any] = {}
    if target.exists():
        try:
            data = json.loads(target.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("settings root must be an object")
        except Exception as exc:  # noqa: BLE001
            logger.warning("Ignoring unreadable settings file %s: %s", target, exc)
            data = {}

    settings = dict(DEFAULT_SETTINGS)
    for key, value in data.items():
        if key in DEFAULT_SETTINGS:
            settings[key] = _coerce(key, value)
        else:
            settings[key] = value
    return settings


def save_settings(settings: Dict[str, Any], path: Optional[Path] = None) -> Dict[str, Any]:
    target = path or SETTINGS_FILE
    merged = dict(DEFAULT_SETTINGS)
    for key, value in settings.items():
        merged[key] = _coerce(key, value) if key in DEFAULT_SETTINGS else value
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(merged, indent=2, sort_keys=True), encoding="utf-8")
    return merged


def reset_settings_to_defaults(path: Optional[Path] = None) -> Dict[str, Any]:
    return save_settings(dict(DEFAULT_SETTINGS), path)
