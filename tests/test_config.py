from __future__ import annotations

import json
import sys
from pathlib import Path

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from audit import AuditLogger  # noqa: E402
from config import DEFAULT_SETTINGS, load_settings, reset_settings_to_defaults, save_settings  # noqa: E402


def test_missing_file_gives_defaults(tmp_path):
    assert load_settings(tmp_path / "settings.json") == DEFAULT_SETTINGS


def test_saved_values_are_coerced_and_merged(tmp_path):
    path = tmp_path / "settings.json"
    saved = save_settings({"save_debounce_seconds": "1.5", "cache_validity_minutes": -4, "theme": "dark"}, path)
    assert saved["save_debounce_seconds"] == 1.5
    assert saved["cache_validity_minutes"] == DEFAULT_SETTINGS["cache_validity_minutes"]
    loaded = load_settings(path)
    assert loaded["theme"] == "dark"
    assert loaded["api_base_url"] == DEFAULT_SETTINGS["api_base_url"]


def test_malformed_file_falls_back_to_defaults(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("[1, 2", encoding="utf-8")
    assert load_settings(path) == DEFAULT_SETTINGS
    path.write_text(json.dumps(["not", "an", "object"]), encoding="utf-8")
    assert load_settings(path) == DEFAULT_SETTINGS


def test_reset_rewrites_defaults(tmp_path):
    path = tmp_path / "settings.json"
    save_settings({"request_timeout_seconds": 3}, path)
    assert reset_settings_to_defaults(path)["request_timeout_seconds"] == DEFAULT_SETTINGS["request_timeout_seconds"]
    assert load_settings(path) == DEFAULT_SETTINGS


def test_audit_logger_appends_json_lines(tmp_path):
    logger = AuditLogger(tmp_path / "logs" / "audit.log")
    logger.log("assign", "setup-1", day="monday", details={"id": "p1"})
    logger.log("save", None)
    first, second = logger.entries()
    assert first["event"] == "assign"
    assert first["details"] == {"id": "p1"}
    assert "day" not in second
