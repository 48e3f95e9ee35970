from __future__ import annotations

import io
import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from possync_app.telemetry import TelemetryLogger, build_event


def test_build_event_rejects_customer_pii() -> None:
    for key in ("customer_name", "phone", "Email", "address", "notes"):
        with pytest.raises(ValueError, match="PII"):
            build_event(category="checkout", name="sale_completed", module="pos", action="complete", context={key: "x"})


def test_build_event_rejects_unknown_category() -> None:
    with pytest.raises(ValueError):
        build_event(category="navigation", name="screen_view", module="pos", action="open")


def test_logger_writes_json_lines(tmp_path: Path) -> None:
    stream = io.StringIO()
    log_file = tmp_path / "events.jsonl"
    logger = TelemetryLogger(app_name="possync", enabled=True, log_file=log_file, stdout_sink=True, stdout_stream=stream)

    assert logger.emit(build_event(category="sync", name="drain_finished", module="reconciliation", action="drain", success=True))

    payload = json.loads(log_file.read_text(encoding="utf-8"))
    assert payload["app_name"] == "possync"
    assert payload["category"] == "sync"
    assert "trace_id" not in payload
    assert json.loads(stream.getvalue()) == payload


def test_logger_disabled_by_default(tmp_path: Path) -> None:
    log_file = tmp_path / "events.jsonl"
    logger = TelemetryLogger(app_name="possync", log_file=log_file)

    assert logger.emit(build_event(category="auth", name="session_changed", module="session", action="sign_in")) is False
    assert not log_file.exists()


def test_logger_enabled_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("POSSYNC_TELEMETRY_ENABLED", "true")
    assert TelemetryLogger(app_name="possync", log_file=tmp_path / "x.jsonl").enabled is True


def test_build_event_rejects_nested_pii() -> None:
    with pytest.raises(ValueError, match="receipt.customer_phone"):
        build_event(category="sync", name="x", module="m", action="a", context={"receipt": {"customer_phone": "1"}})


def test_logger_writes_one_file_per_day(tmp_path: Path) -> None:
    logger = TelemetryLogger(
        app_name="possync",
        enabled=True,
        log_dir=tmp_path,
        clock=lambda: datetime(2024, 3, 5, 23, 59, tzinfo=timezone.utc),
    )

    logger.emit(build_event(category="checkout", name="sale_completed", module="pos", action="complete", bill_id="INV-1"))

    written = json.loads((tmp_path / "possync-20240305.jsonl").read_text(encoding="utf-8"))
    assert written["bill_id"] == "INV-1"


def test_logger_swallows_disk_errors(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    logger = TelemetryLogger(app_name="possync", enabled=True, log_file=blocker / "events.jsonl")

    assert logger.emit(build_event(category="error", name="x", module="m", action="a")) is False
