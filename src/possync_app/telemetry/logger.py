from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, TextIO

from .events import TelemetryEvent

logger = logging.getLogger(__name__)


class TelemetryLogger:
    """Appends events as JSON lines, one file per UTC day.

    Emitting never raises on I/O trouble: a full disk must not stop a sale
    from being queued or a drain from finishing.
    """

    def __init__(
        self,
        *,
        app_name: str,
        enabled: bool | None = None,
        log_dir: str | Path | None = None,
        log_file: str | Path | None = None,
        stdout_sink: bool = False,
        stdout_stream: TextIO | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.app_name = app_name
        self.enabled = enabled if enabled is not None else _env_telemetry_enabled()
        self.log_dir = Path(log_dir) if log_dir else Path("artifacts") / "telemetry"
        self.log_file = Path(log_file) if log_file else None
        self.stdout_sink = stdout_sink
        self.stdout_stream = stdout_stream
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def current_file(self) -> Path:
        if self.log_file is not None:
            return self.log_file
        return self.log_dir / f"{self.app_name}-{self.clock():%Y%m%d}.jsonl"

    def emit(self, event: TelemetryEvent) -> bool:
        if not self.enabled:
            return False

        payload = event.to_dict()
        payload["app_name"] = self.app_name
        line = json.dumps(payload, sort_keys=True, default=str)

        target = self.current_file()
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("a", encoding="utf-8") as fp:
                fp.write(f"{line}\n")
        except OSError as exc:
            logger.warning("Dropping telemetry event %s: %s", event.name, exc)
            return False

        if self.stdout_sink:
            stream = self.stdout_stream or sys.stdout
            stream.write(f"{line}\n")
            stream.flush()
        return True


def _env_telemetry_enabled() -> bool:
    value = os.getenv("POSSYNC_TELEMETRY_ENABLED", "0").strip().lower()
    return value in {"1", "true", "yes", "on"}
