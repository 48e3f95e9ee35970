from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping


class TelemetryCategory(str, Enum):
    AUTH = "auth"
    CONNECTIVITY = "connectivity"
    CHECKOUT = "checkout"
    SYNC = "sync"
    ERROR = "error"


TELEMETRY_CATEGORIES = frozenset(category.value for category in TelemetryCategory)

# customer details and credentials never leave the terminal through telemetry
_FORBIDDEN_CONTEXT_KEYS = frozenset(
    {
        "name",
        "customer",
        "customer_name",
        "email",
        "phone",
        "customer_phone",
        "address",
        "notes",
        "token",
        "access_token",
        "authorization",
        "apikey",
    }
)


@dataclass(frozen=True)
class TelemetryEvent:
    category: str
    name: str
    module: str
    action: str
    timestamp_utc: str
    bill_id: str | None = None
    trace_id: str | None = None
    duration_ms: int | None = None
    success: bool | None = None
    error_code: str | None = None
    context: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


def _illegal_keys(context: Mapping[str, Any], prefix: str = "") -> list[str]:
    found: list[str] = []
    for key, value in context.items():
        path = f"{prefix}{key}"
        if key.lower() in _FORBIDDEN_CONTEXT_KEYS:
            found.append(path)
        if isinstance(value, Mapping):
            found.extend(_illegal_keys(value, prefix=f"{path}."))
    return found


def build_event(
    *,
    category: TelemetryCategory | str,
    name: str,
    module: str,
    action: str,
    bill_id: str | None = None,
    trace_id: str | None = None,
    duration_ms: int | None = None,
    success: bool | None = None,
    error_code: str | None = None,
    context: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> TelemetryEvent:
    try:
        resolved = TelemetryCategory(category)
    except ValueError:
        raise ValueError(f"Unsupported telemetry category: {category}") from None
    illegal = sorted(_illegal_keys(context or {}))
    if illegal:
        raise ValueError(f"PII-like keys are forbidden in telemetry context: {illegal}")
    return TelemetryEvent(
        category=resolved.value,
        name=name,
        module=module,
        action=action,
        timestamp_utc=(now or datetime.now(timezone.utc)).isoformat(),
        bill_id=bill_id,
        trace_id=trace_id,
        duration_ms=duration_ms,
        success=success,
        error_code=error_code,
        context=context,
    )
