from __future__ import annotations

from dataclasses import dataclass

from .error_mapper import FailureKind, failure_kind
from .exceptions import ApiError, InsufficientStockError, TransportError

_FALLBACK_MESSAGES = {
    FailureKind.UNAUTHORIZED: "Your session is no longer valid. Sign in again",
    FailureKind.REJECTED: "The server refused the request",
    FailureKind.TRANSIENT: "The server could not be reached",
}


@dataclass(frozen=True)
class UserFacingError:
    message: str
    details: str | None = None
    trace_id: str | None = None
    retryable: bool = False

    @property
    def technical_details(self) -> str | None:
        return self.details or None


def to_user_facing_error(exc: ApiError) -> UserFacingError:
    """Short operator-facing text for an API failure; codes stay in ``details``."""
    kind = failure_kind(exc)
    if isinstance(exc, TransportError):
        primary = "No connection to the server"
    elif isinstance(exc, InsufficientStockError):
        primary = f"Not enough stock: {exc.message}"
    else:
        primary = exc.message.strip()
        if not primary or primary == "Request failed":
            primary = _FALLBACK_MESSAGES[kind]
    details = exc.code if exc.status_code == 0 else f"{exc.code} (HTTP {exc.status_code})"
    if exc.details:
        details = f"{details}: {exc.details}"
    return UserFacingError(
        message=primary,
        details=details,
        trace_id=exc.trace_id,
        retryable=kind is FailureKind.TRANSIENT,
    )
