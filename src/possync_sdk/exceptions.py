from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ApiError(Exception):
    """A request to the hosted backend did not succeed.

    ``status_code`` is 0 when no HTTP response was received at all.
    """

    code: str
    message: str
    details: object | None
    trace_id: str | None
    status_code: int
    raw_payload: object | None = None

    def __str__(self) -> str:
        suffix = f" (trace {self.trace_id})" if self.trace_id else ""
        return f"{self.code} [HTTP {self.status_code}]: {self.message}{suffix}"


class UnauthorizedError(ApiError):
    pass


class AuthError(UnauthorizedError):
    """The access token is missing, expired or revoked (401)."""


class ForbiddenError(ApiError):
    pass


class PermissionError(ForbiddenError):
    """A row-level policy refused the operator (403)."""


class NotFoundError(ApiError):
    pass


class ValidationError(ApiError):
    """The backend refused the payload itself; resending it unchanged will not help."""


class InsufficientStockError(ValidationError):
    pass


class ConflictError(ApiError):
    """409. For sales this usually means the bill id was already recorded."""


class RateLimitError(ApiError):
    pass


class ServerError(ApiError):
    pass


class TransportError(ApiError):
    """No HTTP response: DNS, refused connection, timeout or TLS failure."""


class PendingStoreError(RuntimeError):
    """The pending-sale queue on this device could not be written."""
