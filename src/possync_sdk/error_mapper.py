from __future__ import annotations

from enum import Enum
from typing import Mapping

from .exceptions import (
    ApiError,
    AuthError,
    ConflictError,
    ForbiddenError,
    InsufficientStockError,
    NotFoundError,
    PermissionError,
    RateLimitError,
    ServerError,
    TransportError,
    UnauthorizedError,
    ValidationError,
)

DUPLICATE_SALE_CODES = frozenset({"DUPLICATE_BILL", "SALE_ALREADY_RECORDED"})
INSUFFICIENT_STOCK_CODES = frozenset({"INSUFFICIENT_STOCK", "OUT_OF_STOCK"})


class FailureKind(str, Enum):
    TRANSIENT = "transient"
    REJECTED = "rejected"
    UNAUTHORIZED = "unauthorized"


def map_error(status_code: int, payload: Mapping[str, object] | None, trace_id: str | None) -> ApiError:
    payload = payload or {}
    code = str(payload.get("code") or payload.get("error") or "HTTP_ERROR")
    message = str(payload.get("message") or payload.get("msg") or "Request failed")
    details = payload.get("details")
    payload_trace_id = payload.get("trace_id")
    resolved_trace_id = str(payload_trace_id) if payload_trace_id is not None else trace_id
    mapped: type[ApiError]
    if status_code in {401}:
        mapped = AuthError
    elif status_code in {403}:
        mapped = PermissionError
    elif status_code in {404}:
        mapped = NotFoundError
    elif status_code in {400, 422}:
        mapped = InsufficientStockError if code.upper() in INSUFFICIENT_STOCK_CODES else ValidationError
    elif status_code == 409:
        mapped = ConflictError
    elif status_code == 429:
        mapped = RateLimitError
    elif status_code >= 500:
        mapped = ServerError
    else:
        mapped = ApiError
    return mapped(
        code=code,
        message=message,
        details=details,
        trace_id=resolved_trace_id,
        status_code=status_code,
        raw_payload=dict(payload),
    )


def is_duplicate_sale(error: Exception) -> bool:
    """A conflict telling us the bill was already durably recorded."""
    return isinstance(error, ConflictError) and error.code.upper() in DUPLICATE_SALE_CODES


def failure_kind(error: Exception) -> FailureKind:
    if isinstance(error, (UnauthorizedError, ForbiddenError)):
        return FailureKind.UNAUTHORIZED
    if isinstance(error, (TransportError, ServerError, RateLimitError)):
        return FailureKind.TRANSIENT
    if isinstance(error, (ValidationError, NotFoundError, ConflictError)):
        return FailureKind.REJECTED
    if isinstance(error, ApiError):
        return FailureKind.REJECTED if 400 <= error.status_code < 500 else FailureKind.TRANSIENT
    # anything raised before the request was answered is treated as retryable
    return FailureKind.TRANSIENT
