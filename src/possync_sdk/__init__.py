from .auth_store import AuthStore
from .config import ClientConfig, ConfigError, load_config
from .error_mapper import FailureKind, failure_kind, is_duplicate_sale, map_error
from .exceptions import (
    ApiError,
    ConflictError,
    ForbiddenError,
    InsufficientStockError,
    NotFoundError,
    PendingStoreError,
    ServerError,
    TransportError,
    UnauthorizedError,
    ValidationError,
)
from .http_client import HttpClient
from .idempotency import BillIdFactory, new_bill_id
from .models import InventoryItem, SaleHistoryRow, SessionData, UserResponse, UserRole
from .models_sales import (
    CustomerInfo,
    PaymentMethod,
    QuarantinedSale,
    SaleLineItem,
    SaleRecord,
    SaleSubmitResponse,
)
from .pending_store import PendingSaleStore
from .session import ApiSession
from .tracing import TraceContext
from .ui_errors import UserFacingError, to_user_facing_error

__all__ = [
    "ApiError",
    "ApiSession",
    "AuthStore",
    "BillIdFactory",
    "ClientConfig",
    "ConfigError",
    "ConflictError",
    "CustomerInfo",
    "FailureKind",
    "ForbiddenError",
    "HttpClient",
    "InsufficientStockError",
    "InventoryItem",
    "NotFoundError",
    "PaymentMethod",
    "PendingSaleStore",
    "PendingStoreError",
    "QuarantinedSale",
    "SaleHistoryRow",
    "SaleLineItem",
    "SaleRecord",
    "SaleSubmitResponse",
    "ServerError",
    "SessionData",
    "TraceContext",
    "TransportError",
    "UnauthorizedError",
    "UserFacingError",
    "UserResponse",
    "UserRole",
    "ValidationError",
    "failure_kind",
    "is_duplicate_sale",
    "load_config",
    "map_error",
    "new_bill_id",
    "to_user_facing_error",
]
