from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)

NoticeListener = Callable[[dict[str, Any]], None]

_LOG_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass
class NotificationCenter:
    """Operator-facing transient notices (toasts)."""

    messages: list[dict[str, Any]] = field(default_factory=list)
    listeners: list[NoticeListener] = field(default_factory=list)

    def push(self, *, level: str, title: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
        payload = {
            "level": level,
            "title": title,
            "message": message,
            "details": details or {},
        }
        self.messages.append(payload)
        logger.log(_LOG_LEVELS.get(level, logging.INFO), "%s: %s", title, message)
        for listener in list(self.listeners):
            listener(payload)
        return payload

    def subscribe(self, listener: NoticeListener) -> None:
        self.listeners.append(listener)

    def titles(self) -> list[str]:
        return [message["title"] for message in self.messages]

    def clear(self) -> None:
        self.messages.clear()

    def render(self) -> dict[str, Any]:
        return {"count": len(self.messages), "messages": list(self.messages)}


class NoticeTitle:
    OFFLINE = "You are offline"
    ONLINE = "You are back online!"
    SYNC_STARTED = "Syncing..."
    SYNC_COMPLETE = "Sync Complete"
    SYNC_INCOMPLETE = "Sync Incomplete"
    SALE_REJECTED = "Sale Rejected"
    SESSION_EXPIRED = "Session Expired"
    OUT_OF_STOCK = "Out of Stock"
    STOCK_LIMIT = "Stock Limit Reached"
    UNKNOWN_ITEM = "Item Not Found"
    EMPTY_CART = "Empty Cart"
    CUSTOMER_MISSING = "Customer Info Missing"
    OPERATOR_MISSING = "Sign-In Required"
    INVALID_ACTION = "Action Not Allowed"
    SAVED_OFFLINE = "Saved Offline"
    SALE_COMPLETED = "Sale Completed"
    TRANSACTION_FAILED = "Transaction Failed"
    INVENTORY_UNAVAILABLE = "Inventory Unavailable"
    HISTORY_UNAVAILABLE = "Sales History Unavailable"
    STORAGE_FAILED = "Could Not Save Sale"
