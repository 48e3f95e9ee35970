from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable

from possync_sdk import PaymentMethod, PendingStoreError

from ...app.state import ConnectivityState
from ...services.checkout_service import (
    CheckoutError,
    CheckoutPhase,
    CheckoutStateMachine,
    EmptyCartError,
    MissingCustomerInfoError,
    MissingOperatorError,
    OutOfStockError,
    StockLimitError,
    UnknownItemError,
)
from ...services.inventory_service import InventoryService, InventoryServiceError
from ...services.reconciliation import ReconciliationEngine
from ...services.sales_history_service import SalesHistoryError, SalesHistoryService
from ...telemetry import TelemetryLogger, build_event
from ..shared.notification_center import NoticeTitle, NotificationCenter
from .components.cart_table import CartTable

logger = logging.getLogger(__name__)

_TITLE_BY_ERROR: tuple[tuple[type[CheckoutError], str], ...] = (
    (OutOfStockError, NoticeTitle.OUT_OF_STOCK),
    (StockLimitError, NoticeTitle.STOCK_LIMIT),
    (UnknownItemError, NoticeTitle.UNKNOWN_ITEM),
    (EmptyCartError, NoticeTitle.EMPTY_CART),
    (MissingCustomerInfoError, NoticeTitle.CUSTOMER_MISSING),
    (MissingOperatorError, NoticeTitle.OPERATOR_MISSING),
)


@dataclass
class PosCheckoutView:
    machine: CheckoutStateMachine
    engine: ReconciliationEngine
    state: ConnectivityState
    notices: NotificationCenter
    inventory: InventoryService | None = None
    history_service: SalesHistoryService | None = None
    telemetry: TelemetryLogger | None = None
    error_message: str | None = None
    trace_id: str | None = None
    is_submitting: bool = False

    async def refresh_inventory(self) -> dict[str, Any]:
        if self.inventory is None:
            return {"ok": False, "error": "Inventory is not available in this session"}
        try:
            items = await asyncio.to_thread(self.inventory.refresh)
        except InventoryServiceError as exc:
            # keep selling from the last snapshot
            self.error_message = exc.message
            self.trace_id = exc.trace_id
            self.notices.push(
                level="warning",
                title=NoticeTitle.INVENTORY_UNAVAILABLE,
                message=f"{exc.message}. Showing the last loaded stock levels.",
                details={"trace_id": exc.trace_id},
            )
            return {"ok": False, "error": exc.message, "trace_id": exc.trace_id}
        self.machine.load_inventory(items)
        self.error_message = None
        return {"ok": True, "count": len(items)}

    def search(self, term: str) -> list[dict[str, Any]]:
        items = self.inventory.search(term) if self.inventory else list(self.machine.inventory.values())
        return [
            {
                "id": item.id,
                "name": item.item_name,
                "category": item.category,
                "stock": item.quantity,
                "available": item.quantity - self.machine.quantity_in_cart(item.id),
                "unit_price": item.unit_price,
            }
            for item in items
        ]

    def add_item(self, item_id: str, quantity: int = 1) -> dict[str, Any]:
        return self._apply("add_item", lambda: self.machine.add_item(item_id, quantity))

    def update_quantity(self, item_id: str, quantity: int) -> dict[str, Any]:
        return self._apply("update_quantity", lambda: self.machine.update_quantity(item_id, quantity))

    def remove_item(self, item_id: str) -> dict[str, Any]:
        return self._apply("remove_item", lambda: self.machine.remove_item(item_id))

    def set_customer(self, *, name: str = "", phone: str = "", email: str = "", address: str = "") -> dict[str, Any]:
        return self._apply(
            "set_customer",
            lambda: self.machine.set_customer(name=name, phone=phone, email=email, address=address),
        )

    def set_notes(self, notes: str) -> dict[str, Any]:
        return self._apply("set_notes", lambda: self.machine.set_notes(notes))

    def proceed_to_payment(self) -> dict[str, Any]:
        return self._apply("proceed_to_payment", self.machine.proceed_to_payment)

    def back_to_cart(self) -> dict[str, Any]:
        return self._apply("back_to_cart", self.machine.back_to_cart)

    async def complete_sale(self, payment_method: PaymentMethod | str) -> dict[str, Any]:
        """Finish the sale and queue it locally before returning.

        When online the record is also handed to the background worker; the
        result never waits for the server.
        """
        if self.is_submitting:
            return {"ok": False, "error": "Sale completion already in progress"}
        try:
            record = self.machine.complete(payment_method)
        except CheckoutError as exc:
            return self._reject("complete_sale", exc)
        submit_now = self.state.online and not self.state.session_expired
        self.is_submitting = True
        try:
            await self.engine.record_sale(record, submit_now=submit_now)
        except PendingStoreError as exc:
            logger.exception("Could not queue sale %s", record.bill_id)
            # nothing was persisted; let the operator try again
            self.machine.completed = None
            self.machine.phase = CheckoutPhase.READY_FOR_PAYMENT
            self.error_message = str(exc)
            self.notices.push(
                level="error",
                title=NoticeTitle.STORAGE_FAILED,
                message="The sale could not be saved on this device. Please try again.",
                details={"bill_id": record.bill_id},
            )
            return {"ok": False, "error": str(exc), "code": "STORAGE_FAILED"}
        finally:
            self.is_submitting = False

        if submit_now:
            self.notices.push(
                level="success",
                title=NoticeTitle.SALE_COMPLETED,
                message=f"Sale {record.bill_id} completed.",
                details={"bill_id": record.bill_id},
            )
        else:
            self.notices.push(
                level="info",
                title=NoticeTitle.SAVED_OFFLINE,
                message="Sale saved locally. It will sync when you're back online.",
                details={"bill_id": record.bill_id},
            )
        self._emit_checkout(record.bill_id, len(record.items), record.payment_method.value, submit_now)
        self.error_message = None
        return {
            "ok": True,
            "bill_id": record.bill_id,
            "final_amount": record.final_amount,
            "payment_method": record.payment_method.value,
            "submitted": submit_now,
            "receipt": record.to_payload(),
        }

    def start_new_sale(self) -> dict[str, Any]:
        self.machine.start_new_sale()
        self.error_message = None
        return {"ok": True, "phase": self.machine.phase.value}

    async def history(self, *, limit: int | None = None) -> dict[str, Any]:
        if self.history_service is None:
            return {"ok": False, "error": "Sales history is not available in this session"}
        try:
            rows = await asyncio.to_thread(self.history_service.list_sales, limit=limit)
        except SalesHistoryError as exc:
            self.notices.push(
                level="warning",
                title=NoticeTitle.HISTORY_UNAVAILABLE,
                message=exc.message,
                details={"trace_id": exc.trace_id},
            )
            return {"ok": False, "error": exc.message, "trace_id": exc.trace_id}
        return {"ok": True, "rows": [row.model_dump(mode="json") for row in rows]}

    async def quarantined(self) -> list[dict[str, Any]]:
        entries = await asyncio.to_thread(self.engine.store.list_quarantined)
        return [
            {
                "bill_id": entry.record.bill_id,
                "final_amount": entry.record.final_amount,
                "error_code": entry.error_code,
                "error_message": entry.error_message,
                "failed_at": entry.failed_at.isoformat(),
                "attempts": entry.attempts,
            }
            for entry in entries
        ]

    def render(self) -> dict[str, Any]:
        return {
            "phase": self.machine.phase.value,
            "cart": CartTable(self.machine.cart).render(),
            "customer": self.machine.customer.model_dump(),
            "notes": self.machine.notes,
            "final_amount": self.machine.final_amount,
            "online": self.state.online,
            "syncing": self.state.syncing,
            "pending_count": self.state.pending_count,
            "quarantined_count": self.state.quarantined_count,
            "session_expired": self.state.session_expired,
            "error": self.error_message,
        }

    def _apply(self, action: str, operation: Callable[[], Any]) -> dict[str, Any]:
        try:
            operation()
        except CheckoutError as exc:
            return self._reject(action, exc)
        self.error_message = None
        return {"ok": True, "phase": self.machine.phase.value, "cart": CartTable(self.machine.cart).render()}

    def _reject(self, action: str, exc: CheckoutError) -> dict[str, Any]:
        title = next((title for kind, title in _TITLE_BY_ERROR if isinstance(exc, kind)), NoticeTitle.INVALID_ACTION)
        self.error_message = exc.message
        self.notices.push(level="warning", title=title, message=exc.message, details={"code": exc.code, **exc.context})
        logger.info("Checkout action %s refused: %s", action, exc.code)
        return {"ok": False, "error": exc.message, "code": exc.code}

    def _emit_checkout(self, bill_id: str, line_count: int, payment_method: str, submitted: bool) -> None:
        if self.telemetry is None:
            return
        self.telemetry.emit(
            build_event(
                category="checkout",
                name="sale_completed",
                module="pos",
                action="complete",
                bill_id=bill_id,
                success=True,
                context={
                    "line_count": line_count,
                    "payment_method": payment_method,
                    "submitted": submitted,
                },
            )
        )
