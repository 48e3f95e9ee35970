"""In-memory cart and checkout flow.

BROWSING -> CART -> READY_FOR_PAYMENT -> COMPLETED, and back to BROWSING on
``start_new_sale``. Stock checks run against the last inventory snapshot the
caller supplied; nothing here locks inventory upstream.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Callable, Iterable, Mapping

from possync_sdk import BillIdFactory, CustomerInfo, InventoryItem, PaymentMethod, SaleLineItem, SaleRecord


class CheckoutPhase(str, Enum):
    BROWSING = "browsing"
    CART = "cart"
    READY_FOR_PAYMENT = "ready_for_payment"
    COMPLETED = "completed"


class CheckoutError(ValueError):
    code = "CHECKOUT_ERROR"

    def __init__(self, message: str, **context: object) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class UnknownItemError(CheckoutError):
    code = "UNKNOWN_ITEM"


class OutOfStockError(CheckoutError):
    code = "OUT_OF_STOCK"


class StockLimitError(CheckoutError):
    code = "STOCK_LIMIT"


class EmptyCartError(CheckoutError):
    code = "EMPTY_CART"


class MissingCustomerInfoError(CheckoutError):
    code = "CUSTOMER_INFO_MISSING"


class InvalidTransitionError(CheckoutError):
    code = "INVALID_TRANSITION"


class MissingOperatorError(CheckoutError):
    code = "OPERATOR_MISSING"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CartItem:
    item: InventoryItem
    cart_quantity: int

    @property
    def line_total(self) -> Decimal:
        return self.item.unit_price * self.cart_quantity

    def to_line(self) -> SaleLineItem:
        return SaleLineItem(
            id=self.item.id,
            name=self.item.item_name,
            quantity=self.cart_quantity,
            unit_price=self.item.unit_price,
            line_total=self.line_total,
        )


@dataclass
class CheckoutStateMachine:
    user_id: str
    bill_ids: BillIdFactory = field(default_factory=BillIdFactory)
    clock: Callable[[], datetime] = _utcnow
    phase: CheckoutPhase = CheckoutPhase.BROWSING
    cart: list[CartItem] = field(default_factory=list)
    customer: CustomerInfo = field(default_factory=CustomerInfo)
    notes: str = ""
    completed: SaleRecord | None = None
    _stock: dict[str, InventoryItem] = field(default_factory=dict)

    def load_inventory(self, items: Iterable[InventoryItem]) -> None:
        self._stock = {item.id: item for item in items}

    @property
    def inventory(self) -> Mapping[str, InventoryItem]:
        return self._stock

    @property
    def subtotal(self) -> Decimal:
        return sum((line.line_total for line in self.cart), Decimal("0"))

    @property
    def final_amount(self) -> Decimal:
        return self.subtotal

    def quantity_in_cart(self, item_id: str) -> int:
        line = self._find(item_id)
        return line.cart_quantity if line else 0

    def add_item(self, item_id: str, quantity: int = 1) -> CartItem:
        self._require_editable()
        if quantity <= 0:
            raise CheckoutError("quantity must be greater than 0", item_id=item_id)
        item = self._item(item_id)
        line = self._find(item_id)
        in_cart = line.cart_quantity if line else 0
        available = item.quantity - in_cart
        if available <= 0:
            raise OutOfStockError(f"No more units of {item.item_name} available.", item_id=item_id, stock=item.quantity)
        if quantity > available:
            raise StockLimitError(
                f"Only {item.quantity} units of {item.item_name} available.",
                item_id=item_id,
                stock=item.quantity,
                in_cart=in_cart,
            )
        if line is None:
            line = CartItem(item=item, cart_quantity=quantity)
            self.cart.append(line)
        else:
            line.cart_quantity += quantity
        self.phase = CheckoutPhase.CART
        return line

    def update_quantity(self, item_id: str, quantity: int) -> CartItem | None:
        self._require_editable()
        line = self._find(item_id)
        if line is None:
            raise UnknownItemError(f"{item_id} is not in the cart.", item_id=item_id)
        if quantity <= 0:
            self.remove_item(item_id)
            return None
        stock = self._stock.get(item_id, line.item).quantity
        if quantity > stock:
            raise StockLimitError(f"Only {stock} units available.", item_id=item_id, stock=stock)
        line.cart_quantity = quantity
        self._touch()
        return line

    def remove_item(self, item_id: str) -> None:
        self._require_editable()
        self.cart = [line for line in self.cart if line.item.id != item_id]
        if not self.cart:
            self.phase = CheckoutPhase.BROWSING
        else:
            self._touch()

    def set_customer(self, *, name: str = "", phone: str = "", email: str = "", address: str = "") -> CustomerInfo:
        self._require_editable()
        self.customer = CustomerInfo(
            name=name.strip(),
            phone=phone.strip(),
            email=email.strip(),
            address=address.strip(),
        )
        self._touch()
        return self.customer

    def set_notes(self, notes: str) -> None:
        self._require_editable()
        self.notes = notes
        self._touch()

    def proceed_to_payment(self) -> None:
        if self.phase is CheckoutPhase.COMPLETED:
            raise InvalidTransitionError("Sale already completed; start a new sale.")
        if not self.cart:
            raise EmptyCartError("Please add items first.")
        if not self.customer.is_complete:
            raise MissingCustomerInfoError("Please enter customer name and phone.")
        self._require_operator()
        self.phase = CheckoutPhase.READY_FOR_PAYMENT

    def back_to_cart(self) -> None:
        if self.phase is not CheckoutPhase.READY_FOR_PAYMENT:
            raise InvalidTransitionError("Not waiting for payment.")
        self.phase = CheckoutPhase.CART

    def complete(self, payment_method: PaymentMethod | str) -> SaleRecord:
        if self.phase is not CheckoutPhase.READY_FOR_PAYMENT:
            raise InvalidTransitionError("Choose a payment method only after entering customer details.")
        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise CheckoutError(f"Unsupported payment method: {payment_method}") from None
        self._require_operator()
        record = SaleRecord(
            bill_id=self.bill_ids.new_bill_id(),
            items=tuple(line.to_line() for line in self.cart),
            customer=self.customer,
            subtotal=self.subtotal,
            final_amount=self.final_amount,
            notes=self.notes,
            timestamp=self.clock(),
            payment_method=method,
            user_id=self.user_id,
        )
        self.completed = record
        self.phase = CheckoutPhase.COMPLETED
        return record

    def start_new_sale(self) -> None:
        self.cart = []
        self.customer = CustomerInfo()
        self.notes = ""
        self.completed = None
        self.phase = CheckoutPhase.BROWSING

    def _require_editable(self) -> None:
        if self.phase is CheckoutPhase.COMPLETED:
            raise InvalidTransitionError("Sale already completed; start a new sale.")

    def _require_operator(self) -> None:
        if not self.user_id:
            raise MissingOperatorError("Sign in before completing a sale.")

    def _touch(self) -> None:
        # any edit while waiting for payment sends the operator back to the cart
        if self.phase is CheckoutPhase.READY_FOR_PAYMENT:
            self.phase = CheckoutPhase.CART

    def _item(self, item_id: str) -> InventoryItem:
        item = self._stock.get(item_id)
        if item is None:
            raise UnknownItemError(f"Item {item_id} is not in the inventory.", item_id=item_id)
        return item

    def _find(self, item_id: str) -> CartItem | None:
        for line in self.cart:
            if line.item.id == item_id:
                return line
        return None
