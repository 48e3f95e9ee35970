from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator, model_validator
from pydantic.alias_generators import to_camel

# Amounts travel as JSON numbers; the tolerance absorbs float round trips.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]
_TOLERANCE = Decimal("0.005")


class PaymentMethod(str, Enum):
    CASH = "cash"
    ONLINE = "online"


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class SaleLineItem(_WireModel):
    id: str
    name: str
    quantity: int = Field(gt=0)
    unit_price: Money = Field(ge=0)
    line_total: Money

    @model_validator(mode="after")
    def _check_line_total(self) -> "SaleLineItem":
        if abs(self.line_total - self.unit_price * self.quantity) > _TOLERANCE:
            raise ValueError("lineTotal must equal quantity * unitPrice")
        return self


class CustomerInfo(_WireModel):
    name: str = ""
    phone: str = ""
    email: str = ""
    address: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.name.strip()) and bool(self.phone.strip())


class SaleRecord(_WireModel):
    """A finalized sale; the durable unit of work for the pending queue."""

    bill_id: str = Field(min_length=1)
    items: tuple[SaleLineItem, ...] = Field(min_length=1)
    customer: CustomerInfo
    subtotal: Money
    final_amount: Money
    notes: str = ""
    timestamp: datetime
    payment_method: PaymentMethod
    user_id: str

    @model_validator(mode="after")
    def _check_totals(self) -> "SaleRecord":
        if not self.customer.is_complete:
            raise ValueError("customer name and phone are required")
        computed = sum((item.line_total for item in self.items), Decimal("0"))
        if abs(computed - self.subtotal) > _TOLERANCE:
            raise ValueError("subtotal must equal the sum of line totals")
        if abs(self.final_amount - self.subtotal) > _TOLERANCE:
            raise ValueError("finalAmount must equal subtotal")
        return self

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class SaleSubmitResponse(BaseModel):
    model_config = ConfigDict(extra="allow", alias_generator=to_camel, populate_by_name=True)

    sale_id: str | None = None
    bill_id: str | None = None
    idempotent: bool = False

    @field_validator("sale_id", "bill_id", mode="before")
    @classmethod
    def _stringify_ids(cls, value: object) -> object:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class QuarantinedSale(BaseModel):
    record: SaleRecord
    error_code: str
    error_message: str
    failed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    attempts: int = 1
