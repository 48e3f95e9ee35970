from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class UserResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    email: str | None = None
    role: UserRole | None = None

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN


class SessionData(BaseModel):
    access_token: str
    user: UserResponse | None = None
    env_name: str | None = None
    expired: bool = False


class InventoryItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    item_name: str
    category: str | None = None
    quantity: int = Field(ge=0)
    unit_price: Decimal
    user_id: str | None = None


class SaleHistoryRow(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    created_at: datetime | None = None
    customer_name: str | None = None
    customer_phone: str | None = None
    total_amount: Decimal | None = None
    items: list[Any] = Field(default_factory=list)
    bill_data: dict[str, Any] | None = None
    user_id: str | None = None

    @property
    def bill_id(self) -> str | None:
        if not self.bill_data:
            return None
        raw = self.bill_data.get("billId")
        return str(raw) if raw else None
