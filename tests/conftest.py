from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable

import pytest

from possync_app.services.submission_service import SubmitOutcome, SubmitStatus
from possync_sdk import CustomerInfo, InventoryItem, PaymentMethod, SaleLineItem, SaleRecord

BASE_URL = "https://pos.example.com"


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for key in (
        "POSSYNC_ENV",
        "POSSYNC_API_BASE_URL_DEV",
        "POSSYNC_API_KEY",
        "POSSYNC_HEALTH_PATH",
        "POSSYNC_QUARANTINE_REJECTED",
        "POSSYNC_TELEMETRY_ENABLED",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("POSSYNC_API_BASE_URL", BASE_URL)
    monkeypatch.setenv("POSSYNC_RETRIES", "0")
    monkeypatch.setenv("POSSYNC_RETRY_BACKOFF_SECONDS", "0")
    monkeypatch.setenv("POSSYNC_DATA_DIR", str(tmp_path / "data"))


@pytest.fixture
def make_record() -> Callable[..., SaleRecord]:
    def _make(bill_id: str = "INV-1", quantity: int = 2, unit_price: str = "50", method: str = "cash") -> SaleRecord:
        price = Decimal(unit_price)
        total = price * quantity
        return SaleRecord(
            bill_id=bill_id,
            items=(
                SaleLineItem(id="rice", name="Rice", quantity=quantity, unit_price=price, line_total=total),
            ),
            customer=CustomerInfo(name="A", phone="123"),
            subtotal=total,
            final_amount=total,
            timestamp=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
            payment_method=PaymentMethod(method),
            user_id="user-1",
        )

    return _make


@pytest.fixture
def rice() -> InventoryItem:
    return InventoryItem(id="rice", item_name="Rice", category="Grains", quantity=5, unit_price=Decimal("50"))


@dataclass
class FakeSubmitter:
    """Answers with a scripted status per bill id; everything else is accepted."""

    statuses: dict[str, SubmitStatus] = field(default_factory=dict)
    calls: list[str] = field(default_factory=list)
    on_submit: Callable[[SaleRecord], None] | None = None

    def submit(self, record: SaleRecord) -> SubmitOutcome:
        self.calls.append(record.bill_id)
        if self.on_submit is not None:
            self.on_submit(record)
        status = self.statuses.get(record.bill_id, SubmitStatus.ACCEPTED)
        if status is SubmitStatus.ACCEPTED:
            return SubmitOutcome(bill_id=record.bill_id, status=status, sale_id=f"sale-{record.bill_id}")
        return SubmitOutcome(
            bill_id=record.bill_id,
            status=status,
            error_code=status.value.upper(),
            error_message=f"{status.value} failure",
        )


@pytest.fixture
def submitter() -> FakeSubmitter:
    return FakeSubmitter()
