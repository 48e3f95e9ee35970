from __future__ import annotations

from dataclasses import dataclass

from ..idempotency import idempotency_headers
from ..models import SaleHistoryRow
from ..models_sales import SaleRecord, SaleSubmitResponse
from .base import BaseClient
from .inventory_client import INVENTORY_PATH

PROCESS_SALE_PATH = "/functions/v1/process-sale"
SALES_PATH = "/rest/v1/sales"


@dataclass
class SalesClient(BaseClient):
    module = "sales"

    def submit_sale(self, record: SaleRecord) -> SaleSubmitResponse:
        """Record the sale and decrement stock in one server-side transaction.

        Never retried at this layer; the bill id is the idempotency key so the
        caller can safely resubmit the same record later.
        """
        data = self._request(
            "POST",
            PROCESS_SALE_PATH,
            json_body={"billData": record.to_payload()},
            headers=idempotency_headers(record.bill_id),
            operation="process_sale",
            invalidate_paths=[INVENTORY_PATH, SALES_PATH],
        )
        if not isinstance(data, dict):
            # any 2xx is the server confirming the bill was recorded
            return SaleSubmitResponse(bill_id=record.bill_id)
        response = SaleSubmitResponse.model_validate(data)
        if response.bill_id is None:
            response = response.model_copy(update={"bill_id": record.bill_id})
        return response

    def list_sales(self, user_id: str | None = None, limit: int | None = None) -> list[SaleHistoryRow]:
        params: dict[str, str | int] = {"select": "*", "order": "created_at.desc"}
        if user_id:
            params["user_id"] = f"eq.{user_id}"
        if limit:
            params["limit"] = limit
        data = self._request("GET", SALES_PATH, params=params, operation="list")
        if not isinstance(data, list):
            raise ValueError("Expected sales response to be a JSON array")
        return [SaleHistoryRow.model_validate(row) for row in data]
