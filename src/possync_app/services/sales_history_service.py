from __future__ import annotations

from dataclasses import dataclass

from possync_sdk import ApiSession, SaleHistoryRow, to_user_facing_error
from possync_sdk.exceptions import ApiError


@dataclass
class SalesHistoryError(RuntimeError):
    message: str
    details: str | None = None
    trace_id: str | None = None

    def __str__(self) -> str:
        return self.message


class SalesHistoryService:
    """Reads recorded sales; operators only see their own unless they are admins."""

    def __init__(self, session: ApiSession) -> None:
        self.session = session

    def list_sales(self, *, limit: int | None = None) -> list[SaleHistoryRow]:
        user = self.session.user
        owner = None if user is not None and user.is_admin else self.session.user_id
        try:
            return self.session.sales_client().list_sales(user_id=owner, limit=limit)
        except ApiError as exc:
            facing = to_user_facing_error(exc)
            raise SalesHistoryError(facing.message, facing.technical_details, facing.trace_id) from exc
