from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from possync_sdk import ApiSession, SaleRecord, failure_kind, is_duplicate_sale
from possync_sdk.error_mapper import FailureKind
from possync_sdk.exceptions import ApiError

logger = logging.getLogger(__name__)


class SubmitStatus(str, Enum):
    ACCEPTED = "accepted"
    TRANSIENT = "transient"
    REJECTED = "rejected"
    UNAUTHORIZED = "unauthorized"


_STATUS_BY_KIND = {
    FailureKind.TRANSIENT: SubmitStatus.TRANSIENT,
    FailureKind.REJECTED: SubmitStatus.REJECTED,
    FailureKind.UNAUTHORIZED: SubmitStatus.UNAUTHORIZED,
}


@dataclass(frozen=True)
class SubmitOutcome:
    bill_id: str
    status: SubmitStatus
    sale_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    trace_id: str | None = None
    idempotent: bool = False

    @property
    def accepted(self) -> bool:
        return self.status is SubmitStatus.ACCEPTED


class SaleSubmissionService:
    """One attempt at the process-sale function, classified for the caller.

    Blocking; callers on the event loop run it through ``asyncio.to_thread``.
    """

    def __init__(self, session: ApiSession) -> None:
        self.session = session

    def submit(self, record: SaleRecord) -> SubmitOutcome:
        try:
            response = self.session.sales_client().submit_sale(record)
        except ApiError as exc:
            if is_duplicate_sale(exc):
                logger.info("Sale %s was already recorded upstream", record.bill_id)
                return SubmitOutcome(
                    bill_id=record.bill_id,
                    status=SubmitStatus.ACCEPTED,
                    trace_id=exc.trace_id,
                    idempotent=True,
                )
            status = _STATUS_BY_KIND[failure_kind(exc)]
            logger.warning("Sale %s not accepted (%s): %s", record.bill_id, status.value, exc)
            return SubmitOutcome(
                bill_id=record.bill_id,
                status=status,
                error_code=exc.code,
                error_message=exc.message,
                trace_id=exc.trace_id,
            )
        except Exception as exc:  # the record stays queued; a later pass retries it
            logger.exception("Unexpected failure submitting sale %s", record.bill_id)
            return SubmitOutcome(
                bill_id=record.bill_id,
                status=SubmitStatus.TRANSIENT,
                error_code="CLIENT_ERROR",
                error_message=str(exc) or type(exc).__name__,
            )
        return SubmitOutcome(
            bill_id=record.bill_id,
            status=SubmitStatus.ACCEPTED,
            sale_id=response.sale_id,
            idempotent=response.idempotent,
        )
