"""Replays locally queued sales against the process-sale function.

The engine is idle until the connectivity monitor (or an operator) asks for a
drain. A drain takes one snapshot of the pending queue and submits the sales
strictly one after another; a failing sale never stops the ones behind it.
Triggers that arrive while a drain is running are dropped.

The engine also owns the background submission of sales completed while
online. Those sales are queued first and then submitted on a separate task,
so checkout never waits on the network.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from possync_sdk import ApiSession, PendingSaleStore, PendingStoreError, SaleRecord

from ..app.state import ConnectivityState
from ..telemetry import TelemetryLogger, build_event
from ..ui.shared.notification_center import NoticeTitle, NotificationCenter
from .submission_service import SubmitOutcome, SubmitStatus

logger = logging.getLogger(__name__)


class SaleSubmitter(Protocol):
    def submit(self, record: SaleRecord) -> SubmitOutcome: ...


@dataclass
class DrainReport:
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    quarantined: int = 0
    skipped_in_flight: int = 0
    aborted: bool = False
    remaining: int = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None

    def counts(self) -> dict[str, int]:
        return {"attempted": self.attempted, "succeeded": self.succeeded, "failed": self.failed}

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["started_at"] = self.started_at.isoformat()
        payload["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return payload


class ReconciliationEngine:
    def __init__(
        self,
        *,
        store: PendingSaleStore,
        submitter: SaleSubmitter,
        state: ConnectivityState,
        notices: NotificationCenter,
        session: ApiSession | None = None,
        quarantine_rejected: bool = True,
        telemetry: TelemetryLogger | None = None,
    ) -> None:
        self.store = store
        self.submitter = submitter
        self.state = state
        self.notices = notices
        self.session = session
        self.quarantine_rejected = quarantine_rejected
        self.telemetry = telemetry
        self._in_flight: set[str] = set()
        self._background: set[asyncio.Task[SubmitOutcome]] = set()

    @property
    def is_draining(self) -> bool:
        return self.state.syncing

    @property
    def in_flight(self) -> frozenset[str]:
        return frozenset(self._in_flight)

    async def record_sale(self, record: SaleRecord, *, submit_now: bool) -> asyncio.Task[SubmitOutcome] | None:
        """Durably queue a finished sale; optionally hand it to the background worker.

        Returns once the record is on disk. The submission task, when one is
        started, is returned so callers may observe it, but nothing requires
        them to await it.
        """
        if submit_now:
            # claimed before the write so a drain snapshot taken meanwhile skips it
            self._in_flight.add(record.bill_id)
        try:
            await asyncio.to_thread(self.store.put, record)
        except BaseException:
            self._in_flight.discard(record.bill_id)
            raise
        self.state.pending_count += 1
        if not submit_now:
            return None
        return self.submit_in_background(record)

    def submit_in_background(self, record: SaleRecord) -> asyncio.Task[SubmitOutcome]:
        """Schedule one submission of an already queued sale. Needs a running loop."""
        self._in_flight.add(record.bill_id)
        task = asyncio.get_running_loop().create_task(self._background_submit(record))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self) -> DrainReport | None:
        """Run one reconciliation pass. Returns None when the trigger was dropped."""
        if self.state.syncing:
            self.state.drains_dropped += 1
            logger.info("Reconciliation already running; trigger dropped")
            return None
        if self.state.session_expired or (self.session is not None and not self.session.is_authenticated):
            logger.info("No active session; reconciliation skipped")
            pending = await asyncio.to_thread(self.store.count)
            if pending:
                self.notices.push(
                    level="error",
                    title=NoticeTitle.SESSION_EXPIRED,
                    message=f"{pending} sale(s) are waiting to sync. Sign in again to upload them.",
                    details={"pending": pending},
                )
            return None
        self.state.syncing = True
        self.state.drains_started += 1
        report = DrainReport()
        try:
            snapshot = await asyncio.to_thread(self.store.list_all)
            if not snapshot:
                return report
            self.notices.push(
                level="info",
                title=NoticeTitle.SYNC_STARTED,
                message=f"Uploading {len(snapshot)} offline sale(s).",
                details={"pending": len(snapshot)},
            )
            for record in snapshot:
                if record.bill_id in self._in_flight:
                    report.skipped_in_flight += 1
                    continue
                self._in_flight.add(record.bill_id)
                # a background submission may have settled it since the snapshot
                if await asyncio.to_thread(self.store.get, record.bill_id) is None:
                    self._in_flight.discard(record.bill_id)
                    report.skipped_in_flight += 1
                    continue
                report.attempted += 1
                try:
                    outcome = await asyncio.to_thread(self.submitter.submit, record)
                    await self._settle(record, outcome, background=False)
                finally:
                    self._in_flight.discard(record.bill_id)
                if outcome.accepted:
                    report.succeeded += 1
                    continue
                report.failed += 1
                if outcome.status is SubmitStatus.REJECTED and self.quarantine_rejected:
                    report.quarantined += 1
                if outcome.status is SubmitStatus.UNAUTHORIZED:
                    report.aborted = True
                    break
            self._announce(report)
            return report
        finally:
            report.finished_at = datetime.now(timezone.utc)
            await self.refresh_counts()
            report.remaining = self.state.pending_count
            self.state.last_report = report
            self.state.syncing = False
            self._emit_drain(report)

    async def wait_idle(self) -> None:
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def refresh_counts(self) -> None:
        self.state.pending_count = await asyncio.to_thread(self.store.count)
        self.state.quarantined_count = len(await asyncio.to_thread(self.store.list_quarantined))

    async def requeue(self, bill_id: str) -> SaleRecord | None:
        """Move a quarantined sale back into the pending queue for the next drain."""
        record = await asyncio.to_thread(self.store.requeue, bill_id)
        await self.refresh_counts()
        return record

    async def dismiss(self, bill_id: str) -> bool:
        dismissed = await asyncio.to_thread(self.store.dismiss, bill_id)
        await self.refresh_counts()
        return dismissed

    async def _background_submit(self, record: SaleRecord) -> SubmitOutcome:
        try:
            outcome = await asyncio.to_thread(self.submitter.submit, record)
            await self._settle(record, outcome, background=True)
        finally:
            self._in_flight.discard(record.bill_id)
        await self.refresh_counts()
        return outcome

    async def _settle(self, record: SaleRecord, outcome: SubmitOutcome, *, background: bool) -> None:
        self._emit_submission(outcome, background=background)
        if outcome.status is SubmitStatus.ACCEPTED:
            try:
                await asyncio.to_thread(self.store.remove, record.bill_id)
            except PendingStoreError:
                # resubmitting the same bill id later is harmless
                logger.exception("Sale %s accepted but could not be removed from the queue", record.bill_id)
            return
        if outcome.status is SubmitStatus.UNAUTHORIZED:
            self.state.session_expired = True
            if self.session is not None:
                await asyncio.to_thread(self.session.mark_expired)
            self.notices.push(
                level="error",
                title=NoticeTitle.SESSION_EXPIRED,
                message="Your session is no longer valid. Sign in again to sync pending sales.",
                details={"bill_id": record.bill_id, "code": outcome.error_code, "trace_id": outcome.trace_id},
            )
            return
        if outcome.status is SubmitStatus.REJECTED:
            await self._handle_rejection(record, outcome)
            return
        if background:
            self.notices.push(
                level="warning",
                title=NoticeTitle.TRANSACTION_FAILED,
                message=f"Sale {record.bill_id} is saved locally and will sync when the connection returns.",
                details={"bill_id": record.bill_id, "code": outcome.error_code, "trace_id": outcome.trace_id},
            )

    async def _handle_rejection(self, record: SaleRecord, outcome: SubmitOutcome) -> None:
        reason = outcome.error_message or "rejected by server"
        if self.quarantine_rejected:
            try:
                await asyncio.to_thread(
                    self.store.quarantine,
                    record,
                    error_code=outcome.error_code or "REJECTED",
                    error_message=reason,
                )
            except PendingStoreError:
                logger.exception("Could not quarantine rejected sale %s", record.bill_id)
            follow_up = "Moved to review; requeue or dismiss it once resolved."
        else:
            follow_up = "It stays queued and will be retried."
        self.notices.push(
            level="error",
            title=NoticeTitle.SALE_REJECTED,
            message=f"Sale {record.bill_id} was rejected: {reason}. {follow_up}",
            details={"bill_id": record.bill_id, "code": outcome.error_code, "trace_id": outcome.trace_id},
        )

    def _announce(self, report: DrainReport) -> None:
        if report.failed == 0 and report.succeeded > 0:
            self.notices.push(
                level="success",
                title=NoticeTitle.SYNC_COMPLETE,
                message=f"{report.succeeded} sale(s) successfully synced.",
                details=report.counts(),
            )
            return
        if report.attempted == 0:
            return
        suffix = " Sync stopped early." if report.aborted else ""
        self.notices.push(
            level="warning",
            title=NoticeTitle.SYNC_INCOMPLETE,
            message=(
                f"{report.succeeded} of {report.attempted} sale(s) synced; "
                f"{report.failed} failed.{suffix}"
            ),
            details={**report.counts(), "quarantined": report.quarantined, "aborted": report.aborted},
        )

    def _emit_submission(self, outcome: SubmitOutcome, *, background: bool) -> None:
        if self.telemetry is None:
            return
        self.telemetry.emit(
            build_event(
                category="sync",
                name="sale_submitted",
                module="reconciliation",
                action="background_submit" if background else "drain_submit",
                bill_id=outcome.bill_id,
                trace_id=outcome.trace_id,
                success=outcome.accepted,
                error_code=outcome.error_code,
                context={"status": outcome.status.value, "idempotent": outcome.idempotent},
            )
        )

    def _emit_drain(self, report: DrainReport) -> None:
        if self.telemetry is None:
            return
        self.telemetry.emit(
            build_event(
                category="sync",
                name="drain_finished",
                module="reconciliation",
                action="drain",
                success=report.failed == 0,
                context={**report.counts(), "aborted": report.aborted, "remaining": report.remaining},
            )
        )
