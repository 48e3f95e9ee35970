from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from pathlib import Path

import pytest

from possync_app.app.state import ConnectivityState
from possync_app.services.reconciliation import ReconciliationEngine
from possync_app.services.submission_service import SubmitStatus
from possync_app.telemetry import TelemetryLogger
from possync_app.ui.shared.notification_center import NoticeTitle, NotificationCenter
from possync_sdk import PendingSaleStore, PendingStoreError


@dataclass
class FakeSession:
    is_authenticated: bool = True
    expired: bool = False

    def mark_expired(self) -> None:
        self.expired = True


def _engine(tmp_path: Path, submitter, **kwargs) -> ReconciliationEngine:
    return ReconciliationEngine(
        store=PendingSaleStore(tmp_path / "store"),
        submitter=submitter,
        state=ConnectivityState(),
        notices=NotificationCenter(),
        **kwargs,
    )


def _queue(engine: ReconciliationEngine, make_record, count: int) -> list[str]:
    bill_ids = [f"INV-{index}" for index in range(1, count + 1)]
    for bill_id in bill_ids:
        engine.store.put(make_record(bill_id))
    return bill_ids


def test_drain_submits_in_order_and_empties_queue(tmp_path: Path, make_record, submitter) -> None:
    engine = _engine(tmp_path, submitter)
    bill_ids = _queue(engine, make_record, 3)

    report = asyncio.run(engine.drain())

    assert submitter.calls == bill_ids
    assert report.counts() == {"attempted": 3, "succeeded": 3, "failed": 0}
    assert report.remaining == 0
    assert engine.store.list_all() == []
    assert engine.state.syncing is False
    assert engine.notices.titles() == [NoticeTitle.SYNC_STARTED, NoticeTitle.SYNC_COMPLETE]
    assert engine.notices.messages[-1]["message"] == "3 sale(s) successfully synced."


def test_drain_on_empty_queue_is_quiet(tmp_path: Path, submitter) -> None:
    engine = _engine(tmp_path, submitter)

    report = asyncio.run(engine.drain())

    assert report.attempted == 0
    assert engine.notices.messages == []
    assert engine.state.last_report is report


def test_one_transient_failure_does_not_stop_the_rest(tmp_path: Path, make_record, submitter) -> None:
    engine = _engine(tmp_path, submitter)
    _queue(engine, make_record, 4)
    submitter.statuses["INV-2"] = SubmitStatus.TRANSIENT

    report = asyncio.run(engine.drain())

    assert report.counts() == {"attempted": 4, "succeeded": 3, "failed": 1}
    assert [record.bill_id for record in engine.store.list_all()] == ["INV-2"]
    assert engine.state.pending_count == 1
    assert NoticeTitle.SYNC_INCOMPLETE in engine.notices.titles()


def test_retry_reuses_the_same_bill_id(tmp_path: Path, make_record, submitter) -> None:
    engine = _engine(tmp_path, submitter)
    _queue(engine, make_record, 1)
    submitter.statuses["INV-1"] = SubmitStatus.TRANSIENT
    asyncio.run(engine.drain())

    submitter.statuses.clear()
    report = asyncio.run(engine.drain())

    assert submitter.calls == ["INV-1", "INV-1"]
    assert report.succeeded == 1
    assert engine.store.count() == 0


def test_rejected_sale_is_quarantined(tmp_path: Path, make_record, submitter) -> None:
    engine = _engine(tmp_path, submitter)
    _queue(engine, make_record, 3)
    submitter.statuses["INV-2"] = SubmitStatus.REJECTED

    report = asyncio.run(engine.drain())

    assert report.counts() == {"attempted": 3, "succeeded": 2, "failed": 1}
    assert report.quarantined == 1
    assert engine.store.count() == 0
    assert [entry.record.bill_id for entry in engine.store.list_quarantined()] == ["INV-2"]
    assert engine.state.quarantined_count == 1
    assert NoticeTitle.SALE_REJECTED in engine.notices.titles()


def test_rejected_sale_stays_queued_when_quarantine_disabled(tmp_path: Path, make_record, submitter) -> None:
    engine = _engine(tmp_path, submitter, quarantine_rejected=False)
    _queue(engine, make_record, 2)
    submitter.statuses["INV-1"] = SubmitStatus.REJECTED

    report = asyncio.run(engine.drain())

    assert report.quarantined == 0
    assert [record.bill_id for record in engine.store.list_all()] == ["INV-1"]
    assert engine.store.list_quarantined() == []


def test_unauthorized_aborts_the_pass(tmp_path: Path, make_record, submitter) -> None:
    session = FakeSession()
    engine = _engine(tmp_path, submitter, session=session)
    _queue(engine, make_record, 3)
    submitter.statuses["INV-2"] = SubmitStatus.UNAUTHORIZED

    report = asyncio.run(engine.drain())

    assert submitter.calls == ["INV-1", "INV-2"]
    assert report.aborted is True
    assert report.counts() == {"attempted": 2, "succeeded": 1, "failed": 1}
    assert [record.bill_id for record in engine.store.list_all()] == ["INV-2", "INV-3"]
    assert session.expired is True
    assert engine.state.session_expired is True
    assert NoticeTitle.SESSION_EXPIRED in engine.notices.titles()

    # no further passes until someone signs in again
    assert asyncio.run(engine.drain()) is None
    assert submitter.calls == ["INV-1", "INV-2"]


def test_drain_skipped_without_session(tmp_path: Path, make_record, submitter) -> None:
    engine = _engine(tmp_path, submitter, session=FakeSession(is_authenticated=False))
    _queue(engine, make_record, 1)

    assert asyncio.run(engine.drain()) is None
    assert submitter.calls == []
    assert engine.state.drains_started == 0
    assert engine.notices.titles() == [NoticeTitle.SESSION_EXPIRED]
    assert engine.notices.messages[0]["details"] == {"pending": 1}


def test_drain_skipped_quietly_when_nothing_is_pending(tmp_path: Path, submitter) -> None:
    engine = _engine(tmp_path, submitter, session=FakeSession(is_authenticated=False))

    assert asyncio.run(engine.drain()) is None
    assert engine.notices.titles() == []


def test_concurrent_triggers_run_one_drain(tmp_path: Path, make_record, submitter) -> None:
    engine = _engine(tmp_path, submitter)
    _queue(engine, make_record, 3)

    async def scenario():
        return await asyncio.gather(engine.drain(), engine.drain(), engine.drain())

    reports = asyncio.run(scenario())

    assert sum(report is not None for report in reports) == 1
    assert engine.state.drains_started == 1
    assert engine.state.drains_dropped == 2
    assert submitter.calls == ["INV-1", "INV-2", "INV-3"]


def test_accepted_sale_missing_from_store_is_harmless(tmp_path: Path, make_record, submitter) -> None:
    engine = _engine(tmp_path, submitter)
    _queue(engine, make_record, 2)
    submitter.on_submit = lambda record: engine.store.remove(record.bill_id)

    report = asyncio.run(engine.drain())

    assert report.succeeded == 2
    assert engine.store.count() == 0


def test_record_sale_offline_only_queues(tmp_path: Path, make_record, submitter) -> None:
    engine = _engine(tmp_path, submitter)

    async def scenario():
        task = await engine.record_sale(make_record("INV-1"), submit_now=False)
        await engine.wait_idle()
        return task

    assert asyncio.run(scenario()) is None
    assert submitter.calls == []
    assert engine.store.count() == 1
    assert engine.state.pending_count == 1


def test_record_sale_online_submits_in_background(tmp_path: Path, make_record, submitter) -> None:
    engine = _engine(tmp_path, submitter)

    async def scenario():
        task = await engine.record_sale(make_record("INV-1"), submit_now=True)
        # durably queued before the submission has run
        assert engine.store.count() == 1
        assert "INV-1" in engine.in_flight
        return await task

    outcome = asyncio.run(scenario())

    assert outcome.accepted
    assert engine.store.count() == 0
    assert engine.in_flight == frozenset()
    assert engine.state.pending_count == 0


def test_background_failure_keeps_sale_and_notifies(tmp_path: Path, make_record, submitter) -> None:
    engine = _engine(tmp_path, submitter)
    submitter.statuses["INV-1"] = SubmitStatus.TRANSIENT

    async def scenario():
        await engine.record_sale(make_record("INV-1"), submit_now=True)
        await engine.wait_idle()

    asyncio.run(scenario())

    assert engine.store.count() == 1
    assert engine.notices.titles() == [NoticeTitle.TRANSACTION_FAILED]


def test_drain_skips_sales_owned_by_background_submission(tmp_path: Path, make_record, submitter) -> None:
    engine = _engine(tmp_path, submitter)
    _queue(engine, make_record, 1)

    async def scenario():
        engine._in_flight.add("INV-1")
        try:
            return await engine.drain()
        finally:
            engine._in_flight.discard("INV-1")

    report = asyncio.run(scenario())

    assert report.skipped_in_flight == 1
    assert report.attempted == 0
    assert submitter.calls == []


def test_submit_in_background_claims_the_sale_before_a_drain(tmp_path: Path, make_record, submitter) -> None:
    engine = _engine(tmp_path, submitter)
    _queue(engine, make_record, 1)
    release = threading.Event()
    submitter.on_submit = lambda record: release.wait(5)

    async def scenario():
        task = engine.submit_in_background(engine.store.get("INV-1"))
        report = await engine.drain()
        release.set()
        await task
        return report

    report = asyncio.run(scenario())

    assert report.skipped_in_flight == 1
    assert submitter.calls == ["INV-1"]
    assert engine.store.count() == 0


def test_drain_skips_sale_settled_by_background_after_snapshot(tmp_path: Path, make_record, submitter) -> None:
    engine = _engine(tmp_path, submitter)
    _queue(engine, make_record, 2)
    background_done = threading.Event()

    def hold_first_sale(record) -> None:
        if record.bill_id == "INV-1":
            background_done.wait(5)

    submitter.on_submit = hold_first_sale

    async def scenario():
        task = engine.submit_in_background(engine.store.get("INV-2"))
        task.add_done_callback(lambda _: background_done.set())
        report = await engine.drain()
        await engine.wait_idle()
        return report

    report = asyncio.run(scenario())

    assert submitter.calls.count("INV-2") == 1
    assert sorted(submitter.calls) == ["INV-1", "INV-2"]
    assert report.succeeded == 1
    assert engine.store.count() == 0


def test_record_sale_storage_failure_propagates(tmp_path: Path, make_record, submitter, monkeypatch) -> None:
    engine = _engine(tmp_path, submitter)

    def _fail(record):
        raise PendingStoreError("disk full")

    monkeypatch.setattr(engine.store, "put", _fail)

    with pytest.raises(PendingStoreError):
        asyncio.run(engine.record_sale(make_record("INV-1"), submit_now=True))
    assert engine.in_flight == frozenset()
    assert submitter.calls == []


def test_requeue_and_dismiss_update_counts(tmp_path: Path, make_record, submitter) -> None:
    engine = _engine(tmp_path, submitter)
    engine.store.quarantine(make_record("INV-1"), error_code="X", error_message="rejected")
    engine.store.quarantine(make_record("INV-2"), error_code="X", error_message="rejected")

    async def scenario():
        record = await engine.requeue("INV-1")
        dismissed = await engine.dismiss("INV-2")
        return record, dismissed

    record, dismissed = asyncio.run(scenario())

    assert record.bill_id == "INV-1"
    assert dismissed is True
    assert engine.state.pending_count == 1
    assert engine.state.quarantined_count == 0


def test_drain_emits_telemetry(tmp_path: Path, make_record, submitter) -> None:
    log_file = tmp_path / "telemetry.jsonl"
    engine = _engine(tmp_path, submitter, telemetry=TelemetryLogger(app_name="possync", enabled=True, log_file=log_file))
    _queue(engine, make_record, 1)

    asyncio.run(engine.drain())

    lines = log_file.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert '"name": "sale_submitted"' in lines[0]
    assert '"name": "drain_finished"' in lines[1]
