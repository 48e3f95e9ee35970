"""Durable local queue of sales waiting for the process-sale function.

Each sale lives in its own JSON file named after its bill id. Writes go to a
temporary file in the same directory, are flushed to disk and then renamed
over the target, so a record is either fully present or absent. Sales the
backend rejected for good are moved to a separate quarantine directory where
an operator can requeue or dismiss them.
"""
from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from .exceptions import PendingStoreError
from .models_sales import QuarantinedSale, SaleRecord

logger = logging.getLogger(__name__)

_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9._-]+$")
_SUFFIX = ".json"


def _check_bill_id(bill_id: str) -> str:
    if not bill_id or not _SAFE_ID_RE.match(bill_id) or bill_id.startswith("."):
        raise ValueError(f"bill id is not usable as a storage key: {bill_id!r}")
    return bill_id


def _atomic_write(path: Path, payload: str) -> None:
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.stem}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fp:
            fp.write(payload)
            fp.flush()
            os.fsync(fp.fileno())
        os.replace(tmp_name, path)
    except OSError as exc:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise PendingStoreError(f"Could not write {path.name}: {exc}") from exc
    _fsync_dir(path.parent)


def _fsync_dir(directory: Path) -> None:
    try:
        fd = os.open(directory, os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


@dataclass
class PendingSaleStore:
    base_dir: Path
    pending_dirname: str = "pending"
    quarantine_dirname: str = "quarantine"

    def __post_init__(self) -> None:
        self.base_dir = Path(self.base_dir)
        self.pending_dir.mkdir(parents=True, exist_ok=True)
        self.quarantine_dir.mkdir(parents=True, exist_ok=True)

    @property
    def pending_dir(self) -> Path:
        return self.base_dir / self.pending_dirname

    @property
    def quarantine_dir(self) -> Path:
        return self.base_dir / self.quarantine_dirname

    def put(self, record: SaleRecord) -> None:
        bill_id = _check_bill_id(record.bill_id)
        _atomic_write(self.pending_dir / f"{bill_id}{_SUFFIX}", record.model_dump_json(by_alias=True))
        logger.info("Queued sale %s locally", bill_id)

    def get(self, bill_id: str) -> SaleRecord | None:
        path = self.pending_dir / f"{_check_bill_id(bill_id)}{_SUFFIX}"
        if not path.exists():
            return None
        return self._read_record(path)

    def list_all(self) -> list[SaleRecord]:
        records: list[SaleRecord] = []
        for path in sorted(self.pending_dir.glob(f"*{_SUFFIX}")):
            record = self._read_record(path)
            if record is not None:
                records.append(record)
        return records

    def count(self) -> int:
        return sum(1 for _ in self.pending_dir.glob(f"*{_SUFFIX}"))

    def remove(self, bill_id: str) -> bool:
        """Delete a pending sale. Returns False when it was already gone."""
        path = self.pending_dir / f"{_check_bill_id(bill_id)}{_SUFFIX}"
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise PendingStoreError(f"Could not remove {path.name}: {exc}") from exc
        _fsync_dir(self.pending_dir)
        logger.info("Removed synced sale %s from local queue", bill_id)
        return True

    def quarantine(self, record: SaleRecord, *, error_code: str, error_message: str) -> QuarantinedSale:
        bill_id = _check_bill_id(record.bill_id)
        target = self.quarantine_dir / f"{bill_id}{_SUFFIX}"
        attempts = 1
        previous = self._read_quarantined(target) if target.exists() else None
        if previous is not None:
            attempts = previous.attempts + 1
        entry = QuarantinedSale(
            record=record,
            error_code=error_code,
            error_message=error_message,
            attempts=attempts,
        )
        # written before the pending copy goes away, so a crash leaves a duplicate, never a loss
        _atomic_write(target, entry.model_dump_json(by_alias=True))
        self.remove(bill_id)
        logger.warning("Quarantined sale %s: %s %s", bill_id, error_code, error_message)
        return entry

    def list_quarantined(self) -> list[QuarantinedSale]:
        entries: list[QuarantinedSale] = []
        for path in sorted(self.quarantine_dir.glob(f"*{_SUFFIX}")):
            entry = self._read_quarantined(path)
            if entry is not None:
                entries.append(entry)
        return entries

    def requeue(self, bill_id: str) -> SaleRecord | None:
        path = self.quarantine_dir / f"{_check_bill_id(bill_id)}{_SUFFIX}"
        if not path.exists():
            return None
        entry = self._read_quarantined(path)
        if entry is None:
            return None
        self.put(entry.record)
        path.unlink(missing_ok=True)
        logger.info("Requeued quarantined sale %s", bill_id)
        return entry.record

    def dismiss(self, bill_id: str) -> bool:
        path = self.quarantine_dir / f"{_check_bill_id(bill_id)}{_SUFFIX}"
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.warning("Dismissed quarantined sale %s", bill_id)
        return True

    def _read_record(self, path: Path) -> SaleRecord | None:
        try:
            return SaleRecord.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, PydanticValidationError) as exc:
            logger.warning("Skipping unreadable pending sale %s: %s", path.name, exc)
            return None

    def _read_quarantined(self, path: Path) -> QuarantinedSale | None:
        try:
            return QuarantinedSale.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError, PydanticValidationError) as exc:
            logger.warning("Skipping unreadable quarantined sale %s: %s", path.name, exc)
            return None
