from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable

BILL_ID_PREFIX = "INV-"


@dataclass
class BillIdFactory:
    """Mints time-derived bill ids that never repeat within a process.

    The bill id doubles as the idempotency key sent to the process-sale
    function, so a retried submission must reuse the id it was minted with.
    """

    clock: Callable[[], float] = time.time
    prefix: str = BILL_ID_PREFIX
    _last_ms: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def new_bill_id(self) -> str:
        with self._lock:
            now_ms = int(self.clock() * 1000)
            if now_ms <= self._last_ms:
                now_ms = self._last_ms + 1
            self._last_ms = now_ms
        return f"{self.prefix}{now_ms}"


_default_factory = BillIdFactory()


def new_bill_id() -> str:
    return _default_factory.new_bill_id()


def idempotency_headers(bill_id: str) -> dict[str, str]:
    return {"Idempotency-Key": bill_id}
