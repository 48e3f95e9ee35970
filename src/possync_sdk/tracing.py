from __future__ import annotations

import itertools
import uuid
from dataclasses import dataclass, field
from typing import Iterator, Mapping

TRACE_HEADER = "X-Trace-ID"
# the hosted gateway reports its own request id under these names
SERVER_TRACE_HEADERS = ("sb-request-id", "x-request-id", TRACE_HEADER)


@dataclass
class TraceContext:
    """Correlates requests from one terminal session with backend logs.

    Every request carries ``<session_id>-<sequence>`` so a sale's submission
    can be found in gateway logs; ``trace_id`` is the last id sent or reported
    back by the server.
    """

    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    trace_id: str | None = None
    _sequence: Iterator[int] = field(default_factory=lambda: itertools.count(1), repr=False)

    def next_request_id(self) -> str:
        self.trace_id = f"{self.session_id}-{next(self._sequence):06d}"
        return self.trace_id

    def update_from_headers(self, headers: Mapping[str, str]) -> None:
        for key in SERVER_TRACE_HEADERS:
            value = headers.get(key)
            if value:
                self.trace_id = value
                return

    def update_from_payload(self, payload: Mapping[str, object]) -> None:
        value = payload.get("trace_id") or payload.get("request_id")
        if isinstance(value, str) and value:
            self.trace_id = value
