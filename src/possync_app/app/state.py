from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..services.reconciliation import DrainReport


class LifecyclePhase(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class ConnectivityState:
    """Process-wide connectivity and sync status.

    Created once by the bootstrap and handed to the monitor, the
    reconciliation engine and the checkout view. Only the connectivity
    monitor flips ``online``; only the engine flips ``syncing``.
    """

    online: bool = False
    phase: LifecyclePhase = LifecyclePhase.CREATED
    changed_at: datetime | None = None
    transitions: int = 0
    syncing: bool = False
    pending_count: int = 0
    quarantined_count: int = 0
    session_expired: bool = False
    last_report: DrainReport | None = None
    drains_started: int = 0
    drains_dropped: int = 0

    def mark(self, online: bool, *, now: datetime | None = None) -> bool:
        """Record the signal; returns True when it is a real transition."""
        if self.phase is LifecyclePhase.STOPPED:
            return False
        if self.changed_at is not None and online == self.online:
            return False
        self.online = online
        self.changed_at = now or datetime.now(timezone.utc)
        self.transitions += 1
        return True


@dataclass
class AppState:
    status_message: str = "Ready"
    error_message: str | None = None
    trace_id: str | None = None
    connectivity: ConnectivityState = field(default_factory=ConnectivityState)
