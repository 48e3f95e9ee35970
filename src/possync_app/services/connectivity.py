from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Protocol

from ..app.state import ConnectivityState, LifecyclePhase
from ..telemetry import TelemetryLogger, build_event
from ..ui.shared.notification_center import NoticeTitle, NotificationCenter

logger = logging.getLogger(__name__)

Probe = Callable[[], bool]


class Drainable(Protocol):
    def drain(self) -> Awaitable[Any]: ...


class ConnectivityMonitor:
    """Turns an online/offline signal into state changes, notices and drains.

    Signals come either from the platform via :meth:`report` or from the probe
    loop started with :meth:`run`. Only real transitions count: reporting the
    state we are already in does nothing.
    """

    def __init__(
        self,
        *,
        state: ConnectivityState,
        engine: Drainable,
        notices: NotificationCenter,
        probe: Probe | None = None,
        interval_seconds: float = 15.0,
        telemetry: TelemetryLogger | None = None,
    ) -> None:
        self.state = state
        self.engine = engine
        self.notices = notices
        self.probe = probe
        self.interval_seconds = interval_seconds
        self.telemetry = telemetry
        self._tasks: set[asyncio.Task[Any]] = set()
        self._loop_task: asyncio.Task[None] | None = None

    async def start(self, online: bool | None = None) -> None:
        if self.state.phase is LifecyclePhase.RUNNING:
            return
        if online is None:
            online = await self._read_probe()
        self.state.phase = LifecyclePhase.RUNNING
        self.state.mark(online)
        logger.info("Connectivity monitor started (%s)", "online" if online else "offline")
        if online:
            # sales left over from an earlier offline session
            self._trigger_drain()

    def report(self, online: bool) -> asyncio.Task[Any] | None:
        """Handle a platform online/offline event. Needs a running event loop."""
        if self.state.phase is not LifecyclePhase.RUNNING:
            return None
        if not self.state.mark(online):
            return None
        self._emit(online)
        if not online:
            self.notices.push(
                level="warning",
                title=NoticeTitle.OFFLINE,
                message="Sales will be saved locally.",
            )
            return None
        self.notices.push(
            level="info",
            title=NoticeTitle.ONLINE,
            message="Checking for pending sales...",
        )
        return self._trigger_drain()

    async def run(self, interval_seconds: float | None = None) -> None:
        """Poll the probe until :meth:`stop` is called."""
        if self.probe is None:
            raise RuntimeError("Connectivity monitor has no probe to poll")
        interval = interval_seconds or self.interval_seconds
        if self.state.phase is not LifecyclePhase.RUNNING:
            await self.start()
        self._loop_task = asyncio.current_task()
        try:
            while self.state.phase is LifecyclePhase.RUNNING:
                await asyncio.sleep(interval)
                if self.state.phase is not LifecyclePhase.RUNNING:
                    break
                self.report(await self._read_probe())
        except asyncio.CancelledError:
            logger.info("Connectivity probe loop cancelled")
            raise
        finally:
            self._loop_task = None

    async def stop(self) -> None:
        self.state.phase = LifecyclePhase.STOPPED
        if self._loop_task is not None and self._loop_task is not asyncio.current_task():
            self._loop_task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        logger.info("Connectivity monitor stopped")

    def _trigger_drain(self) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(self.engine.drain())
        self._tasks.add(task)
        task.add_done_callback(self._on_drain_done)
        return task

    def _on_drain_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Reconciliation pass failed", exc_info=error)

    async def _read_probe(self) -> bool:
        if self.probe is None:
            return self.state.online
        try:
            return bool(await asyncio.to_thread(self.probe))
        except Exception:  # a probe that blows up means we cannot reach anything
            logger.exception("Connectivity probe failed")
            return False

    def _emit(self, online: bool) -> None:
        if self.telemetry is None:
            return
        self.telemetry.emit(
            build_event(
                category="connectivity",
                name="online" if online else "offline",
                module="connectivity",
                action="transition",
                context={"transitions": self.state.transitions},
            )
        )
