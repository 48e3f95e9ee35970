from __future__ import annotations

import logging

from possync_sdk import ApiSession, AuthStore, ClientConfig, PendingSaleStore, UserResponse, load_config

from ..services.checkout_service import CheckoutStateMachine
from ..services.connectivity import ConnectivityMonitor
from ..services.inventory_service import InventoryService
from ..services.reconciliation import ReconciliationEngine
from ..services.sales_history_service import SalesHistoryService
from ..services.submission_service import SaleSubmissionService
from ..telemetry import TelemetryLogger, build_event
from ..ui.pos.checkout_view import PosCheckoutView
from ..ui.shared.notification_center import NotificationCenter
from .state import AppState

logger = logging.getLogger(__name__)


class PosSyncBootstrap:
    """Builds the object graph once per process and owns its lifecycle."""

    def __init__(
        self,
        config: ClientConfig | None = None,
        session: ApiSession | None = None,
        store: PendingSaleStore | None = None,
        telemetry: TelemetryLogger | None = None,
    ) -> None:
        self.config = config or load_config()
        self.session = session or ApiSession(self.config, auth_store=AuthStore(base_dir=self.config.resolved_data_dir()))
        self.store = store or PendingSaleStore(self.config.resolved_data_dir())
        self.state = AppState()
        self.state.connectivity.session_expired = self.session.expired
        self.notices = NotificationCenter()
        self.telemetry = telemetry or TelemetryLogger(app_name="possync", log_dir=self.config.resolved_data_dir() / "telemetry")
        self.engine = ReconciliationEngine(
            store=self.store,
            submitter=SaleSubmissionService(self.session),
            state=self.state.connectivity,
            notices=self.notices,
            session=self.session,
            quarantine_rejected=self.config.quarantine_rejected,
            telemetry=self.telemetry,
        )
        self.monitor = ConnectivityMonitor(
            state=self.state.connectivity,
            engine=self.engine,
            notices=self.notices,
            probe=self._probe,
            interval_seconds=self.config.probe_interval_seconds,
            telemetry=self.telemetry,
        )
        self.view = PosCheckoutView(
            machine=CheckoutStateMachine(user_id=self.session.user_id or ""),
            engine=self.engine,
            state=self.state.connectivity,
            notices=self.notices,
            inventory=InventoryService(self.session),
            history_service=SalesHistoryService(self.session),
            telemetry=self.telemetry,
        )

    async def start(self, online: bool | None = None) -> AppState:
        await self.engine.refresh_counts()
        await self.monitor.start(online)
        if self.state.connectivity.online and self.session.is_authenticated:
            await self.view.refresh_inventory()
        self.state.status_message = "Online" if self.state.connectivity.online else "Offline"
        if not self.session.is_authenticated:
            self.state.status_message += "; sign-in required to sync"
        logger.info(
            "possync started: env=%s pending=%d quarantined=%d",
            self.config.normalized_env,
            self.state.connectivity.pending_count,
            self.state.connectivity.quarantined_count,
        )
        return self.state

    def sign_in(self, token: str, user: UserResponse) -> None:
        self.session.establish(token=token, user=user)
        self.state.connectivity.session_expired = False
        self.view.machine.user_id = user.id
        self._emit_auth(True)

    def sign_out(self) -> None:
        self.session.clear()
        self.view.machine.user_id = ""
        self._emit_auth(False)

    async def shutdown(self) -> None:
        await self.monitor.stop()
        await self.engine.wait_idle()
        logger.info("possync stopped")

    def _probe(self) -> bool:
        return self.session.health_client().is_reachable()

    def _emit_auth(self, signed_in: bool) -> None:
        self.telemetry.emit(
            build_event(
                category="auth",
                name="session_changed",
                module="session",
                action="sign_in" if signed_in else "sign_out",
                success=True,
            )
        )
