from __future__ import annotations

from dataclasses import dataclass

from .auth_store import AuthStore
from .clients.health import HealthClient
from .clients.inventory_client import InventoryClient
from .clients.sales_client import SalesClient
from .config import ClientConfig
from .http_client import HttpClient
from .models import SessionData, UserResponse
from .tracing import TraceContext


@dataclass
class ApiSession:
    config: ClientConfig
    auth_store: AuthStore | None = None
    trace: TraceContext | None = None
    token: str | None = None
    user: UserResponse | None = None
    expired: bool = False

    def __post_init__(self) -> None:
        self.auth_store = self.auth_store or AuthStore()
        self.trace = self.trace or TraceContext()
        stored = self.auth_store.load()
        if stored and not self.token:
            self.token = stored.access_token
            self.user = stored.user
            self.expired = stored.expired
        self._http_client: HttpClient | None = None

    def _http(self) -> HttpClient:
        if self._http_client is None:
            self._http_client = HttpClient(config=self.config, trace=self.trace)
        return self._http_client

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token) and not self.expired

    @property
    def user_id(self) -> str | None:
        return self.user.id if self.user else None

    def sales_client(self) -> SalesClient:
        return SalesClient(http=self._http(), access_token=self.token)

    def inventory_client(self) -> InventoryClient:
        return InventoryClient(http=self._http(), access_token=self.token)

    def health_client(self) -> HealthClient:
        return HealthClient(http=self._http(), access_token=self.token, path=self.config.health_path)

    def establish(self, token: str, user: UserResponse | None) -> None:
        self.token = token
        self.user = user
        self.expired = False
        self._persist()

    def mark_expired(self) -> None:
        """Called when the backend refuses the current token mid-session."""
        self.expired = True
        if self.token:
            self._persist()

    def _persist(self) -> None:
        self.auth_store.save(
            SessionData(access_token=self.token, user=self.user, env_name=self.config.env_name, expired=self.expired)
        )

    def clear(self) -> None:
        self.token = None
        self.user = None
        self.expired = False
        if self.auth_store:
            self.auth_store.clear()
