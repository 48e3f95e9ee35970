from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

from ..http_client import HttpClient


@dataclass
class BaseClient:
    http: HttpClient
    access_token: str | None = None

    # recorded on every LastOperation this client produces
    module: ClassVar[str] = "unknown"

    def _auth_headers(self) -> dict[str, str]:
        if not self.access_token:
            return {}
        return {"Authorization": f"Bearer {self.access_token}"}

    def _request(self, method: str, path: str, *, operation: str, headers: dict[str, str] | None = None, **kwargs: Any):
        return self.http.request(
            method,
            path,
            headers={**self._auth_headers(), **(headers or {})},
            module=self.module,
            operation=operation,
            **kwargs,
        )
