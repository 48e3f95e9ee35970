from __future__ import annotations

from dataclasses import dataclass

from ..exceptions import ApiError
from .base import BaseClient


@dataclass
class HealthClient(BaseClient):
    module = "health"
    path: str = "/rest/v1/"

    def health(self) -> dict:
        data = self._request("GET", self.path, use_get_cache=False, operation="probe")
        return data if isinstance(data, dict) else {}

    def is_reachable(self) -> bool:
        """True when the backend answered at all, even with an auth error."""
        try:
            self.health()
        except ApiError as exc:
            return exc.status_code > 0
        except ValueError:
            # answered, just not with JSON
            return True
        return True
