from __future__ import annotations

from dataclasses import dataclass

from ..models import InventoryItem
from .base import BaseClient

INVENTORY_PATH = "/rest/v1/inventory"
PROFILES_PATH = "/rest/v1/profiles"


@dataclass
class InventoryClient(BaseClient):
    module = "inventory"

    def list_items(self, owner_id: str | None = None, *, fresh: bool = False) -> list[InventoryItem]:
        params = {"select": "*", "order": "item_name.asc"}
        if owner_id:
            params["user_id"] = f"eq.{owner_id}"
        data = self._request(
            "GET",
            INVENTORY_PATH,
            params=params,
            use_get_cache=not fresh,
            operation="list",
        )
        if not isinstance(data, list):
            raise ValueError("Expected inventory response to be a JSON array")
        return [InventoryItem.model_validate(row) for row in data]

    def admin_owner_id(self) -> str | None:
        """Id of the admin profile whose stock every terminal sells from."""
        data = self._request(
            "GET",
            PROFILES_PATH,
            params={"select": "id", "role": "eq.admin", "limit": 1},
            operation="admin_owner",
        )
        if not isinstance(data, list):
            raise ValueError("Expected profiles response to be a JSON array")
        if not data or not isinstance(data[0], dict) or not data[0].get("id"):
            return None
        return str(data[0]["id"])
