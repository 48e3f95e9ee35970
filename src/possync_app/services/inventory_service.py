from __future__ import annotations

import logging
from dataclasses import dataclass

from possync_sdk import ApiSession, InventoryItem, to_user_facing_error
from possync_sdk.exceptions import ApiError

logger = logging.getLogger(__name__)


@dataclass
class InventoryServiceError(RuntimeError):
    message: str
    details: str | None = None
    trace_id: str | None = None

    def __str__(self) -> str:
        return self.message


class InventoryService:
    def __init__(self, session: ApiSession) -> None:
        self.session = session
        self._snapshot: list[InventoryItem] = []
        self._owner_id: str | None = None

    @property
    def snapshot(self) -> list[InventoryItem]:
        return list(self._snapshot)

    def refresh(self, *, owner_id: str | None = None, fresh: bool = True) -> list[InventoryItem]:
        """Reload the stock terminals sell from; by default the admin's inventory."""
        client = self.session.inventory_client()
        try:
            owner = owner_id or self._owner_id or client.admin_owner_id()
            if owner is None:
                raise InventoryServiceError("Could not find the admin user for inventory.")
            items = client.list_items(owner, fresh=fresh)
        except ApiError as exc:
            facing = to_user_facing_error(exc)
            raise InventoryServiceError(facing.message, facing.technical_details, facing.trace_id) from exc
        except ValueError as exc:
            raise InventoryServiceError("Inventory response could not be read", str(exc)) from exc
        self._owner_id = owner
        self._snapshot = items
        logger.info("Loaded %d inventory item(s)", len(items))
        return self.snapshot

    def search(self, term: str) -> list[InventoryItem]:
        needle = term.strip().lower()
        if not needle:
            return self.snapshot
        return [item for item in self._snapshot if needle in item.item_name.lower()]
