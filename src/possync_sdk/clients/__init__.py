from .base import BaseClient
from .health import HealthClient
from .inventory_client import InventoryClient
from .sales_client import SalesClient

__all__ = ["BaseClient", "HealthClient", "InventoryClient", "SalesClient"]
