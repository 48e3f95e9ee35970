from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from ....services.checkout_service import CartItem


@dataclass
class CartTable:
    lines: list[CartItem]

    def render(self) -> dict[str, Any]:
        total = Decimal("0.00")
        rows = []
        for line in self.lines:
            total += line.line_total
            rows.append(
                {
                    "id": line.item.id,
                    "name": line.item.item_name,
                    "qty": line.cart_quantity,
                    "unit_price": line.item.unit_price,
                    "line_total": line.line_total,
                    "stock": line.item.quantity,
                }
            )
        return {
            "count": len(self.lines),
            "units": sum(line.cart_quantity for line in self.lines),
            "line_total": total,
            "rows": rows,
        }
