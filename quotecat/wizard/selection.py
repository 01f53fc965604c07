"""Product selection set.

Products picked from a display payload accumulate here and are flushed
as a single ADD_SELECTED user turn, never one at a time. The turn is
"ADD_SELECTED:" followed by a JSON array of {id, name, price, unit, qty}.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

from quotecat.wizard.schemas import DisplayProduct

ADD_SELECTED_PREFIX = "ADD_SELECTED:"


@dataclass(frozen=True)
class SelectedLine:
    product: DisplayProduct
    qty: float


class SelectionSet:
    def __init__(self) -> None:
        self._lines: dict[str, SelectedLine] = {}

    def __len__(self) -> int:
        return len(self._lines)

    def __contains__(self, product_id: object) -> bool:
        return product_id in self._lines

    def toggle(self, product: DisplayProduct, qty: float | None = None) -> bool:
        """Select or deselect a product. Returns True when now selected."""
        if product.id in self._lines:
            del self._lines[product.id]
            return False
        self.set(product, qty if qty is not None else product.suggested_qty)
        return True

    def set(self, product: DisplayProduct, qty: float) -> None:
        if qty <= 0:
            self._lines.pop(product.id, None)
            return
        self._lines[product.id] = SelectedLine(product=product, qty=qty)

    def lines(self) -> list[SelectedLine]:
        return list(self._lines.values())

    def clear(self) -> None:
        self._lines.clear()

    def flush(self) -> tuple[str, str] | None:
        """Build (display_text, api_text) for the batched turn and clear.

        Returns None when nothing is selected.
        """
        if not self._lines:
            return None
        lines = self.lines()
        payload = [
            {
                "id": line.product.id,
                "name": line.product.name,
                "price": line.product.price,
                "unit": line.product.unit,
                "qty": line.qty,
            }
            for line in lines
        ]
        count = len(lines)
        display = f"Add {count} selected item{'s' if count != 1 else ''}"
        self.clear()
        return display, ADD_SELECTED_PREFIX + json.dumps(payload)
