# filters.py

from dataclasses import dataclass
from typing import Iterable, Optional


@dataclass(frozen=True)
class ItemFilter:
    """ Optional item criteria, combined with AND. Bounds are inclusive. """
    name: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    min_stock: Optional[int] = None
    max_stock: Optional[int] = None

    def is_empty(self) -> bool:
        return not self.name and all(
            bound is None for bound in (self.min_price, self.max_price, self.min_stock, self.max_stock)
        )

    def matches(self, item: dict) -> bool:
        # an empty name string imposes no constraint
        if self.name and self.name.lower() not in item["item_name"].lower():
            return False
        if self.min_price is not None and item["price"] < self.min_price:
            return False
        if self.max_price is not None and item["price"] > self.max_price:
            return False
        if self.min_stock is not None and item["stock"] < self.min_stock:
            return False
        if self.max_stock is not None and item["stock"] > self.max_stock:
            return False
        return True


def filter_items(items: Iterable[dict], criteria: ItemFilter) -> list[dict]:
    """ Keep the items matching every given criterion, in their original order. """
    return [item for item in items if criteria.matches(item)]
