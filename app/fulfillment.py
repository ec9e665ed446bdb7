# fulfillment.py

from typing import Iterable, Mapping, Optional

from app.database import RecordStore
from app.errors import InsufficientStock, OrderApiError, StockConflict, ValidationFailure
from app.logger import log_info, log_warning


class StockLedger:
    """
    Decrements item stock for fulfilled order lines, never below zero.

    The write is a compare-and-swap on the stock value that was read, so two
    concurrent reservations of the same item cannot both succeed on the same
    snapshot. A lost swap re-reads and re-checks the item.
    """

    def __init__(self, items: RecordStore, max_attempts: int = 5):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.items = items
        self.max_attempts = max_attempts

    def reserve(self, item_id: int, quantity: int, request_id: str = "N/A") -> dict:
        """ Take `quantity` units out of the item's stock and return the updated item. """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationFailure(f"Quantity must be a positive integer, got {quantity!r}")

        for attempt in range(1, self.max_attempts + 1):
            item = self.items.find_by_id(item_id)
            available = item["stock"]
            if available < quantity:
                raise InsufficientStock(item["item_name"], available, quantity)

            new_stock = available - quantity
            if self.items.update_by_id(item_id, {"stock": new_stock}, expected={"stock": available}):
                log_info(f"Reserved {quantity} of item {item_id}, stock {available} -> {new_stock}", request_id=request_id)
                return {**item, "stock": new_stock}

            log_warning(
                f"Stock of item {item_id} changed during reservation (attempt {attempt}/{self.max_attempts})",
                request_id=request_id,
            )

        raise StockConflict(f"Stock of item {item_id} kept changing, reservation abandoned after {self.max_attempts} attempts")


def order_summary(order: dict, user: dict, item: dict) -> dict:
    """ Pair an order with the minimal user and item projections returned to clients. """
    return {
        "order": order,
        "user": {"id": user["id"], "username": user["username"]},
        "item": {"id": item["id"], "item_name": item["item_name"]},
    }


class OrderFulfillment:
    """
    Single-item and cart checkout.

    Neither workflow is transactional: a reservation is not undone if the order
    insert that follows it fails, and cart lines committed before a failing
    line stay committed.
    """

    def __init__(self, items: RecordStore, users: RecordStore, orders: RecordStore, ledger: Optional[StockLedger] = None):
        self.items = items
        self.users = users
        self.orders = orders
        self.ledger = ledger or StockLedger(items)

    def _available_item(self, item_id: int, count: int) -> dict:
        item = self.items.find_by_id(item_id)
        if item["stock"] < count:
            raise InsufficientStock(item["item_name"], item["stock"], count)
        return item

    def _fulfill(self, user: dict, item: dict, count: int, request_id: str) -> dict:
        self.ledger.reserve(item["id"], count, request_id=request_id)
        order = self.orders.create({"user_id": user["id"], "item_id": item["id"], "stock_number": count})
        log_info(f"Created order {order['id']}: user {user['id']}, item {item['id']}, count {count}", request_id=request_id)
        return order_summary(order, user, item)

    def place_order(self, user_id: int, item_id: int, count: int, request_id: str = "N/A") -> dict:
        """
        Order `count` units of one item for one user.

        The item is looked up and its stock checked before the user is looked up.
        """
        item = self._available_item(item_id, count)
        user = self.users.find_by_id(user_id)
        return self._fulfill(user, item, count, request_id)

    def place_cart_order(self, user_id: int, lines: Iterable[Mapping], request_id: str = "N/A") -> dict:
        """
        Order every cart line for one user, in input order.

        The user is checked once up front. The first failing line aborts the
        cart; lines before it are already committed and are not rolled back.
        """
        user = self.users.find_by_id(user_id)

        results = []
        for position, line in enumerate(lines, start=1):
            try:
                item = self._available_item(line["item_id"], line["count"])
                results.append(self._fulfill(user, item, line["count"], request_id))
            except OrderApiError as e:
                if results:
                    log_warning(
                        f"Cart line {position} failed after {len(results)} order(s) were committed: {e.message}",
                        request_id=request_id,
                    )
                raise

        return {"created_count": len(results), "orders": results}
