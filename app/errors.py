# errors.py

# Error kinds raised by the record store and the fulfillment workflows.
# Each carries a stable code so callers can tell them apart without parsing messages.


class OrderApiError(Exception):
    code = "order_api_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict:
        return {"error": self.code, "message": self.message}


class NotFound(OrderApiError):
    """ A referenced user, item or order does not exist. """
    code = "not_found"

    def __init__(self, kind: str, record_id):
        super().__init__(f"{kind.capitalize()} with id {record_id} not found")
        self.kind = kind
        self.record_id = record_id


class InsufficientStock(OrderApiError):
    """ Requested quantity exceeds the item's available stock. """
    code = "insufficient_stock"

    def __init__(self, item_name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for item {item_name}. Available: {available}, Requested: {requested}"
        )
        self.item_name = item_name
        self.available = available
        self.requested = requested


class StockConflict(OrderApiError):
    """ Stock kept changing under a reservation until it ran out of attempts. """
    code = "stock_conflict"


class ValidationFailure(OrderApiError):
    code = "validation_failure"


class StoreError(OrderApiError):
    """ The underlying database rejected a read or write. """
    code = "store_error"
