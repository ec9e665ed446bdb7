# main.py

import uuid
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response

from app.config import get_settings
from app.database import create_connection, create_tables, open_stores
from app.errors import InsufficientStock, NotFound, OrderApiError, StockConflict, StoreError, ValidationFailure
from app.filters import ItemFilter, filter_items
from app.fulfillment import OrderFulfillment, StockLedger
from app.logger import log_info, log_error, log_debug, log_warning, setup_logging
from app.schemas import (
    CartRequest, CartResponse, CountResponse, Item, ItemCreate, ItemReplace, ItemUpdate,
    Order, OrderRequest, OrderResponse, User, UserCreate,
)

# HTTP status for each error kind; anything else falls back to 400
ERROR_STATUS = {
    NotFound: 404,
    InsufficientStock: 409,
    StockConflict: 409,
    ValidationFailure: 422,
}


# Open the database and build the stores on startup, close the connection on shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Set up the database connection, tables and record stores on startup.
    Close the connection on shutdown.
    """
    settings = get_settings()
    setup_logging(settings.log_level)
    log_info("Creating database connection and tables...")
    conn = create_connection(settings.database_file)
    create_tables(conn=conn)

    stores = open_stores(conn)
    app.state.db_conn = conn
    app.state.stores = stores
    app.state.fulfillment = OrderFulfillment(
        stores.items,
        stores.users,
        stores.orders,
        ledger=StockLedger(stores.items, max_attempts=settings.reserve_max_attempts),
    )
    log_info("Starting up the E-commerce API...")

    yield
    log_info("Shutting down the E-commerce API...")
    app.state.db_conn = None
    app.state.stores = None
    app.state.fulfillment = None
    conn.close()
    log_info("Database connection closed.")

# Initialize FastAPI app with lifespan for startup and shutdown events
app = FastAPI(title="E-commerce API", lifespan=lifespan)

# Set up a middleware to generate request_id for each request and log it
@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """
    Reuse the Request-ID header or generate a new one, and log the request under it.
    """
    request_id = request.headers.get("Request-ID")
    if request_id:
        log_info(f"Received Request-ID header: {request_id}", request_id=request_id)
    else:
        request_id = str(uuid.uuid4())
        log_info("No Request-ID header found, generated a new request ID.", request_id=request_id)
    request.state.request_id = request_id

    log_info(f"Received request: {request.method} {request.url}", request_id=request_id)

    response = await call_next(request)
    # add the request_id to the response headers for tracking
    response.headers["Request-ID"] = request_id
    log_info(f"Completed request: {request.method} {request.url} with status {response.status_code}", request_id=request_id)
    return response


def raise_http_error(error: OrderApiError, request_id: str):
    """ Turn a core error into an HTTPException, keeping store failures opaque to the client. """
    if isinstance(error, StoreError):
        log_error(f"Store failure: {error.message}", request_id=request_id)
        raise HTTPException(status_code=500, detail={"error": error.code, "message": "Internal Server Error"})
    log_warning(f"Request rejected ({error.code}): {error.message}", request_id=request_id)
    raise HTTPException(status_code=ERROR_STATUS.get(type(error), 400), detail=error.to_detail())


def item_filter(
    name: Optional[str] = Query(None),
    min_price: Optional[float] = Query(None, alias="minPrice"),
    max_price: Optional[float] = Query(None, alias="maxPrice"),
    min_stock: Optional[int] = Query(None, alias="minStock"),
    max_stock: Optional[int] = Query(None, alias="maxStock"),
) -> ItemFilter:
    return ItemFilter(name=name, min_price=min_price, max_price=max_price, min_stock=min_stock, max_stock=max_stock)


# API: /items - POST to create a new item
@app.post("/items", response_model=Item)
def create_item(request: Request, item: ItemCreate):
    stores = request.app.state.stores
    try:
        created = stores.items.create(item.model_dump(mode="json"))
    except OrderApiError as e:
        raise_http_error(e, request.state.request_id)
    log_info(f"Created item {created['id']}", request_id=request.state.request_id)
    return created

# API: /users - POST to create a new user
@app.post("/users", response_model=User)
def create_user(request: Request, user: UserCreate):
    stores = request.app.state.stores
    try:
        created = stores.users.create(user.model_dump())
    except OrderApiError as e:
        raise_http_error(e, request.state.request_id)
    log_info(f"Created user {created['id']}", request_id=request.state.request_id)
    return created

# API: /items/count - GET number of items, optionally narrowed by the filter criteria
@app.get("/items/count", response_model=CountResponse)
def count_items(request: Request, criteria: ItemFilter = Depends(item_filter)):
    stores = request.app.state.stores
    try:
        if criteria.is_empty():
            count = stores.items.count()
        else:
            count = len(filter_items(stores.items.find(), criteria))
    except OrderApiError as e:
        raise_http_error(e, request.state.request_id)
    return {"count": count}

# API: /items/filter - GET items by name, price range and stock range
@app.get("/items/filter", response_model=List[Item])
def filter_items_endpoint(request: Request, criteria: ItemFilter = Depends(item_filter)):
    """
    Filter items in memory. Name matches case-insensitively as a substring,
    price and stock bounds are inclusive, and all given criteria must hold.
    """
    stores = request.app.state.stores
    try:
        items = stores.items.find()
    except OrderApiError as e:
        raise_http_error(e, request.state.request_id)
    log_debug(f"Filtering items with {criteria}", request_id=request.state.request_id)
    matched = filter_items(items, criteria)
    log_info(f"Filter matched {len(matched)} of {len(items)} items", request_id=request.state.request_id)
    return matched

@app.get("/items", response_model=List[Item])
def read_items(request: Request):
    try:
        return request.app.state.stores.items.find()
    except OrderApiError as e:
        raise_http_error(e, request.state.request_id)

# API: /items - PATCH every item matching the filter criteria (all items when none are given)
@app.patch("/items", response_model=CountResponse)
def update_items(request: Request, item: ItemUpdate, criteria: ItemFilter = Depends(item_filter)):
    stores = request.app.state.stores
    fields = item.model_dump(mode="json", exclude_unset=True, exclude_none=True)
    try:
        if criteria.is_empty():
            count = stores.items.update_all(fields)
        else:
            ids = [matched["id"] for matched in filter_items(stores.items.find(), criteria)]
            count = stores.items.update_all(fields, ids=ids)
    except OrderApiError as e:
        raise_http_error(e, request.state.request_id)
    log_info(f"Updated {count} items", request_id=request.state.request_id)
    return {"count": count}

@app.get("/items/{item_id}", response_model=Item)
def read_item(request: Request, item_id: int):
    try:
        return request.app.state.stores.items.find_by_id(item_id)
    except OrderApiError as e:
        raise_http_error(e, request.state.request_id)

@app.patch("/items/{item_id}", status_code=204)
def update_item(request: Request, item_id: int, item: ItemUpdate):
    fields = item.model_dump(mode="json", exclude_unset=True, exclude_none=True)
    try:
        request.app.state.stores.items.update_by_id(item_id, fields)
    except OrderApiError as e:
        raise_http_error(e, request.state.request_id)
    log_info(f"Updated item {item_id}", request_id=request.state.request_id)
    return Response(status_code=204)

@app.put("/items/{item_id}", status_code=204)
def replace_item(request: Request, item_id: int, item: ItemReplace):
    stores = request.app.state.stores
    fields = item.model_dump(mode="json", exclude_none=True)
    try:
        # created_at is set at creation; a replace without one keeps the stored value
        if "created_at" not in fields:
            fields["created_at"] = stores.items.find_by_id(item_id)["created_at"]
        stores.items.replace_by_id(item_id, fields)
    except OrderApiError as e:
        raise_http_error(e, request.state.request_id)
    log_info(f"Replaced item {item_id}", request_id=request.state.request_id)
    return Response(status_code=204)

@app.delete("/items/{item_id}", status_code=204)
def delete_item(request: Request, item_id: int):
    try:
        request.app.state.stores.items.delete_by_id(item_id)
    except OrderApiError as e:
        raise_http_error(e, request.state.request_id)
    log_info(f"Deleted item {item_id}", request_id=request.state.request_id)
    return Response(status_code=204)

@app.get("/users", response_model=List[User])
def read_users(request: Request):
    try:
        return request.app.state.stores.users.find()
    except OrderApiError as e:
        raise_http_error(e, request.state.request_id)

@app.get("/orders", response_model=List[Order])
def read_orders(request: Request):
    try:
        return request.app.state.stores.orders.find()
    except OrderApiError as e:
        raise_http_error(e, request.state.request_id)

# API: /orders - POST to place a single-item order
@app.post("/orders", response_model=OrderResponse)
def create_order(request: Request, order: OrderRequest):
    """
    Place an order for one item.

    CHECK, in this order:
      - Item: must exist and hold at least `count` units.
      - User: must exist.
    Then the stock is decremented and the order is recorded.
    """
    request_id = request.state.request_id
    log_info(f"Placing order: user {order.user_id}, item {order.item_id}, count {order.count}", request_id=request_id)
    try:
        result = request.app.state.fulfillment.place_order(
            user_id=order.user_id,
            item_id=order.item_id,
            count=order.count,
            request_id=request_id,
        )
    except OrderApiError as e:
        raise_http_error(e, request_id)
    return result

# API: /cart - POST to place one order per cart line
@app.post("/cart", response_model=CartResponse)
def create_cart_order(request: Request, cart: CartRequest):
    """
    Place one order per cart line for the same user.

    The user is checked once before any line. Lines run in order and the first
    failing line aborts the request; orders created for earlier lines are kept.
    """
    request_id = request.state.request_id
    log_info(f"Placing cart order: user {cart.user_id}, {len(cart.items)} line(s)", request_id=request_id)
    try:
        result = request.app.state.fulfillment.place_cart_order(
            user_id=cart.user_id,
            lines=[line.model_dump() for line in cart.items],
            request_id=request_id,
        )
    except OrderApiError as e:
        raise_http_error(e, request_id)

    return {
        "message": f"{result['created_count']} orders created successfully",
        "orders": result["orders"],
    }
