# schemas.py

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

# Pydantic models for request and response


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ItemCreate(BaseModel):
    # Fields that client sends to create an item; created_at defaults to now
    item_name: str = Field(..., min_length=1, examples=["Laptop"])
    price: float = Field(..., ge=0, examples=[15000])
    stock: int = Field(..., ge=0, examples=[8])
    created_at: datetime = Field(default_factory=utc_now, examples=["2024-01-01T00:00:00+00:00"])

class ItemReplace(BaseModel):
    # Full item replacement; without created_at the stored creation time is kept
    item_name: str = Field(..., min_length=1, examples=["Laptop"])
    price: float = Field(..., ge=0, examples=[15000])
    stock: int = Field(..., ge=0, examples=[8])
    created_at: Optional[datetime] = None

class ItemUpdate(BaseModel):
    # Partial item update, only the fields that are set get written
    item_name: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    created_at: Optional[datetime] = None

class Item(BaseModel):
    id: int = Field(..., examples=[1])
    item_name: str = Field(..., examples=["Laptop"])
    price: float = Field(..., examples=[15000])
    stock: int = Field(..., examples=[8])
    created_at: datetime = Field(..., examples=["2024-01-01T00:00:00+00:00"])

class UserCreate(BaseModel):
    username: str = Field(..., min_length=1, examples=["burak"])

class User(BaseModel):
    id: int = Field(..., examples=[1])
    username: str = Field(..., examples=["burak"])

class Order(BaseModel):
    id: int = Field(..., examples=[1])
    user_id: int = Field(..., examples=[1])
    item_id: int = Field(..., examples=[1])
    stock_number: int = Field(..., examples=[2])

class CountResponse(BaseModel):
    count: int = Field(..., examples=[3])

class OrderRequest(BaseModel):
    # Fields that client sends to place a single-item order
    user_id: int = Field(..., examples=[1])
    item_id: int = Field(..., examples=[1])
    count: int = Field(..., ge=1, examples=[2])

class CartLine(BaseModel):
    item_id: int = Field(..., examples=[2])
    count: int = Field(..., ge=1, examples=[1])

class CartRequest(BaseModel):
    user_id: int = Field(..., examples=[1])
    items: List[CartLine] = Field(default_factory=list)

class UserSummary(BaseModel):
    id: int
    username: str

class ItemSummary(BaseModel):
    id: int
    item_name: str

class OrderResponse(BaseModel):
    # Fields that appear in the response of a fulfilled order line
    order: Order
    user: UserSummary
    item: ItemSummary

class CartResponse(BaseModel):
    message: str = Field(..., examples=["2 orders created successfully"])
    orders: List[OrderResponse]
