import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import Field
from framework.query import BasePaginationFilter
from framework.response import CamelModel


class CartItemRequest(CamelModel):
    product_id: uuid.UUID
    quantity: int = Field(default=1, ge=1, le=999)


class UpdateCartCommand(CamelModel):
    cart_item_id: uuid.UUID
    # 0 removes the line
    quantity: int = Field(ge=0, le=999)


class CartItemResponse(CamelModel):
    id: uuid.UUID
    product_id: uuid.UUID
    product_name: str
    price: Decimal
    discount_price: Optional[Decimal] = None
    quantity: int
    stock_quantity: int
    image_path: Optional[str] = None
    # False once the product is deleted or deactivated; such lines are left out of the total
    is_available: bool = True
    created_at: Optional[datetime] = None


class CartResponse(CamelModel):
    cart_id: Optional[uuid.UUID] = None
    total_items: int = 0
    total_price: Decimal = Decimal("0")
    cart_items: List[CartItemResponse] = []


class CartFilter(BasePaginationFilter):
    pass
