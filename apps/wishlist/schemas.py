import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from framework.query import BasePaginationFilter
from framework.response import CamelModel


class WishlistRequest(CamelModel):
    product_id: uuid.UUID


class WishlistItemResponse(CamelModel):
    wishlist_item_id: uuid.UUID
    product_id: uuid.UUID
    name: str
    price: Decimal
    discount_price: Optional[Decimal] = None
    stock_quantity: int
    primary_image_url: Optional[str] = None
    added_at: Optional[datetime] = None


class WishlistResponse(CamelModel):
    wishlist_id: Optional[uuid.UUID] = None
    name: str
    items: List[WishlistItemResponse] = []
    total_items: int = 0
    page_number: int = 1
    page_size: int = 0


class WishlistFilter(BasePaginationFilter):
    pass
