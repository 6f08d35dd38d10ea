import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import Field, field_validator
from framework.config import settings
from framework.entity import EntityStatus, as_naive_utc
from framework.query import BasePaginationFilter
from framework.response import CamelModel


def image_url(path: Optional[str]) -> Optional[str]:
    """Public URL for a stored relative image path."""
    if not path:
        return None
    if path.startswith(("http://", "https://")):
        return path
    return f"{settings.STORAGE_BASE_URL.rstrip('/')}/{path.lstrip('/')}"


class SelectItem(CamelModel):
    id: uuid.UUID
    name: str


# --- Category ---

class CategoryRequest(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    image_path: Optional[str] = Field(default=None, max_length=500)
    parent_category_id: Optional[uuid.UUID] = None
    status: EntityStatus = EntityStatus.ACTIVE


class CategoryResponse(CamelModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    image_path: Optional[str] = None
    parent_category_id: Optional[uuid.UUID] = None
    status: EntityStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CategoryFilter(BasePaginationFilter):
    name: Optional[str] = None
    parent_category_id: Optional[uuid.UUID] = None
    is_root: Optional[bool] = None


# --- Anime series ---

class AnimeSeriesRequest(CamelModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    release_year: Optional[int] = Field(default=None, ge=1900, le=2100)
    image_path: Optional[str] = Field(default=None, max_length=500)
    status: EntityStatus = EntityStatus.ACTIVE


class AnimeSeriesResponse(CamelModel):
    id: uuid.UUID
    title: str
    description: Optional[str] = None
    release_year: Optional[int] = None
    image_path: Optional[str] = None
    status: EntityStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AnimeSeriesFilter(BasePaginationFilter):
    title: Optional[str] = None
    release_year: Optional[int] = None


# --- Product ---

class ProductRequest(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    price: Decimal = Field(gt=0, max_digits=18, decimal_places=2)
    discount_price: Optional[Decimal] = Field(default=None, ge=0, max_digits=18, decimal_places=2)
    stock_quantity: int = Field(default=0, ge=0)
    category_id: uuid.UUID
    anime_series_id: Optional[uuid.UUID] = None
    is_pre_order: bool = False
    pre_order_release_date: Optional[datetime] = None
    # The first path becomes the primary image; None on update keeps existing images
    image_paths: Optional[List[str]] = None
    status: EntityStatus = EntityStatus.ACTIVE

    naive_release_date = field_validator("pre_order_release_date")(as_naive_utc)


class ProductImageResponse(CamelModel):
    id: uuid.UUID
    image_path: str
    image_url: Optional[str] = None
    is_primary: bool
    display_order: int


class ProductItem(CamelModel):
    id: uuid.UUID
    name: str
    price: Decimal
    discount_price: Optional[Decimal] = None
    stock_quantity: int
    category_id: uuid.UUID
    category_name: Optional[str] = None
    anime_series_id: Optional[uuid.UUID] = None
    is_pre_order: bool
    primary_image_url: Optional[str] = None
    status: EntityStatus
    created_at: Optional[datetime] = None


class ProductResponse(ProductItem):
    description: Optional[str] = None
    pre_order_release_date: Optional[datetime] = None
    anime_series_title: Optional[str] = None
    images: List[ProductImageResponse] = []
    updated_at: Optional[datetime] = None


class ProductFilter(BasePaginationFilter):
    name: Optional[str] = None
    category_id: Optional[uuid.UUID] = None
    anime_series_id: Optional[uuid.UUID] = None
    has_image: Optional[bool] = None
    price_range: Optional[str] = Field(default=None, description="under-500k, 500k-1m, 1m-2m, over-2m")
    sort_type: Optional[str] = Field(default=None, description="price-asc, price-desc, name-asc, name-desc, updated-asc, updated-desc")
    stock_status: Optional[str] = Field(default=None, description="out-of-stock, low-stock, in-stock")
