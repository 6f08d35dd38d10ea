import uuid
from datetime import datetime
from typing import Optional
from pydantic import Field
from framework.entity import EntityStatus
from framework.query import BasePaginationFilter
from framework.response import CamelModel, PaginationResult


class ProductReviewRequest(CamelModel):
    product_id: uuid.UUID
    rating: int = Field(ge=1, le=5)
    title: Optional[str] = Field(default=None, max_length=200)
    comment: Optional[str] = Field(default=None, max_length=2000)


class ProductReviewItem(CamelModel):
    id: uuid.UUID
    product_id: uuid.UUID
    user_id: uuid.UUID
    user_name: Optional[str] = None
    rating: int
    title: Optional[str] = None
    comment: Optional[str] = None
    status: EntityStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProductReviewResponse(ProductReviewItem):
    product_name: Optional[str] = None


class ProductReviewFilter(BasePaginationFilter):
    product_id: Optional[uuid.UUID] = None
    user_id: Optional[uuid.UUID] = None
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    min_rating: Optional[int] = Field(default=None, ge=1, le=5)
    max_rating: Optional[int] = Field(default=None, ge=1, le=5)


class ProductReviewPage(PaginationResult[ProductReviewItem]):
    # Over every review matching the filter, not just the current page
    average_rating: Optional[float] = None
