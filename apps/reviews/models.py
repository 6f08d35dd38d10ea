import uuid
from typing import Optional
from sqlmodel import Field, Relationship
from framework.entity import BaseEntity
from apps.catalog.models import Product
from apps.identity.models import AppUser


class ProductReview(BaseEntity, table=True):
    __tablename__ = "product_reviews"
    product_id: uuid.UUID = Field(foreign_key="products.id", index=True)
    user_id: uuid.UUID = Field(foreign_key="app_users.id", index=True)
    rating: int = Field(ge=1, le=5)
    title: Optional[str] = Field(default=None, max_length=200)
    comment: Optional[str] = Field(default=None, max_length=2000)

    product: Optional[Product] = Relationship()
    user: Optional[AppUser] = Relationship()
