import uuid
from typing import List, Optional
from sqlmodel import Field, Relationship
from framework.entity import BaseEntity
from apps.catalog.models import Product


class Wishlist(BaseEntity, table=True):
    __tablename__ = "wishlists"
    user_id: uuid.UUID = Field(foreign_key="app_users.id", unique=True, index=True)
    name: str = Field(default="My Wishlist", max_length=100)

    items: List["WishlistItem"] = Relationship(back_populates="wishlist")


class WishlistItem(BaseEntity, table=True):
    __tablename__ = "wishlist_items"
    wishlist_id: uuid.UUID = Field(foreign_key="wishlists.id", index=True)
    product_id: uuid.UUID = Field(foreign_key="products.id", index=True)

    wishlist: Optional[Wishlist] = Relationship(back_populates="items")
    product: Optional[Product] = Relationship()
