import uuid
from typing import List, Optional
from sqlmodel import Field, Relationship
from framework.entity import BaseEntity
from apps.catalog.models import Product


class ShoppingCart(BaseEntity, table=True):
    __tablename__ = "shopping_carts"
    user_id: uuid.UUID = Field(foreign_key="app_users.id", unique=True, index=True)

    items: List["CartItem"] = Relationship(back_populates="cart")


class CartItem(BaseEntity, table=True):
    __tablename__ = "cart_items"
    cart_id: uuid.UUID = Field(foreign_key="shopping_carts.id", index=True)
    product_id: uuid.UUID = Field(foreign_key="products.id", index=True)
    quantity: int = Field(default=1)

    cart: Optional[ShoppingCart] = Relationship(back_populates="items")
    product: Optional[Product] = Relationship()
